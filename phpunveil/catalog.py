import re
from typing import Callable, Dict, Iterator, Optional

# A call is "bare" when not reached through $var, ->, :: or a namespace separator.
CALL_PREFIX = r"(?<![\w$>:\\])"

Handler = Callable[[re.Match], Optional[str]]
Units = Callable[[re.Match], int]


class PatternRule:
    def __init__(
        self, kind: str, pattern: re.Pattern, counter: Optional[str], units: Optional[Units] = None
    ) -> None:
        self.kind = kind
        self.pattern = pattern
        self.counter = counter
        # how many counted items one match stands for
        self.units = units or (lambda match: 1)
        self.handler: Optional[Handler] = None

    def __repr__(self) -> str:
        return f"PatternRule({self.kind!r}, {self.pattern.pattern!r})"


class PatternCatalog:
    """Declarative table of obfuscation kinds.

    Each kind owns one detection regex. Decoders attach themselves with
    :meth:`handler`; a kind without a handler is only counted for the log.
    """

    def __init__(self) -> None:
        self.rules: Dict[str, PatternRule] = {}

    def add(
        self,
        kind: str,
        pattern: str,
        counter: Optional[str] = None,
        flags: int = 0,
        units: Optional[Units] = None,
    ) -> PatternRule:
        if kind in self.rules:
            raise ValueError(f"pattern kind {kind!r} already registered")
        rule = PatternRule(kind, re.compile(pattern, flags), counter, units)
        self.rules[kind] = rule
        return rule

    def handler(self, kind: str) -> Callable[[Handler], Handler]:
        def register(func: Handler) -> Handler:
            self.rules[kind].handler = func
            return func

        return register

    def __getitem__(self, kind: str) -> PatternRule:
        return self.rules[kind]

    def __iter__(self) -> Iterator[PatternRule]:
        return iter(self.rules.values())

    def count(self, code: str) -> Dict[str, int]:
        counts = {rule.kind: len(rule.pattern.findall(code)) for rule in self}
        return {kind: count for kind, count in counts.items() if count}


CATALOG = PatternCatalog()

CATALOG.add(
    "gzinflate",
    CALL_PREFIX
    + r"(gzinflate|gzuncompress)\s*\(\s*base64_decode\s*\(\s*(['\"])([A-Za-z0-9+/=]+)\2\s*\)\s*\)",
    counter="gzinflate_decoded",
)
CATALOG.add(
    "base64",
    CALL_PREFIX + r"base64_decode\s*\(\s*(['\"])([A-Za-z0-9+/=]+)\1\s*\)",
    counter="base64_decoded",
)
# a run of escapes is one byte string, counted per escape
CATALOG.add(
    "hex",
    r"(?:\\x[0-9a-fA-F]{2})+",
    counter="hex_decoded",
    units=lambda match: len(match.group(0)) // 4,
)
CATALOG.add("chr", CALL_PREFIX + r"chr\s*\(\s*(\d+)\s*\)", counter="chr_decoded")
CATALOG.add(
    "str_rot13",
    CALL_PREFIX + r"str_rot13\s*\(\s*(['\"])([^'\"]+)\1\s*\)",
    counter="rot13_decoded",
)
CATALOG.add("eval", CALL_PREFIX + r"eval\s*\(\s*(.+?)\s*\)")
