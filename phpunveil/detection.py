import re
from collections import Counter
from typing import Dict, Set

from phpunveil.catalog import CATALOG

ARRAY_PATTERNS = [
    re.compile(r"\$GLOBALS\[(['\"])(?P<name>[^'\"]+)\1\]\[(?P<index>\d+)\]"),
    re.compile(r"(?<!\$)\$(?P<name>[a-zA-Z_][a-zA-Z0-9_]*)\[(?P<index>\d+)\]"),
    re.compile(r"\$\{(['\"])(?P<name>[^'\"]+)\1\}\[(?P<index>\d+)\]"),
]

BARE_NAME = r"(?<![\w$\\])(?<!->)(?<!::)"
FUNCTION_CALL = re.compile(BARE_NAME + r"([^\W\d]\w*)\((\d+)\)")


def detect_arrays(code: str) -> Dict[str, Set[int]]:
    arrays: Dict[str, Set[int]] = {}
    for pattern in ARRAY_PATTERNS:
        for match in pattern.finditer(code):
            arrays.setdefault(match.group("name"), set()).add(int(match.group("index")))
    return arrays


def detect_functions(code: str) -> Counter:
    return Counter(match.group(1) for match in FUNCTION_CALL.finditer(code))


def detect_encoded_strings(code: str) -> Dict[str, int]:
    return CATALOG.count(code)


def array_access_pattern(name: str) -> re.Pattern:
    """All three indexed-access spellings of one array name.

    The index lands in group 2, 3 or 5 depending on the spelling.
    """
    quoted = re.escape(name)
    return re.compile(
        rf"\$GLOBALS\[(['\"]){quoted}\1\]\[(\d+)\]"
        rf"|(?<!\$)\${quoted}\[(\d+)\]"
        rf"|\$\{{(['\"]){quoted}\4\}}\[(\d+)\]"
    )


def function_call_pattern(name: str) -> re.Pattern:
    return re.compile(BARE_NAME + re.escape(name) + r"\((\d+)\)")
