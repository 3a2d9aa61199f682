import re

STRING_LITERAL = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"", re.DOTALL)

CLEANUP_PATTERNS = [
    (re.compile(r"\s+"), " "),
    (re.compile(r";\s*;+"), ";"),
    (re.compile(r"<\?php\s+"), "<?php\n"),
]

BLANK = re.compile(r"\A\s*\Z")


def _clean(segment: str) -> str:
    for pattern, replacement in CLEANUP_PATTERNS:
        segment = pattern.sub(replacement, segment)
    return segment


def normalize(code: str) -> str:
    """Cosmetic cleanup applied only to the code between string literals.

    Blank lines disappear with the whitespace collapse; literal contents are
    never touched. An unterminated quote (for example one produced by a
    decoded ``\\x27``) ends literal tracking, so everything after it is
    treated as code.
    """
    if BLANK.match(code):
        return ""
    parts = []
    position = 0
    for match in STRING_LITERAL.finditer(code):
        parts.append(_clean(code[position:match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(_clean(code[position:]))
    return "".join(parts)
