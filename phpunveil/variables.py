import re
from typing import Dict

from phpunveil.utils import quote_literal

ASSIGNMENT = re.compile(
    r"(?<!\$)\$([a-zA-Z_][a-zA-Z0-9_]*)\s*=\s*(?:'([^'\"\\]+)'|\"([^'\"\\$]+)\")"
)

# $name =, $name .=, $name += ... but not $name ==
ASSIGNMENT_TARGET = r"(?!\s*(?:[.+\-*/%]|\?\?)?=(?!=))"


def detect_variables(code: str) -> Dict[str, str]:
    """Last literal assigned to each variable; later assignments win."""
    bindings: Dict[str, str] = {}
    for match in ASSIGNMENT.finditer(code):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        bindings[match.group(1)] = value
    return bindings


def substitute_variable(code: str, name: str, value: str) -> str:
    pattern = re.compile(r"(?<!\$)\$" + re.escape(name) + r"\b" + ASSIGNMENT_TARGET)
    literal = quote_literal(value)
    return pattern.sub(lambda m: literal, code)


def substitute_variables(code: str, bindings: Dict[str, str]) -> str:
    for name, value in bindings.items():
        code = substitute_variable(code, name, value)
    return code
