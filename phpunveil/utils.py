from typing import Optional, Union

Number = Union[int, float]

_SLASHED = {"'": "\\'", '"': '\\"', "\\": "\\\\", "\0": "\\0"}


def addslashes(text: str) -> str:
    return "".join(_SLASHED.get(ch, ch) for ch in text)


def quote_literal(text: str) -> str:
    return f"'{addslashes(text)}'"


def format_number(value: Number) -> str:
    """Render a number the way PHP's echo does (precision 14)."""
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers here")
    if isinstance(value, int):
        return str(value)
    if value != value or value in (float("inf"), float("-inf")):
        raise ValueError(f"cannot render {value!r}")
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    text = "%.14G" % value
    if "E" in text:
        mantissa, exponent = text.split("E")
        if "." not in mantissa:
            mantissa += ".0"
        text = f"{mantissa}E{exponent}"
    return text


def render_value(value: object) -> Optional[str]:
    """Quoted literal for text, bare numeral for numbers, None otherwise."""
    if isinstance(value, str):
        return quote_literal(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return None
