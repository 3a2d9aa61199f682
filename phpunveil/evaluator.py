"""Restricted evaluator for variable-free PHP expressions.

Only numeric constants, plain quoted strings without escapes, unary sign,
``+ - * /`` and calls to the functions in :data:`ALLOWED_FUNCTIONS` are
understood. The expression is parsed with :mod:`ast` and walked node by
node; nothing is ever handed to ``eval``.
"""

import ast
import io
import re
import string
import tokenize
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from phpunveil.catalog import CALL_PREFIX
from phpunveil.log import get_logger
from phpunveil.stats import StatsCollector
from phpunveil.utils import format_number, render_value

logger = get_logger("evaluator")

PHP_INT_MIN, PHP_INT_MAX = -(2 ** 63), 2 ** 63 - 1

_ASCII_UPPER = str.maketrans(string.ascii_lowercase, string.ascii_uppercase)


class EvaluationError(ValueError):
    pass


def _number(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EvaluationError(f"{value!r} is not a number")
    return value


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return format_number(_number(value))


def _overflow(value):
    # PHP promotes integers past the 64-bit range to float
    if isinstance(value, int) and not PHP_INT_MIN <= value <= PHP_INT_MAX:
        return float(value)
    return value


def _divide(left, right):
    if right == 0:
        raise ZeroDivisionError("division by zero")
    if isinstance(left, int) and isinstance(right, int) and left % right == 0:
        return left // right
    return left / right


def php_min(*args):
    if len(args) < 2:
        raise EvaluationError("min() needs at least two values")
    if all(isinstance(arg, str) for arg in args):
        return min(args)
    return min(_number(arg) for arg in args)


def php_round(value, precision=0):
    value = _number(value)
    if not isinstance(precision, int) or isinstance(precision, bool):
        raise EvaluationError("round() precision must be an integer")
    exponent = Decimal(1).scaleb(-precision)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def php_strtoupper(value):
    return _text(value).translate(_ASCII_UPPER)


def php_strrev(value):
    return _text(value)[::-1]


ALLOWED_FUNCTIONS = {
    "min": php_min,
    "round": php_round,
    "strtoupper": php_strtoupper,
    "strrev": php_strrev,
}

OPERATORS = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: _divide,
}


def _evaluate(node: ast.AST, allow_calls: bool):
    if isinstance(node, ast.Constant) and type(node.value) in (int, float, str):
        return node.value
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
        operand = _number(_evaluate(node.operand, allow_calls))
        return -operand if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.BinOp) and type(node.op) in OPERATORS:
        left = _number(_evaluate(node.left, allow_calls))
        right = _number(_evaluate(node.right, allow_calls))
        return _overflow(OPERATORS[type(node.op)](left, right))
    if (
        allow_calls
        and isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in ALLOWED_FUNCTIONS
        and not node.keywords
    ):
        args = [_evaluate(arg, allow_calls=False) for arg in node.args]
        return ALLOWED_FUNCTIONS[node.func.id](*args)
    raise EvaluationError(f"unsupported syntax: {type(node).__name__}")


def _check_tokens(source: str) -> None:
    """Reject token sequences that PHP reads differently from Python."""
    previous = None
    for token in tokenize.generate_tokens(io.StringIO(source).readline):
        if token.type == tokenize.STRING:
            # PHP escapes differ, and PHP has no implicit concatenation
            if token.string[0] not in "'\"" or token.string[:3] in ("'''", '"""') or "\\" in token.string:
                raise EvaluationError(f"unsupported string literal: {token.string}")
            if previous is not None and previous.type == tokenize.STRING:
                raise EvaluationError("adjacent string literals")
        if (
            token.string in ("+", "-")
            and previous is not None
            and previous.string == token.string
            and previous.end == token.start
        ):
            raise EvaluationError(f"{token.string * 2} is an increment/decrement operator")
        previous = token


def evaluate(expression: str, allow_calls: bool = True):
    source = expression.strip()
    tree = ast.parse(source, mode="eval")
    _check_tokens(source)
    return _evaluate(tree.body, allow_calls)


FUNCTION_RULE = re.compile(CALL_PREFIX + r"(min|round|strtoupper|strrev)\(([^()$]+)\)")
# A parenthetical right after a name, variable, ] or ) is a call argument list.
ARITHMETIC_RULE = re.compile(
    r"(?P<lead>(?:[\w$]+|[\])])\s+)?(?<![\w$\])\]])\((?P<expression>[0-9+\-*/\s]*[0-9][0-9+\-*/\s]*)\)"
)
# language constructs that take a plain expression
CONSTRUCTS = frozenset({"echo", "print", "return", "and", "or", "xor", "case", "else", "yield"})
OPERATOR = re.compile(r"[+\-*/]")
OCTAL = re.compile(r"(?<![\d.])0([0-7]+)(?![\d.])")


def _substitute(expression: str, allow_calls: bool, stats: Optional[StatsCollector]) -> Optional[str]:
    try:
        rendered = render_value(evaluate(expression, allow_calls))
    except Exception as e:
        logger.debug(f"expression {expression!r} left as is: {e}")
        return None
    if rendered is not None and stats is not None:
        stats.increment("math_expressions")
    return rendered


def evaluate_function_calls(code: str, stats: Optional[StatsCollector] = None) -> str:
    def replace(match: re.Match) -> str:
        rendered = _substitute(match.group(0), True, stats)
        return match.group(0) if rendered is None else rendered

    return FUNCTION_RULE.sub(replace, code)


def evaluate_arithmetic(code: str, stats: Optional[StatsCollector] = None) -> str:
    def replace(match: re.Match) -> str:
        lead = match.group("lead") or ""
        if lead and lead.split()[0].lower() not in CONSTRUCTS:
            return match.group(0)
        expression = match.group("expression")
        if not OPERATOR.search(expression):
            return match.group(0)
        rendered = _substitute(OCTAL.sub(r"0o\1", expression), False, stats)
        return match.group(0) if rendered is None else lead + rendered

    return ARITHMETIC_RULE.sub(replace, code)


def evaluate_expressions(code: str, stats: Optional[StatsCollector] = None) -> str:
    code = evaluate_function_calls(code, stats)
    return evaluate_arithmetic(code, stats)
