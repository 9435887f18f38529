"""Operator tables and numeric helpers for CalcLang.

All values are Python floats. Booleans are ``1.0``/``0.0``. Arithmetic keeps
IEEE-754 results where Python would raise (division by zero, ``pow``
domain errors and overflow) so evaluation never fails on a numeric edge.
"""

import math
from typing import Callable, Dict

TRUE = 1.0
FALSE = 0.0


def _truth(flag: bool) -> float:
    return TRUE if flag else FALSE


def divide(left: float, right: float) -> float:
    if right == 0.0:
        if left == 0.0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def _is_odd_integer(x: float) -> bool:
    x = float(x)
    return math.isfinite(x) and x.is_integer() and x % 2.0 == 1.0


def power(left: float, right: float) -> float:
    """C ``pow`` semantics: overflow gives inf, domain errors give inf or nan."""
    try:
        return math.pow(left, right)
    except OverflowError:
        if left < 0.0 and _is_odd_integer(right):
            return -math.inf
        return math.inf
    except ValueError:
        if left == 0.0:
            # zero base, negative exponent
            if _is_odd_integer(right):
                return math.copysign(math.inf, left)
            return math.inf
        return math.nan


ARITHMETIC: Dict[str, Callable[[float, float], float]] = {
    "+": lambda left, right: left + right,
    "-": lambda left, right: left - right,
    "*": lambda left, right: left * right,
    "/": divide,
    "^": power,
}

# Relational operators compare the difference of both sides against zero.
RELATIONAL: Dict[str, Callable[[float], bool]] = {
    ">": lambda diff: diff > 0.0,
    "<": lambda diff: diff < 0.0,
    ">=": lambda diff: diff >= 0.0,
    "<=": lambda diff: diff <= 0.0,
    "==": lambda diff: diff == 0.0,
    "!=": lambda diff: diff != 0.0,
}

LOGICAL: Dict[str, Callable[[bool, bool], bool]] = {
    "&&": lambda left, right: left and right,
    "||": lambda left, right: left or right,
}

# Unary operators that only read their operand. ``++``/``--`` write back to
# a variable and are handled by the interpreter.
UNARY: Dict[str, Callable[[float], float]] = {
    "!": lambda value: _truth(value == 0.0),
    "-": lambda value: value * -1.0,
}

INCREMENTS: Dict[str, float] = {"++": 1.0, "--": -1.0}

BINARY_OPERATORS = frozenset(ARITHMETIC) | frozenset(RELATIONAL) | frozenset(LOGICAL)
UNARY_OPERATORS = frozenset(UNARY) | frozenset(INCREMENTS)


def apply_binary(op: str, left: float, right: float) -> float:
    """Apply a binary operator to two evaluated operands.

    Raises:
        KeyError: if `op` is not a known binary operator.
    """
    if op in ARITHMETIC:
        return ARITHMETIC[op](left, right)
    if op in RELATIONAL:
        return _truth(RELATIONAL[op](left - right))
    if op in LOGICAL:
        return _truth(LOGICAL[op](left != 0.0, right != 0.0))
    raise KeyError(op)


def format_value(value: float) -> str:
    """Render a value the way program output shows it.

    Up to 12 significant digits; whole numbers keep a trailing ``.``
    (``4.``, ``362880.``) and non-finite values print as ``infinity``,
    ``neg_infinity`` and ``nan``.
    """
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "infinity" if value > 0 else "neg_infinity"
    text = "%.12g" % value
    if all(ch in "-0123456789" for ch in text):
        text += "."
    return text
