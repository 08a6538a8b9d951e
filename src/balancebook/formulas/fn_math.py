"""Generic formula functions: math, statistics, trigonometry and logic."""

from __future__ import annotations

import math

from balancebook.formulas.library import FunctionSpec
from balancebook.values import (
    ieee_ceil,
    ieee_div,
    ieee_exp,
    ieee_floor,
    ieee_log,
    ieee_max,
    ieee_min,
    ieee_pow,
    ieee_sqrt,
)


def _round(x: float, digits: float = 0) -> float:
    """ROUND(x, digits=0) -- half away from zero, like a spreadsheet."""
    if math.isnan(x) or math.isinf(x):
        return x
    factor = ieee_pow(10.0, float(int(digits)))
    scaled = abs(x) * factor
    if math.isinf(scaled):
        return x
    if factor == 0:
        return math.copysign(0.0, x)
    return math.copysign(math.floor(scaled + 0.5) / factor, x)


def _log(x: float, base: float = 10.0) -> float:
    return ieee_div(ieee_log(x), ieee_log(base))


def _mod(a: float, b: float) -> float:
    """MOD(a, b) -- result takes the sign of the divisor."""
    if b == 0:
        return math.nan
    return a - b * ieee_floor(a / b)


def _sum(*args: float) -> float:
    try:
        return math.fsum(args)
    except (OverflowError, ValueError):
        # inf + -inf, or an overflowing partial sum
        return sum(args)


def _average(*args: float) -> float:
    return _sum(*args) / len(args)


def _pi() -> float:
    return math.pi


def _and(*args: float) -> float:
    return 1.0 if all(a != 0 for a in args) else 0.0


def _or(*args: float) -> float:
    return 1.0 if any(a != 0 for a in args) else 0.0


def _not(a: float) -> float:
    return 0.0 if a != 0 else 1.0


MATH_FUNCTIONS: list[FunctionSpec] = [
    # math
    FunctionSpec("ABS", abs, 1, 1, "math", "ABS(x)", "ABS(-5)", "Absolute value"),
    FunctionSpec(
        "ROUND", _round, 1, 2, "math", "ROUND(x, digits?)", "ROUND(3.14159, 2)",
        "Round half away from zero",
    ),
    FunctionSpec(
        "FLOOR", ieee_floor, 1, 1, "math", "FLOOR(x)", "FLOOR(2.7)",
        "Round down",
    ),
    FunctionSpec(
        "CEIL", ieee_ceil, 1, 1, "math", "CEIL(x)", "CEIL(2.1)",
        "Round up",
    ),
    FunctionSpec("SQRT", ieee_sqrt, 1, 1, "math", "SQRT(x)", "SQRT(16)", "Square root"),
    FunctionSpec(
        "POWER", ieee_pow, 2, 2, "math", "POWER(base, exponent)", "POWER(1.15, 10)",
        "Exponentiation",
    ),
    FunctionSpec(
        "POW", ieee_pow, 2, 2, "math", "POW(base, exponent)", "POW(2, 8)",
        "Exponentiation (alias of POWER)",
    ),
    FunctionSpec("EXP", ieee_exp, 1, 1, "math", "EXP(x)", "EXP(1)", "e raised to x"),
    FunctionSpec("LN", ieee_log, 1, 1, "math", "LN(x)", "LN(10)", "Natural logarithm"),
    FunctionSpec(
        "LOG", _log, 1, 2, "math", "LOG(x, base?)", "LOG(1000)",
        "Logarithm (base 10 by default)",
    ),
    FunctionSpec("MOD", _mod, 2, 2, "math", "MOD(a, b)", "MOD(10, 3)", "Remainder"),
    # stat
    FunctionSpec("SUM", _sum, 1, None, "stat", "SUM(a, b, ...)", "SUM(1, 2, 3)", "Sum"),
    FunctionSpec(
        "AVERAGE", _average, 1, None, "stat", "AVERAGE(a, b, ...)", "AVERAGE(1, 2, 3)",
        "Arithmetic mean",
    ),
    FunctionSpec("MIN", ieee_min, 1, None, "stat", "MIN(a, b, ...)", "MIN(3, 1, 2)", "Smallest value"),
    FunctionSpec("MAX", ieee_max, 1, None, "stat", "MAX(a, b, ...)", "MAX(3, 1, 2)", "Largest value"),
    # trig
    FunctionSpec("SIN", math.sin, 1, 1, "trig", "SIN(radians)", "SIN(PI()/2)", "Sine"),
    FunctionSpec("COS", math.cos, 1, 1, "trig", "COS(radians)", "COS(0)", "Cosine"),
    FunctionSpec("TAN", math.tan, 1, 1, "trig", "TAN(radians)", "TAN(PI()/4)", "Tangent"),
    FunctionSpec("PI", _pi, 0, 0, "trig", "PI()", "PI()", "The constant pi"),
    # logic
    FunctionSpec(
        "IF", None, 2, 3, "logic", "IF(condition, then, else?)", "IF(Level>10, 2, 1)",
        "Choose a value by condition (else defaults to 0)",
        text_args=frozenset({1, 2}), lazy=True,
    ),
    FunctionSpec(
        "IFERROR", None, 2, 2, "logic", "IFERROR(value, fallback)", "IFERROR(ATK/DEF, 0)",
        "Fallback value when the first argument fails",
        text_args=frozenset({0, 1}), lazy=True,
    ),
    FunctionSpec("AND", _and, 1, None, "logic", "AND(a, b, ...)", "AND(1, 0)", "1 if all are non-zero"),
    FunctionSpec("OR", _or, 1, None, "logic", "OR(a, b, ...)", "OR(1, 0)", "1 if any is non-zero"),
    FunctionSpec("NOT", _not, 1, 1, "logic", "NOT(a)", "NOT(0)", "Logical negation"),
]
