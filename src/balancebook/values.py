"""Cell values and formula results.

A cell holds exactly one of three things: a number, a piece of text, or
nothing.  Formula evaluation works on these tagged values so every
boundary (resolver, operators, functions) can match on the variant
instead of guessing from Python types.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Number:
    value: float

    def __str__(self) -> str:
        return format_number(self.value)


@dataclass(frozen=True)
class Text:
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Empty:
    def __str__(self) -> str:
        return ""


EMPTY = Empty()

CellValue = Union[Number, Text, Empty]


def to_cell_value(raw: Any) -> CellValue:
    """Convert raw grid data (``int | float | str | bool | None``) to a CellValue."""
    if isinstance(raw, (Number, Text, Empty)):
        return raw
    if raw is None:
        return EMPTY
    if isinstance(raw, bool):
        return Number(1.0 if raw else 0.0)
    if isinstance(raw, (int, float)):
        return Number(float(raw))
    if isinstance(raw, str):
        if raw == "":
            return EMPTY
        return Text(raw)
    raise TypeError(f"Unsupported cell value type: {type(raw).__name__}")


# Same literal shape as formula numbers, plus a sign.  Words such as "nan",
# "inf" or "1_000" that float() would accept are not numbers here.
_NUMERIC_TEXT_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?", re.ASCII)


def numeric_text(text: str) -> float | None:
    """Return the float held by *text*, or None if it isn't a decimal literal."""
    stripped = text.strip()
    if not _NUMERIC_TEXT_RE.fullmatch(stripped):
        return None
    return float(stripped)


def format_number(value: float) -> str:
    """Format a float cleanly for display (``3.0`` → ``3``)."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return f"{value:.10g}"


# ---------------------------------------------------------------------------
# IEEE-754 arithmetic
# ---------------------------------------------------------------------------
#
# Python raises on float division by zero and on math-domain errors.
# Formulas instead follow IEEE-754 and let Infinity/NaN flow through.


def ieee_div(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def ieee_pow(base: float, exp: float) -> float:
    try:
        return math.pow(base, exp)
    except OverflowError:
        if base < 0 and float(exp).is_integer() and int(exp) % 2 == 1:
            return -math.inf
        return math.inf
    except ValueError:
        # 0 ** negative, or negative ** fractional
        if base == 0.0:
            return math.inf
        return math.nan


def ieee_exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def ieee_log(x: float) -> float:
    if math.isnan(x) or x < 0:
        return math.nan
    if x == 0:
        return -math.inf
    return math.log(x)


def ieee_sqrt(x: float) -> float:
    if math.isnan(x) or x < 0:
        return math.nan
    return math.sqrt(x)


# Python's min/max keep or drop NaN depending on argument order; these
# return NaN whenever any argument is NaN.


def ieee_min(*args: float) -> float:
    if any(math.isnan(a) for a in args):
        return math.nan
    return min(args)


def ieee_max(*args: float) -> float:
    if any(math.isnan(a) for a in args):
        return math.nan
    return max(args)


def ieee_floor(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.floor(x))


def ieee_ceil(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.ceil(x))


# ---------------------------------------------------------------------------
# FormulaResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FormulaResult:
    """Outcome of one evaluation: a value or an error message, never both.

    Attributes:
        value: The computed cell value, or None on failure.
        error: Human-readable error message, or None on success.
        error_code: Stable machine-readable code for *error*.
        warnings: Non-fatal notes collected during evaluation.
    """

    value: CellValue | None = None
    error: str | None = None
    error_code: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls, value: CellValue | None, warnings: tuple[str, ...] = ()) -> FormulaResult:
        # value=None with no error is not a terminal state; it means Empty.
        return cls(value=EMPTY if value is None else value, warnings=warnings)

    @classmethod
    def failure(cls, message: str, code: str | None = None) -> FormulaResult:
        return cls(value=None, error=message, error_code=code)

    @property
    def ok(self) -> bool:
        return self.error is None

    def display(self) -> str:
        """Text for the formula tester: ``Result: <value>`` or ``Error: <message>``."""
        if self.error is not None:
            return f"Error: {self.error}"
        return f"Result: {self.value}"

    def cell_text(self) -> str:
        """Text shown inline in the grid in place of the computed value."""
        if self.error is not None:
            return f"#ERR: {self.error}"
        return str(self.value)

    def to_dict(self) -> dict[str, Any]:
        value: Any
        if isinstance(self.value, Number):
            value = self.value.value
        elif isinstance(self.value, Text):
            value = self.value.value
        else:
            value = None
        return {
            "value": value,
            "error": self.error,
            "error_code": self.error_code,
            "warnings": list(self.warnings),
        }
