"""Expression tree nodes produced by the parser.

All nodes are immutable.  ``position`` is the character offset of the
node's first token in the formula body, used for error messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class NumberLit:
    value: float


@dataclass(frozen=True)
class StringLit:
    value: str
    position: int = 0


@dataclass(frozen=True)
class ColumnRef:
    """Same-row lookup of another column."""

    name: str
    position: int = 0


@dataclass(frozen=True)
class PrevRowRef:
    """``PREV.Column``: the column's value in the row above."""

    column: str
    position: int = 0


@dataclass(frozen=True)
class SettingsRef:
    """``Settings.KEY``: a lookup in the workbook's settings sheet."""

    key: str
    position: int = 0


@dataclass(frozen=True)
class CrossSheetRef:
    """``REF(sheet, row, column)``.  *row* is a row id, or an ``int`` index."""

    sheet: str
    row: str | int
    column: str
    position: int = 0


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Node


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple[Node, ...]
    position: int = 0


Node = Union[
    NumberLit,
    StringLit,
    ColumnRef,
    PrevRowRef,
    SettingsRef,
    CrossSheetRef,
    UnaryOp,
    BinaryOp,
    FunctionCall,
]

Reference = Union[ColumnRef, PrevRowRef, SettingsRef, CrossSheetRef]

REFERENCE_TYPES = (ColumnRef, PrevRowRef, SettingsRef, CrossSheetRef)

ARITHMETIC_OPS = frozenset({"+", "-", "*", "/", "^"})
COMPARISON_OPS = frozenset({"<", ">", "<=", ">=", "=", "!="})
