"""Reference resolution against a workbook snapshot.

Maps reference nodes (``ATK``, ``PREV.ATK``, ``Settings.KEY``,
``REF(...)``) to cell values.  When the referenced cell holds a formula,
it is evaluated recursively in that cell's own row.  A ``ResolutionGuard``
threaded through every recursive step turns self-references into
``FormulaCycleError`` and runaway chains into ``FormulaRecursionError``.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from balancebook.config import EngineConfig
from balancebook.formulas.ast import (
    ColumnRef,
    CrossSheetRef,
    PrevRowRef,
    Reference,
    SettingsRef,
)
from balancebook.formulas.errors import (
    FormulaCycleError,
    FormulaError,
    FormulaRecursionError,
    FormulaRefError,
)
from balancebook.formulas.parser import strip_formula_prefix
from balancebook.values import EMPTY, CellValue, format_number, to_cell_value
from balancebook.workbook import Column, ColumnKind, Row, Sheet, Workbook

# (sheet_id, row_id, column_id)
CellKey = tuple[str, str, str]

# Per-pass memo of evaluated formula cells.  Errors are stored too so a
# failing cell is not re-evaluated by every dependent.
EvaluationCache = dict[CellKey, "CellValue | FormulaError"]


@dataclass(frozen=True)
class Frame:
    """The row a formula is being evaluated in."""

    sheet: Sheet
    row_index: int

    @property
    def row(self) -> Row:
        return self.sheet.rows[self.row_index]


def cell_label(sheet: Sheet, row: Row, column: Column) -> str:
    return f"{sheet.name}!{row.id}/{column.name}"


def cell_source(column: Column, row: Row) -> tuple[str | None, CellValue]:
    """Where a cell's value comes from.

    Precedence: a per-cell ``=`` formula, then a literal value, then the
    column formula of a formula column, then Empty.

    Returns:
        ``(formula_body, EMPTY)`` for formula cells, ``(None, value)`` otherwise.
    """
    raw = row.cells.get(column.id)
    if isinstance(raw, str) and raw.startswith("="):
        return raw[1:], EMPTY
    if raw is not None and raw != "":
        return None, to_cell_value(raw)
    if column.kind == ColumnKind.formula and column.formula:
        return strip_formula_prefix(column.formula), EMPTY
    return None, EMPTY


class ResolutionGuard:
    """Tracks the cells currently being evaluated in one evaluation.

    ``enter()`` pushes a cell and pops it on exit, so the visiting set only
    ever holds the active chain.
    """

    def __init__(self, max_depth: int) -> None:
        self.max_depth = max_depth
        self.visiting: set[CellKey] = set()
        self._stack: list[tuple[CellKey, str]] = []

    @property
    def depth(self) -> int:
        return len(self._stack)

    @contextmanager
    def enter(self, key: CellKey, label: str) -> Iterator[None]:
        if key in self.visiting:
            start = next(i for i, (k, _) in enumerate(self._stack) if k == key)
            raise FormulaCycleError([lbl for _, lbl in self._stack[start:]] + [label])
        if len(self._stack) >= self.max_depth:
            raise FormulaRecursionError(self.max_depth)
        self.visiting.add(key)
        self._stack.append((key, label))
        try:
            yield
        finally:
            self._stack.pop()
            self.visiting.discard(key)


class ReferenceResolver:
    """Resolve reference nodes for one evaluation.

    Args:
        workbook: The workbook snapshot.
        config: Engine options (settings-sheet convention, depth limit).
        evaluate_formula: Callback that parses and evaluates a formula body
            in a given frame; used for formula chaining.
        guard: Cycle/depth guard shared by the whole evaluation.
        cache: Optional per-pass memo of formula cells.
    """

    def __init__(
        self,
        workbook: Workbook,
        config: EngineConfig,
        evaluate_formula: Callable[[str, Frame], CellValue],
        guard: ResolutionGuard,
        cache: EvaluationCache | None = None,
    ) -> None:
        self._workbook = workbook
        self._config = config
        self._evaluate_formula = evaluate_formula
        self._guard = guard
        self._cache = cache

    def resolve(self, ref: Reference, frame: Frame | None) -> CellValue:
        if isinstance(ref, ColumnRef):
            if frame is None:
                raise FormulaRefError(f"unknown column: {ref.name}")
            return self.column_value(frame.sheet, frame.row_index, ref.name)
        if isinstance(ref, PrevRowRef):
            if frame is None or frame.row_index == 0:
                raise FormulaRefError("no previous row")
            return self.column_value(frame.sheet, frame.row_index - 1, ref.column)
        if isinstance(ref, SettingsRef):
            return self.setting_value(ref.key)
        if isinstance(ref, CrossSheetRef):
            return self.cross_sheet_value(ref)
        raise FormulaError(f"Unknown reference type: {type(ref).__name__}")

    def column_value(self, sheet: Sheet, row_index: int, name: str) -> CellValue:
        column = sheet.column_by_name(name)
        if column is None:
            raise FormulaRefError(f"unknown column: {name}")
        return self.cell_value(sheet, row_index, column)

    def setting_value(self, key: str) -> CellValue:
        sheet_name = self._config.settings_sheet
        sheet = self._workbook.sheet_by_name(sheet_name)
        if sheet is None:
            raise FormulaRefError(f"no {sheet_name} sheet")

        key_col = self._settings_column(sheet, self._config.settings_key_column, 0)
        value_col = self._settings_value_column(sheet)
        for index, row in enumerate(sheet.rows):
            raw = row.cells.get(key_col.id)
            if raw is None:
                continue
            label = format_number(float(raw)) if isinstance(raw, (int, float)) else str(raw)
            if label == key:
                return self.cell_value(sheet, index, value_col)
        raise FormulaRefError(f"unknown setting: {key}")

    def _settings_column(self, sheet: Sheet, name: str | None, position: int) -> Column:
        if name is not None:
            column = sheet.column_by_name(name)
            if column is None:
                raise FormulaRefError(f"unknown column: {name} in sheet {sheet.name}")
            return column
        if len(sheet.columns) <= position:
            raise FormulaRefError(f"{sheet.name} sheet needs a key column and a value column")
        return sheet.columns[position]

    def _settings_value_column(self, sheet: Sheet) -> Column:
        if self._config.settings_value_column is None:
            named = next((c for c in sheet.columns if c.name.lower() == "value"), None)
            if named is not None:
                return named
        return self._settings_column(sheet, self._config.settings_value_column, 1)

    def cross_sheet_value(self, ref: CrossSheetRef) -> CellValue:
        sheet = self._workbook.sheet_by_name(ref.sheet)
        if sheet is None:
            raise FormulaRefError(f"unknown sheet: {ref.sheet}")
        row_index = sheet.find_row(ref.row)
        if row_index is None:
            raise FormulaRefError(f"unknown row: {ref.row} in sheet {ref.sheet}")
        column = sheet.column_by_name(ref.column)
        if column is None:
            raise FormulaRefError(f"unknown column: {ref.column} in sheet {ref.sheet}")
        return self.cell_value(sheet, row_index, column)

    def cell_value(self, sheet: Sheet, row_index: int, column: Column) -> CellValue:
        """Value of one cell, evaluating its formula if it has one."""
        row = sheet.rows[row_index]
        body, literal = cell_source(column, row)
        if body is None:
            return literal

        key: CellKey = (sheet.id, row.id, column.id)
        if self._cache is not None and key in self._cache:
            cached = self._cache[key]
            if isinstance(cached, FormulaError):
                raise cached
            return cached

        try:
            with self._guard.enter(key, cell_label(sheet, row, column)):
                value = self._evaluate_formula(body, Frame(sheet, row_index))
        except FormulaRecursionError:
            # Depends on where the chain was entered; never memoized.
            raise
        except FormulaError as exc:
            if self._cache is not None:
                self._cache[key] = exc
            raise
        if self._cache is not None:
            self._cache[key] = value
        return value
