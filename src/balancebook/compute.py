"""Whole-sheet recalculation.

Evaluates every formula cell of a sheet row by row, the way the grid's
recompute pass does.  A memo shared across the pass holds every formula
cell reached through a reference, so long ``PREV`` chains resolve in
constant depth instead of walking back to the first row every time.
The memo is discarded when the pass ends.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import polars as pl

from balancebook.formulas.evaluator import Evaluator
from balancebook.formulas.resolver import EvaluationCache, cell_source
from balancebook.logging.events import EventType, emit_info
from balancebook.values import CellValue, Empty, FormulaResult, Number
from balancebook.workbook import EvalContext, Sheet, Workbook

logger = logging.getLogger(__name__)


class ComputedSheet:
    """Computed values of one sheet.

    Attributes:
        sheet: The sheet that was computed.
        values: Row id → column name → value.  Failed formula cells are absent.
        results: ``(row_id, column_name)`` → result, for formula cells only.
    """

    def __init__(
        self,
        sheet: Sheet,
        values: dict[str, dict[str, CellValue]],
        results: dict[tuple[str, str], FormulaResult],
    ) -> None:
        self.sheet = sheet
        self.values = values
        self.results = results

    @property
    def errors(self) -> dict[tuple[str, str], str]:
        """``(row_id, column_name)`` → error message for failed formula cells."""
        return {key: r.error for key, r in self.results.items() if r.error is not None}

    def value(self, row_id: str, column_name: str) -> CellValue | None:
        return self.values.get(row_id, {}).get(column_name)

    def cell_text(self, row_id: str, column_name: str) -> str:
        result = self.results.get((row_id, column_name))
        if result is not None:
            return result.cell_text()
        value = self.value(row_id, column_name)
        return "" if value is None else str(value)

    def display_rows(self) -> list[dict[str, str]]:
        """Rows as column name → display text (``#ERR: ...`` for failures)."""
        names = [c.name for c in self.sheet.columns]
        return [
            {name: self.cell_text(row.id, name) for name in names}
            for row in self.sheet.rows
        ]

    def to_frame(self) -> pl.DataFrame:
        """Computed sheet as a polars DataFrame.

        All-numeric columns become ``Float64`` (Empty → null); any column
        holding text or an error becomes ``Utf8`` display text.
        """
        errors = self.errors
        data: dict[str, pl.Series] = {}
        for column in self.sheet.columns:
            cells = [self.value(row.id, column.name) for row in self.sheet.rows]
            failed = any((row.id, column.name) in errors for row in self.sheet.rows)
            numeric = not failed and all(
                isinstance(v, (Number, Empty)) or v is None for v in cells
            )
            if numeric:
                data[column.name] = pl.Series(
                    column.name,
                    [v.value if isinstance(v, Number) else None for v in cells],
                    dtype=pl.Float64,
                )
            else:
                data[column.name] = pl.Series(
                    column.name,
                    [self.cell_text(row.id, column.name) for row in self.sheet.rows],
                    dtype=pl.Utf8,
                )
        return pl.DataFrame(list(data.values()))


def compute_sheet(
    workbook: Workbook,
    sheet_name: str,
    *,
    evaluator: Evaluator | None = None,
    use_cache: bool = True,
) -> ComputedSheet:
    """Evaluate every cell of a sheet.

    Args:
        workbook: The workbook snapshot.
        sheet_name: Sheet name (or id).
        evaluator: Evaluator to use.  Defaults to ``Evaluator()``.
        use_cache: Share a memo across the pass.  Without it every cell is
            evaluated independently, exactly as a lone ``evaluate`` call would.

    Returns:
        A ``ComputedSheet``.

    Raises:
        KeyError: If the sheet does not exist.
    """
    sheet = workbook.get_sheet(sheet_name)
    if sheet is None:
        raise KeyError(f"Sheet not found: {sheet_name!r}")
    evaluator = evaluator or Evaluator()
    cache: EvaluationCache | None = {} if use_cache else None

    t0 = time.monotonic()
    values: dict[str, dict[str, CellValue]] = {}
    results: dict[tuple[str, str], FormulaResult] = {}
    for row in sheet.rows:
        row_values: dict[str, CellValue] = {}
        for column in sheet.columns:
            body, literal = cell_source(column, row)
            if body is None:
                row_values[column.name] = literal
                continue
            context = EvalContext(workbook, sheet.id, row.id, column.id)
            result = evaluator.evaluate(body, context, cache=cache)
            results[(row.id, column.name)] = result
            if result.ok and result.value is not None:
                row_values[column.name] = result.value
        values[row.id] = row_values
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    computed = ComputedSheet(sheet, values, results)
    error_count = len(computed.errors)
    logger.debug(
        "computed sheet %s: %d formula cells, %d errors in %.2f ms",
        sheet.name, len(results), error_count, elapsed_ms,
    )
    context_info: dict[str, Any] = {
        "sheet": sheet.name,
        "rows": len(sheet.rows),
        "formula_cells": len(results),
        "errors": error_count,
        "elapsed_ms": elapsed_ms,
    }
    emit_info(
        EventType.sheet_computed,
        f"Computed sheet {sheet.name}: {len(results)} formula cells, {error_count} errors",
        context_info,
    )
    return computed
