"""Workbook data model: sheets of ordered rows and named columns.

The engine only ever reads a workbook.  Models are frozen so one
snapshot can be shared by any number of evaluations.

Workbook documents are YAML::

    sheets:
      - name: Characters
        columns:
          - name: Level
          - name: ATK
          - name: DMG
            formula: "=DAMAGE(ATK, Settings.BASE_DEF)"
        rows:
          - {id: hero, cells: {Level: 1, ATK: 100}}
      - name: Monsters
        source: monsters.csv      # rows loaded with polars
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Union

import polars as pl
import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

CellData = Union[bool, int, float, str, None]

# Columns that identify a row for REF() lookups, in priority order.
ROW_ID_COLUMNS = ("ID", "id")
ROW_NAME_COLUMNS = ("name", "Name")


class WorkbookError(Exception):
    """Invalid workbook document or structure."""


class ColumnKind(str, Enum):
    general = "general"
    formula = "formula"


class Column(BaseModel):
    """A named sheet column.  Formula columns apply ``formula`` to every row
    that has no value of its own in this column."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: ColumnKind = ColumnKind.general
    formula: str | None = None


class Row(BaseModel):
    """A sheet row: column id → raw cell data.

    A string cell starting with ``=`` is a per-cell formula override.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    cells: dict[str, CellData] = Field(default_factory=dict)


class Sheet(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    columns: list[Column] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique(self) -> Sheet:
        names = [c.name for c in self.columns]
        if len(names) != len(set(names)):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Sheet {self.name!r}: duplicate column names {dupes}")
        ids = [c.id for c in self.columns]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Sheet {self.name!r}: duplicate column ids")
        row_ids = [r.id for r in self.rows]
        if len(row_ids) != len(set(row_ids)):
            dupes = sorted({r for r in row_ids if row_ids.count(r) > 1})
            raise ValueError(f"Sheet {self.name!r}: duplicate row ids {dupes}")
        return self

    def column_by_name(self, name: str) -> Column | None:
        return next((c for c in self.columns if c.name == name), None)

    def column_by_id(self, column_id: str) -> Column | None:
        return next((c for c in self.columns if c.id == column_id), None)

    def row_index(self, row_id: str) -> int | None:
        for index, row in enumerate(self.rows):
            if row.id == row_id:
                return index
        return None

    def find_row(self, identifier: str | int) -> int | None:
        """Locate a row for a cross-sheet lookup.

        Integers select by 0-based position.  Strings match, in order, the
        row id, an ``ID``/``id`` column value, then a ``name``/``Name``
        column value.
        """
        if isinstance(identifier, int):
            return identifier if 0 <= identifier < len(self.rows) else None

        index = self.row_index(identifier)
        if index is not None:
            return index
        for col_names in (ROW_ID_COLUMNS, ROW_NAME_COLUMNS):
            cols = [c for c in (self.column_by_name(n) for n in col_names) if c is not None]
            for index, row in enumerate(self.rows):
                for col in cols:
                    value = row.cells.get(col.id)
                    if value is not None and str(value) == identifier:
                        return index
        return None


class Workbook(BaseModel):
    model_config = ConfigDict(frozen=True)

    sheets: list[Sheet] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique(self) -> Workbook:
        names = [s.name for s in self.sheets]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate sheet names: {sorted({n for n in names if names.count(n) > 1})}")
        ids = [s.id for s in self.sheets]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate sheet ids")
        return self

    def sheet_by_name(self, name: str) -> Sheet | None:
        return next((s for s in self.sheets if s.name == name), None)

    def sheet_by_id(self, sheet_id: str) -> Sheet | None:
        return next((s for s in self.sheets if s.id == sheet_id), None)

    def get_sheet(self, key: str) -> Sheet | None:
        """Find a sheet by id, falling back to its name."""
        return self.sheet_by_id(key) or self.sheet_by_name(key)


@dataclass(frozen=True)
class EvalContext:
    """Where a formula is evaluated: a workbook snapshot plus the current cell.

    Attributes:
        workbook: The read-only workbook.
        sheet_id: Current sheet (id, or name as a fallback).
        row_id: Current row id.
        column_id: Optional column the formula belongs to; lets a formula
            that reads its own column fail fast as a cycle.
    """

    workbook: Workbook
    sheet_id: str
    row_id: str
    column_id: str | None = None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def sheet_from_frame(
    name: str,
    df: pl.DataFrame,
    *,
    sheet_id: str | None = None,
    columns: list[Column] | None = None,
) -> Sheet:
    """Build a sheet from a polars DataFrame.

    Headers become column names.  Columns already listed in *columns*
    keep their ids and kinds; other headers are appended as general
    columns.  Row ids come from an ``ID``/``id`` column when present.
    """
    cols = list(columns or [])
    by_name = {c.name: c for c in cols}
    for header in df.columns:
        if header not in by_name:
            col = Column(id=f"col{len(cols) + 1}", name=header)
            cols.append(col)
            by_name[header] = col

    id_header = next((h for h in ROW_ID_COLUMNS if h in df.columns), None)
    rows: list[Row] = []
    for index, record in enumerate(df.iter_rows(named=True)):
        row_id = str(record[id_header]) if id_header and record[id_header] is not None else f"row{index + 1}"
        cells = {by_name[h].id: v for h, v in record.items() if v is not None}
        rows.append(Row(id=row_id, cells=cells))

    return Sheet(id=sheet_id or name, name=name, columns=cols, rows=rows)


def _parse_columns(raw_columns: list[Any]) -> list[Column]:
    columns: list[Column] = []
    for index, raw in enumerate(raw_columns):
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, dict) or "name" not in raw:
            raise WorkbookError(f"Column {index + 1} must be a name or a mapping with 'name'")
        data = dict(raw)
        data.setdefault("id", f"col{index + 1}")
        if data.get("formula") and "kind" not in data:
            data["kind"] = ColumnKind.formula
        columns.append(Column(**data))
    return columns


def _parse_rows(raw_rows: list[Any], columns: list[Column], sheet_name: str) -> list[Row]:
    by_name = {c.name: c.id for c in columns}
    known_ids = {c.id for c in columns}
    rows: list[Row] = []
    for index, raw in enumerate(raw_rows):
        if not isinstance(raw, dict):
            raise WorkbookError(f"Sheet {sheet_name!r}: row {index + 1} must be a mapping")
        if "cells" in raw:
            row_id = str(raw.get("id", f"row{index + 1}"))
            raw_cells = raw["cells"] or {}
        else:
            row_id = f"row{index + 1}"
            raw_cells = raw
        cells: dict[str, CellData] = {}
        for key, value in raw_cells.items():
            if key in by_name:
                cells[by_name[key]] = value
            elif key in known_ids:
                cells[key] = value
            else:
                raise WorkbookError(
                    f"Sheet {sheet_name!r}: row {row_id!r} has a value for unknown column {key!r}"
                )
        rows.append(Row(id=row_id, cells=cells))
    return rows


def workbook_from_dict(data: dict[str, Any], base_dir: Path | None = None) -> Workbook:
    """Build a workbook from a parsed YAML/JSON document.

    Args:
        data: Document with a ``sheets`` list.
        base_dir: Directory that ``source:`` CSV paths are relative to.

    Raises:
        WorkbookError: On structural problems or failed validation.
    """
    base_dir = base_dir or Path(".")
    raw_sheets = data.get("sheets")
    if not isinstance(raw_sheets, list):
        raise WorkbookError("Workbook document must contain a 'sheets' list")

    sheets: list[Sheet] = []
    try:
        for raw in raw_sheets:
            if not isinstance(raw, dict) or "name" not in raw:
                raise WorkbookError("Each sheet needs a 'name'")
            name = str(raw["name"])
            sheet_id = str(raw.get("id", name))
            columns = _parse_columns(raw.get("columns") or [])
            if raw.get("source"):
                df = pl.read_csv(base_dir / raw["source"])
                sheet = sheet_from_frame(name, df, sheet_id=sheet_id, columns=columns)
                extra = _parse_rows(raw.get("rows") or [], sheet.columns, name)
                sheet = Sheet(id=sheet_id, name=name, columns=sheet.columns, rows=[*sheet.rows, *extra])
            else:
                rows = _parse_rows(raw.get("rows") or [], columns, name)
                sheet = Sheet(id=sheet_id, name=name, columns=columns, rows=rows)
            sheets.append(sheet)
        return Workbook(sheets=sheets)
    except ValueError as exc:
        # pydantic.ValidationError is a ValueError
        raise WorkbookError(str(exc)) from exc


def load_workbook(path: Path | str) -> Workbook:
    """Load a workbook from a YAML file."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise WorkbookError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise WorkbookError(f"{path} must contain a mapping")
    return workbook_from_dict(data, base_dir=path.parent)
