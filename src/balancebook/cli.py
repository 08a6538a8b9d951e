"""Command-line interface for balancebook."""

from __future__ import annotations

import json
from pathlib import Path

import click

from balancebook import __version__
from balancebook.config import ConfigError, EngineConfig, load_engine_config
from balancebook.logging.events import set_log_dir
from balancebook.workbook import WorkbookError, load_workbook


@click.group()
@click.version_option(version=__version__, prog_name="balancebook")
def main() -> None:
    """balancebook -- formula engine for game-balance spreadsheets."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _load_config(config_path: str | None) -> EngineConfig:
    try:
        config = load_engine_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))
    if config.log_dir:
        set_log_dir(config.log_dir)
    return config


def _load_workbook(path: str):
    try:
        return load_workbook(path)
    except WorkbookError as e:
        raise click.ClickException(str(e))


def _echo_rows(headers: list[str], rows: list[list[str]]) -> None:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    click.echo("  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip())
    for row in rows:
        click.echo("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())


# ---------------------------------------------------------------------------
# Eval / check
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("formula")
@click.option("--workbook", "workbook_path", default=None, type=click.Path(exists=True), help="Workbook YAML file.")
@click.option("--sheet", "sheet_name", default=None, help="Sheet the formula runs in.")
@click.option("--row", "row_id", default=None, help="Row id (defaults to the first row).")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="Config file or directory.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def eval_cmd(
    formula: str,
    workbook_path: str | None,
    sheet_name: str | None,
    row_id: str | None,
    config_path: str | None,
    as_json: bool,
) -> None:
    """Evaluate FORMULA, optionally in a workbook row."""
    from balancebook.formulas.evaluator import Evaluator
    from balancebook.workbook import EvalContext

    config = _load_config(config_path)
    context = None
    if workbook_path:
        workbook = _load_workbook(workbook_path)
        if not sheet_name:
            raise click.ClickException("--sheet is required with --workbook")
        sheet = workbook.get_sheet(sheet_name)
        if sheet is None:
            raise click.ClickException(f"Sheet not found: {sheet_name}")
        if row_id is None:
            if not sheet.rows:
                raise click.ClickException(f"Sheet {sheet_name} has no rows")
            row_id = sheet.rows[0].id
        context = EvalContext(workbook, sheet.id, row_id)
    elif sheet_name or row_id:
        raise click.ClickException("--sheet and --row require --workbook")

    result = Evaluator(config=config).evaluate(formula, context)
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo(result.display())
        for w in result.warnings:
            click.echo(f"  Warning: {w}", err=True)
    if not result.ok:
        raise SystemExit(1)


@main.command()
@click.argument("formula")
def check(formula: str) -> None:
    """Check FORMULA syntax without evaluating it."""
    from balancebook.formulas.parser import validate_formula

    ok, error = validate_formula(formula)
    if ok:
        click.echo("OK")
        return
    click.echo(f"Error: {error}", err=True)
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


@main.command()
@click.option("--category", default=None, help="Only list one category.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def functions(category: str | None, as_json: bool) -> None:
    """List the formula function library."""
    from balancebook.formulas.library import CATEGORIES, default_registry

    if category is not None and category not in CATEGORIES:
        raise click.ClickException(
            f"Unknown category: {category}. Choose from: {', '.join(CATEGORIES)}"
        )
    infos = default_registry().metadata(category)
    if as_json:
        out = [
            {
                "name": i.name,
                "category": i.category,
                "syntax": i.syntax,
                "example": i.example,
                "description": i.description,
            }
            for i in infos
        ]
        click.echo(json.dumps(out, indent=2))
        return

    current = None
    for info in infos:
        if info.category != current:
            current = info.category
            click.echo(f"{current}:")
        click.echo(f"  {info.syntax:45s} {info.description}")


# ---------------------------------------------------------------------------
# Compute
# ---------------------------------------------------------------------------


@main.command()
@click.argument("workbook_path", type=click.Path(exists=True))
@click.option("--sheet", "sheet_name", required=True, help="Sheet to recalculate.")
@click.option("--csv", "csv_path", default=None, type=click.Path(), help="Write the computed sheet as CSV.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="Config file or directory.")
def compute(workbook_path: str, sheet_name: str, csv_path: str | None, config_path: str | None) -> None:
    """Recalculate every formula cell of a sheet."""
    from balancebook.compute import compute_sheet
    from balancebook.formulas.evaluator import Evaluator

    config = _load_config(config_path)
    workbook = _load_workbook(workbook_path)
    try:
        computed = compute_sheet(workbook, sheet_name, evaluator=Evaluator(config=config))
    except KeyError as e:
        raise click.ClickException(str(e.args[0]))

    if csv_path:
        computed.to_frame().write_csv(Path(csv_path))
        click.echo(f"Wrote {len(computed.sheet.rows)} rows to {csv_path}")
    else:
        headers = [c.name for c in computed.sheet.columns]
        rows = [[r[h] for h in headers] for r in computed.display_rows()]
        _echo_rows(headers, rows)

    errors = computed.errors
    if errors:
        click.echo(f"{len(errors)} formula error(s)", err=True)


# ---------------------------------------------------------------------------
# Curve
# ---------------------------------------------------------------------------


@main.command()
@click.argument("base", type=float)
@click.argument("rate", type=float)
@click.option("--type", "curve", default="linear", help="linear, exponential, logarithmic, quadratic or scurve.")
@click.option("--max-level", default=100, type=click.IntRange(min=1), help="Last level.")
@click.option("--compare", is_flag=True, help="Compare the four standard curves.")
@click.option("--csv", "csv_path", default=None, type=click.Path(), help="Write the table as CSV.")
def curve(base: float, rate: float, curve: str, max_level: int, compare: bool, csv_path: str | None) -> None:
    """Print a level/value growth table for BASE and RATE."""
    from balancebook.curves import generate_curve_data, generate_multiple_curve_data
    from balancebook.values import format_number

    if compare:
        df = generate_multiple_curve_data(base, rate, max_level)
    else:
        df = generate_curve_data(base, rate, curve, max_level)

    if csv_path:
        df.write_csv(Path(csv_path))
        click.echo(f"Wrote {df.height} rows to {csv_path}")
        return
    rows = [
        [str(record["level"])] + [format_number(v) for k, v in record.items() if k != "level"]
        for record in df.iter_rows(named=True)
    ]
    _echo_rows(df.columns, rows)


if __name__ == "__main__":
    main()
