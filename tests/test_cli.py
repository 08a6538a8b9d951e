"""Tests for the balancebook command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import polars as pl
import pytest
from click.testing import CliRunner

from balancebook import __version__
from balancebook.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestEvalCommand:
    def test_plain_formula(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["eval", "1 + 2 * 3"])
        assert result.exit_code == 0, result.output
        assert "Result: 7" in result.output

    def test_error_exits_nonzero(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["eval", "1/0"])
        assert result.exit_code == 1
        assert "Error: result is infinite" in result.output

    def test_workbook_row(self, runner: CliRunner, workbook_file: Path) -> None:
        result = runner.invoke(main, [
            "eval", "Power",
            "--workbook", str(workbook_file),
            "--sheet", "Characters",
            "--row", "mage",
        ])
        assert result.exit_code == 0, result.output
        assert "Result: 310" in result.output

    def test_first_row_by_default(self, runner: CliRunner, workbook_file: Path) -> None:
        result = runner.invoke(main, [
            "eval", "ATK", "--workbook", str(workbook_file), "--sheet", "Characters",
        ])
        assert result.exit_code == 0, result.output
        assert "Result: 100" in result.output

    def test_warnings_are_printed(self, runner: CliRunner, workbook_file: Path) -> None:
        result = runner.invoke(main, [
            "eval", "Tag + 1",
            "--workbook", str(workbook_file),
            "--sheet", "Characters",
            "--row", "mage",
        ])
        assert result.exit_code == 0, result.output
        assert "Result: 43" in result.output
        assert "Warning: text '42' used as a number" in result.output

    def test_json(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["eval", "DAMAGE(100, 0, 2)", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data == {"value": 200.0, "error": None, "error_code": None, "warnings": []}

    def test_sheet_requires_workbook(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["eval", "1", "--sheet", "Characters"])
        assert result.exit_code != 0
        assert "require --workbook" in result.output

    def test_workbook_requires_sheet(self, runner: CliRunner, workbook_file: Path) -> None:
        result = runner.invoke(main, ["eval", "1", "--workbook", str(workbook_file)])
        assert result.exit_code != 0
        assert "--sheet is required" in result.output

    def test_config_log_dir(self, runner: CliRunner, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        config = tmp_path / "balancebook.yaml"
        config.write_text(f"log_dir: {log_dir}\n")
        result = runner.invoke(main, ["eval", "NOPE", "--config", str(config)])
        assert result.exit_code == 1
        lines = (log_dir / "events.ndjson").read_text().strip().splitlines()
        events = [json.loads(line) for line in lines]
        assert [e["event_type"] for e in events] == ["formula_error"]
        assert events[0]["context"]["formula"] == "NOPE"

    def test_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "balancebook.yaml"
        config.write_text("max_depth: 0\n")
        result = runner.invoke(main, ["eval", "1", "--config", str(config)])
        assert result.exit_code != 0
        assert "Invalid configuration" in result.output


class TestCheckCommand:
    def test_ok(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["check", "=SCALE(100, Level, 1.1, \"exponential\")"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "OK"

    def test_syntax_error(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["check", "1 +"])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestFunctionsCommand:
    def test_category(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions", "--category", "stat"])
        assert result.exit_code == 0, result.output
        assert result.output.startswith("stat:")
        assert "SUM(a, b, ...)" in result.output
        assert "SCALE" not in result.output

    def test_json(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[0]["name"] == "SCALE"
        assert {"name", "category", "syntax", "example", "description"} == set(data[0])

    def test_unknown_category(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions", "--category", "magic"])
        assert result.exit_code != 0
        assert "Unknown category: magic" in result.output


class TestComputeCommand:
    def test_table(self, runner: CliRunner, workbook_file: Path) -> None:
        result = runner.invoke(main, ["compute", str(workbook_file), "--sheet", "Characters"])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0].split() == [
            "Level", "ATK", "DEF", "Power", "Rating", "CurrentEXP", "CumulativeEXP", "Tag",
        ]
        assert lines[1].split() == ["1", "100", "20", "220", "22", "100", "100", "melee"]
        assert "2 formula error(s)" in result.output

    def test_csv(self, runner: CliRunner, workbook_file: Path, tmp_path: Path) -> None:
        out = tmp_path / "settings.csv"
        result = runner.invoke(main, [
            "compute", str(workbook_file), "--sheet", "Settings", "--csv", str(out),
        ])
        assert result.exit_code == 0, result.output
        assert "Wrote 3 rows" in result.output
        df = pl.read_csv(out)
        assert df["Value"].to_list() == [50.0, 99.0, 12000.0]

    def test_unknown_sheet(self, runner: CliRunner, workbook_file: Path) -> None:
        result = runner.invoke(main, ["compute", str(workbook_file), "--sheet", "Items"])
        assert result.exit_code != 0
        assert "Sheet not found" in result.output


class TestCurveCommand:
    def test_single_curve(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["curve", "100", "10", "--max-level", "3"])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0].split() == ["level", "value"]
        assert [line.split() for line in lines[1:]] == [["1", "110"], ["2", "120"], ["3", "130"]]

    def test_compare(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["curve", "100", "1", "--compare", "--max-level", "5"])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0].split() == [
            "level", "linear", "exponential", "logarithmic", "quadratic",
        ]

    def test_csv(self, runner: CliRunner, tmp_path: Path) -> None:
        out = tmp_path / "curve.csv"
        result = runner.invoke(main, [
            "curve", "100", "1.1", "--type", "exponential", "--max-level", "20", "--csv", str(out),
        ])
        assert result.exit_code == 0, result.output
        assert pl.read_csv(out).height == 20


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
