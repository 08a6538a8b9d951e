"""Shared fixtures: a small game-balance workbook."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from balancebook.workbook import EvalContext, Workbook, workbook_from_dict

GAME_WORKBOOK: dict[str, Any] = {
    "sheets": [
        {
            "name": "Characters",
            "columns": [
                {"name": "Level"},
                {"name": "ATK"},
                {"name": "DEF"},
                {"name": "Power", "formula": "=ATK * 2 + DEF"},
                {"name": "Rating", "formula": "=Power / 10"},
                {"name": "CurrentEXP"},
                {"name": "CumulativeEXP", "formula": "=IF(Level > 1, PREV.CumulativeEXP + CurrentEXP, CurrentEXP)"},
                {"name": "Tag"},
            ],
            "rows": [
                {"id": "hero", "cells": {"Level": 1, "ATK": 100, "DEF": 20, "CurrentEXP": 100, "Tag": "melee"}},
                {"id": "mage", "cells": {"Level": 2, "ATK": 150, "DEF": 10, "CurrentEXP": 250, "Tag": "42"}},
                {"id": "rogue", "cells": {"Level": 3, "ATK": 120, "DEF": "", "CurrentEXP": 400}},
            ],
        },
        {
            "name": "Monsters",
            "columns": ["ID", "name", "HP", "ATK"],
            "rows": [
                {"id": "m1", "cells": {"ID": "goblin", "name": "Goblin", "HP": 500, "ATK": 30}},
                {"id": "m2", "cells": {"ID": "orc", "name": "Orc", "HP": 1200, "ATK": 60}},
                {"id": "m3", "cells": {"ID": "ghost", "name": "Ghost", "ATK": 45}},
            ],
        },
        {
            "name": "Settings",
            "columns": ["Key", "Value", "Note"],
            "rows": [
                {"cells": {"Key": "BASE_DEF", "Value": 50}},
                {"cells": {"Key": "MAX_LEVEL", "Value": 99}},
                {"cells": {"Key": "BOSS_HP", "Value": "=REF(\"Monsters\", \"orc\", \"HP\") * 10"}},
            ],
        },
    ]
}


@pytest.fixture
def workbook() -> Workbook:
    return workbook_from_dict(GAME_WORKBOOK)


@pytest.fixture
def workbook_file(tmp_path: Path) -> Path:
    path = tmp_path / "game.yaml"
    path.write_text(yaml.safe_dump(GAME_WORKBOOK, sort_keys=False))
    return path


@pytest.fixture
def ctx(workbook: Workbook):
    """Factory: ``ctx("Characters", "hero")`` → EvalContext on the game workbook."""

    def make(sheet: str, row_id: str, column_id: str | None = None) -> EvalContext:
        return EvalContext(workbook=workbook, sheet_id=sheet, row_id=row_id, column_id=column_id)

    return make


@pytest.fixture(autouse=True)
def _no_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    import balancebook.logging.events as mod

    old_sink = mod._sink
    mod._sink = None
    yield
    mod._sink = old_sink
