"""Tests for the balancebook structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def sink(log_dir: Path):
    from balancebook.logging.sink import EventSink

    return EventSink(log_dir)


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestBalanceEvent:
    def test_event_defaults(self):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType

        evt = BalanceEvent(
            level=EventLevel.info,
            event_type=EventType.sheet_computed,
            message="hello",
        )
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "sheet_computed"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self):
        from balancebook.logging.events import EventType

        expected = {
            "formula_error",
            "formula_cycle",
            "formula_recursion_limit",
            "sheet_computed",
            "config_loaded",
        }
        assert {e.value for e in EventType} == expected

    @pytest.mark.parametrize(
        "code, event_type",
        [
            ("cycle_error", "formula_cycle"),
            ("recursion_limit", "formula_recursion_limit"),
            ("reference_error", "formula_error"),
            (None, "formula_error"),
        ],
    )
    def test_event_type_for_error(self, code, event_type):
        from balancebook.logging.events import event_type_for_error

        assert event_type_for_error(code) == event_type

    def test_trim_context(self):
        from balancebook.logging.events import trim_context

        trimmed = trim_context({"formula": "A" * 1000, "nested": {"x": "B" * 300}, "n": 5})
        assert trimmed["formula"].endswith("...[truncated]")
        assert len(trimmed["formula"]) < 300
        assert trimmed["nested"]["x"].endswith("...[truncated]")
        assert trimmed["n"] == 5


# ---------------------------------------------------------------------------
# B) Filesystem NDJSON sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_creates_log(self, sink, log_dir):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType

        sink.write(BalanceEvent(
            level=EventLevel.info,
            event_type=EventType.sheet_computed,
            message="computed",
        ))

        lines = (log_dir / "events.ndjson").read_text().strip().splitlines()
        assert len(lines) == 1
        parsed = json.loads(lines[0])
        assert parsed["message"] == "computed"
        assert list(parsed.keys()) == sorted(parsed.keys())

    def test_read_most_recent_first(self, sink):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType

        for i in range(5):
            sink.write(BalanceEvent(
                level=EventLevel.info,
                event_type=EventType.sheet_computed,
                message=f"pass {i}",
            ))

        events = sink.read_events()
        assert [e["message"] for e in events] == [f"pass {i}" for i in range(4, -1, -1)]
        assert len(sink.read_events(limit=2)) == 2

    def test_filters(self, sink):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType

        sink.write(BalanceEvent(level=EventLevel.info, event_type=EventType.sheet_computed, message="ok"))
        sink.write(BalanceEvent(
            level=EventLevel.warning,
            event_type=EventType.formula_cycle,
            message="cycle",
            error_code="cycle_error",
        ))

        assert [e["message"] for e in sink.read_events(level="warning")] == ["cycle"]
        assert [e["message"] for e in sink.read_events(event_type="sheet_computed")] == ["ok"]

    def test_corrupt_lines_are_skipped(self, sink, log_dir):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType

        sink.write(BalanceEvent(level=EventLevel.info, event_type=EventType.sheet_computed, message="a"))
        with open(log_dir / "events.ndjson", "a") as f:
            f.write("{not json\n")
        sink.write(BalanceEvent(level=EventLevel.info, event_type=EventType.sheet_computed, message="b"))

        assert [e["message"] for e in sink.read_events()] == ["b", "a"]

    def test_sheet_filter(self, sink):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType

        sink.write(BalanceEvent(
            level=EventLevel.info,
            event_type=EventType.sheet_computed,
            message="pass",
            context={"sheet": "Characters"},
        ))
        sink.write(BalanceEvent(
            level=EventLevel.warning,
            event_type=EventType.formula_error,
            message="bad cell",
            context={"sheet_id": "Characters", "row_id": "rogue"},
        ))
        sink.write(BalanceEvent(
            level=EventLevel.info,
            event_type=EventType.sheet_computed,
            message="other",
            context={"sheet": "Monsters"},
        ))

        assert [e["message"] for e in sink.read_events(sheet="Characters")] == ["bad cell", "pass"]

    def test_rotation(self, log_dir):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType
        from balancebook.logging.sink import EventSink

        sink = EventSink(log_dir, max_bytes=100)
        for i in range(3):
            sink.write(BalanceEvent(level=EventLevel.info, event_type=EventType.sheet_computed, message=f"m{i}"))

        assert sink.rotated_path.exists()
        assert [e["message"] for e in sink.read_events()] == ["m2"]

    def test_read_missing_log_returns_empty(self, sink):
        assert sink.read_events() == []

    def test_tail_read_bounds_memory(self, log_dir):
        from balancebook.logging.events import BalanceEvent, EventLevel, EventType
        from balancebook.logging.sink import EventSink

        sink = EventSink(log_dir, tail_bytes=400)
        for i in range(20):
            sink.write(BalanceEvent(level=EventLevel.info, event_type=EventType.sheet_computed, message=f"m{i}"))

        events = sink.read_events()
        assert 0 < len(events) < 20
        assert events[0]["message"] == "m19"


# ---------------------------------------------------------------------------
# C) Module-level emit helpers (safety)
# ---------------------------------------------------------------------------


class TestEmitHelpers:
    def test_emit_without_sink_is_noop(self):
        from balancebook.logging.events import EventType, emit_info, get_sink

        assert get_sink() is None
        emit_info(EventType.sheet_computed, "discarded")

    def test_set_log_dir_enables_logging(self, log_dir):
        from balancebook.logging.events import EventType, emit_info, set_log_dir

        set_log_dir(log_dir)
        emit_info(EventType.sheet_computed, "hello from test")

        lines = (log_dir / "events.ndjson").read_text().strip().splitlines()
        assert len(lines) == 1
        assert "hello from test" in lines[0]

    def test_set_log_dir_none_disables(self, log_dir):
        from balancebook.logging.events import get_sink, set_log_dir

        set_log_dir(log_dir)
        set_log_dir(None)
        assert get_sink() is None

    def test_emit_error_sets_error_code(self, log_dir):
        from balancebook.logging.events import EventType, emit_error, get_sink, set_log_dir

        set_log_dir(log_dir)
        emit_error(EventType.formula_recursion_limit, "too deep", error_code="recursion_limit")

        [parsed] = get_sink().read_events()
        assert parsed["error_code"] == "recursion_limit"
        assert parsed["level"] == "error"

    def test_emit_trims_context(self, log_dir):
        from balancebook.logging.events import EventType, emit_warning, get_sink, set_log_dir

        set_log_dir(log_dir)
        emit_warning(EventType.formula_error, "bad", {"formula": "X" * 2000})

        [parsed] = get_sink().read_events()
        assert parsed["context"]["formula"].endswith("...[truncated]")

    def test_emit_never_raises(self, log_dir):
        import balancebook.logging.events as mod
        from balancebook.logging.events import EventType, emit_info

        class BrokenSink:
            def write(self, event):
                raise OSError("disk full")

        mod._sink = BrokenSink()
        emit_info(EventType.sheet_computed, "lost")
