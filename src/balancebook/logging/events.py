"""Evaluation event schema and the module-level emit helpers.

Every event carries a UTC ``ts`` (ISO-8601, ``Z`` suffix) and a small
``context`` mapping: the formula text, sheet and row for evaluation
failures, pass statistics for ``sheet_computed``.  Emitting is always
safe: with no sink configured the event is dropped, and a sink failure
only produces a throttled note on stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    formula_error = "formula_error"
    formula_cycle = "formula_cycle"
    formula_recursion_limit = "formula_recursion_limit"
    sheet_computed = "sheet_computed"
    config_loaded = "config_loaded"


_EVENT_TYPE_BY_CODE: dict[str, EventType] = {
    "cycle_error": EventType.formula_cycle,
    "recursion_limit": EventType.formula_recursion_limit,
}


def event_type_for_error(error_code: str | None) -> EventType:
    """Event type an evaluation failure with *error_code* is logged under."""
    return _EVENT_TYPE_BY_CODE.get(error_code or "", EventType.formula_error)


# Long formulas are clipped so one pathological cell cannot bloat the log.
_CONTEXT_STR_LIMIT = 256
_CLIP_MARKER = "...[truncated]"


def trim_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy of *context* with strings over the limit clipped, recursing into dicts."""
    trimmed: dict[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, dict):
            value = trim_context(value)
        elif isinstance(value, str) and len(value) > _CONTEXT_STR_LIMIT:
            value = value[:_CONTEXT_STR_LIMIT] + _CLIP_MARKER
        trimmed[key] = value
    return trimmed


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class BalanceEvent(BaseModel):
    """One structured log record."""

    schema_version: int = 1
    ts: str = Field(default_factory=_timestamp)
    level: EventLevel
    event_type: EventType
    message: str = ""
    context: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Sink registration
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None


def set_log_dir(log_dir: Path | str | None) -> None:
    """Send events to ``<log_dir>/events.ndjson``; None turns logging off."""
    global _sink
    from balancebook.logging.sink import EventSink

    _sink = None if log_dir is None else EventSink(Path(log_dir))


def get_sink() -> Any:
    return _sink


# ---------------------------------------------------------------------------
# Emitting
# ---------------------------------------------------------------------------

_NOTE_INTERVAL_SECS = 60.0
_last_note: float = 0.0


def _note_failure(text: str) -> None:
    global _last_note
    now = time.monotonic()
    if now - _last_note < _NOTE_INTERVAL_SECS:
        return
    _last_note = now
    try:
        print(f"[balancebook] {text}", file=sys.stderr)
    except OSError:
        pass


def emit(event: BalanceEvent) -> None:
    """Hand *event* to the configured sink.  Never raises."""
    sink = _sink
    if sink is None:
        return
    try:
        sink.write(event.model_copy(update={"context": trim_context(event.context)}))
    except Exception:
        _note_failure(f"could not write log event: {traceback.format_exc()}")


def _emit_at(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
) -> None:
    emit(BalanceEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=context or {},
        error_code=error_code,
    ))


def emit_info(event_type: EventType, message: str, context: dict[str, Any] | None = None) -> None:
    _emit_at(EventLevel.info, event_type, message, context, None)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.warning, event_type, message, context, error_code)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.error, event_type, message, context, error_code)
