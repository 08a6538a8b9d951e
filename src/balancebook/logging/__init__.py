"""Structured event logging for balancebook.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from balancebook.logging.events import (
    BalanceEvent,
    EventLevel,
    EventType,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    event_type_for_error,
    get_sink,
    set_log_dir,
    trim_context,
)
from balancebook.logging.sink import EventSink

__all__ = [
    "BalanceEvent",
    "EventLevel",
    "EventSink",
    "EventType",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "event_type_for_error",
    "get_sink",
    "set_log_dir",
    "trim_context",
]
