"""NDJSON event log on disk.

Each event is one line of ``<log_dir>/events.ndjson`` with sorted keys.
Several processes (a CLI run next to a long-lived host) may share a log
directory, so writes take an exclusive ``fcntl`` lock and reads a shared
one.  Where ``fcntl`` does not exist (Windows) locking is a no-op.

When ``max_bytes`` is set, a log that has grown past it is renamed to
``events.ndjson.1`` (replacing any older one) before the next write.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Iterator

from balancebook.logging.events import BalanceEvent

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None  # type: ignore[assignment]

EVENTS_FILENAME = "events.ndjson"

# Reads only look at the newest part of the file.
_TAIL_BYTES = 2 * 1024 * 1024
_MAX_READ_LIMIT = 2000


@contextmanager
def _locked(f: IO[Any], exclusive: bool) -> Iterator[None]:
    if fcntl is None:
        yield
        return
    fcntl.flock(f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    try:
        yield
    finally:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class EventSink:
    """Append-only event log in *log_dir*.

    Args:
        log_dir: Directory for ``events.ndjson``; created if missing.
        fsync: Force each write to disk.
        tail_bytes: How much of the end of the file ``read_events`` scans.
        max_bytes: Rotate the log once it exceeds this size.
    """

    def __init__(
        self,
        log_dir: Path,
        *,
        fsync: bool = False,
        tail_bytes: int | None = None,
        max_bytes: int | None = None,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._fsync = fsync
        self._tail_bytes = _TAIL_BYTES if tail_bytes is None else tail_bytes
        self._max_bytes = max_bytes

    @property
    def path(self) -> Path:
        return self.log_dir / EVENTS_FILENAME

    @property
    def rotated_path(self) -> Path:
        return self.log_dir / f"{EVENTS_FILENAME}.1"

    def write(self, event: BalanceEvent) -> None:
        record = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str)
        if self._max_bytes is not None:
            self._rotate_if_full()
        with open(self.path, "a", encoding="utf-8") as f, _locked(f, exclusive=True):
            f.write(record + "\n")
            f.flush()
            if self._fsync:
                os.fsync(f.fileno())

    def read_events(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        sheet: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Newest-first events from the current log file.

        Args:
            level: Keep only this level.
            event_type: Keep only this event type.
            sheet: Keep only events whose context names this sheet
                (``sheet`` for passes, ``sheet_id`` for formula failures).
            limit: Maximum number of events returned (capped at 2000).
        """
        wanted = []
        for event in reversed(self._tail()):
            if level and event.get("level") != level:
                continue
            if event_type and event.get("event_type") != event_type:
                continue
            if sheet is not None:
                ctx = event.get("context") or {}
                if sheet not in (ctx.get("sheet"), ctx.get("sheet_id")):
                    continue
            wanted.append(event)
            if len(wanted) >= min(limit, _MAX_READ_LIMIT):
                break
        return wanted

    def _rotate_if_full(self) -> None:
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return
        if size > self._max_bytes:
            os.replace(self.path, self.rotated_path)

    def _tail(self) -> list[dict[str, Any]]:
        """Parsed events from the end of the log; unreadable lines are dropped."""
        if not self.path.exists():
            return []
        with open(self.path, "rb") as f, _locked(f, exclusive=False):
            end = f.seek(0, os.SEEK_END)
            start = max(0, end - self._tail_bytes)
            f.seek(start)
            chunk = f.read()

        lines = chunk.decode("utf-8", errors="replace").splitlines()
        if start > 0:
            # the cut almost always lands mid-line
            lines = lines[1:]
        events: list[dict[str, Any]] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events
