"""Structured JSONL event log for sync, scheduler, import and LLM activity."""

import fcntl
import json
import logging
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional

from .defaults import data_dir

logger = logging.getLogger(__name__)

EVENT_FILE_PREFIX = "events-"


class EventLog:
    """Appends one JSON object per line to a per-day file.

    Writers in separate processes (daemon and CLI) share the files, so each
    append holds an exclusive flock. Recording never raises.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = base_dir or data_dir() / "events"
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, day: date) -> Path:
        return self.base_dir / f"{EVENT_FILE_PREFIX}{day.isoformat()}.jsonl"

    def record(self, event: str, **fields: Any) -> None:
        """Append an event, e.g. record("sync.feed.complete", feed_id=..., items_written=3)."""
        now = datetime.now(timezone.utc)
        line = json.dumps({"ts": now.isoformat(), "event": event, **fields}, default=str)

        try:
            with open(self.path_for(now.date()), "a", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.write(line + "\n")
                    f.flush()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            print(f"[events] Could not record '{event}': {e}", file=sys.stderr)

    def read(self, day: Optional[date] = None) -> List[dict]:
        """Events recorded on a UTC day (today by default); corrupt lines are skipped."""
        path = self.path_for(day or datetime.now(timezone.utc).date())
        if not path.exists():
            return []

        events = []
        for line in path.read_text(encoding="utf-8").splitlines():
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug(f"Skipping corrupt event line in {path.name}")
        return events

    def prune(self, retention_days: int = 30, today: Optional[date] = None) -> int:
        """Delete day files older than the retention window.

        Returns:
            Number of files removed
        """
        cutoff = (today or datetime.now(timezone.utc).date()) - timedelta(days=retention_days)
        removed = 0

        for path in self.base_dir.glob(f"{EVENT_FILE_PREFIX}*.jsonl"):
            try:
                day = date.fromisoformat(path.stem[len(EVENT_FILE_PREFIX):])
            except ValueError:
                continue
            if day >= cutoff:
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Could not remove event file {path}: {e}")

        return removed


_event_log: Optional[EventLog] = None


def get_event_log() -> EventLog:
    """Process-wide EventLog, created on first use."""
    global _event_log
    if _event_log is None:
        _event_log = EventLog()
    return _event_log


def reset_event_log() -> None:
    """Forget the shared EventLog so the next use re-reads XDG paths."""
    global _event_log
    _event_log = None


def log(event: str, **fields: Any) -> None:
    get_event_log().record(event, **fields)
