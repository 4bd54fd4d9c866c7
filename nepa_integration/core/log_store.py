"""Append-only store for the monitor's structured log entries.

Two pruning rules run on every insert: a hard cap on the number of entries
(oldest dropped first) and a retention cutoff (entries older than the
retention period are dropped). Queries return entries newest-first.
"""

import json
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, List, Optional

from nepa_integration.domain.models.monitoring import LogEntry, LogLevel

CSV_COLUMNS = [
    "timestamp", "level", "service", "operation", "message",
    "correlationId", "userId", "duration", "statusCode",
]
SECONDS_PER_DAY = 24 * 60 * 60


def _csv_field(value: object) -> str:
    return "" if value is None else str(value)


class LogStore:
    """Bounded, time-ordered collection of LogEntry records."""

    def __init__(
        self,
        max_entries: int = 10000,
        retention_days: float = 7.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_entries = max_entries
        self.retention_days = retention_days
        self._clock = clock
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def reconfigure(self, max_entries: int, retention_days: float) -> None:
        self.max_entries = max_entries
        self.retention_days = retention_days
        self._entries = deque(self._entries, maxlen=max_entries)
        self._prune_expired()

    def _cutoff(self) -> datetime:
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        return now - timedelta(seconds=self.retention_days * SECONDS_PER_DAY)

    def _prune_expired(self) -> None:
        cutoff = self._cutoff()
        while self._entries and self._entries[0].timestamp <= cutoff:
            self._entries.popleft()

    def append(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        self._prune_expired()

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> List[LogEntry]:
        """All entries in insertion (oldest-first) order."""
        return list(self._entries)

    def query(
        self,
        service: Optional[str] = None,
        level: Optional[LogLevel] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LogEntry]:
        """Filters entries; every criterion is optional.

        Returns newest first; entries sharing a timestamp come out in reverse
        insertion order.
        """
        level = LogLevel(level) if level is not None else None
        matches = [
            entry for entry in reversed(self._entries)
            if (service is None or entry.service == service)
            and (level is None or entry.level is level)
            and (start is None or entry.timestamp >= start)
            and (end is None or entry.timestamp <= end)
            and (correlation_id is None or entry.correlation_id == correlation_id)
        ]
        matches.sort(key=lambda entry: entry.timestamp, reverse=True)
        return matches[:limit] if limit else matches

    def recent_errors(self, service: str, limit: int) -> List[LogEntry]:
        return self.query(service=service, level=LogLevel.ERROR, limit=limit)

    def count(self, level: Optional[LogLevel] = None) -> int:
        if level is None:
            return len(self._entries)
        return sum(1 for entry in self._entries if entry.level is level)

    # --- Export ---

    def export_json(self) -> str:
        return json.dumps([entry.to_dict() for entry in self._entries], indent=2, default=str)

    def export_csv(self) -> str:
        rows = [",".join(CSV_COLUMNS)]
        for entry in self._entries:
            escaped_message = entry.message.replace('"', '""')
            rows.append(",".join([
                entry.timestamp.isoformat(),
                entry.level.value,
                entry.service,
                entry.operation,
                f'"{escaped_message}"',
                _csv_field(entry.correlation_id),
                _csv_field(entry.user_id),
                _csv_field(entry.duration),
                _csv_field(entry.status_code),
            ]))
        return "\n".join(rows)

    def export(self, fmt: str = "json") -> str:
        if fmt == "json":
            return self.export_json()
        if fmt == "csv":
            return self.export_csv()
        raise ValueError(f"Unsupported export format: {fmt!r}")
