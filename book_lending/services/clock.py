from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall clock in naive UTC, matching how rental timestamps are stored."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    def __init__(self, current: datetime) -> None:
        self._current = current
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, current: datetime) -> None:
        with self._lock:
            self._current = current

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._current = self._current + delta
            return self._current


def to_storage_time(value: datetime) -> datetime:
    """Normalize a timestamp to naive UTC before it is written."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
