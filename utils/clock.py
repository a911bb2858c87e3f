"""Injectable clocks so time-based policy can be driven deterministically."""
import threading
from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall clock, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to. Used by tests and `replay`."""

    def __init__(self, start: datetime = None):
        if start is None:
            start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta = None, **kwargs) -> datetime:
        """Move forward by a timedelta or timedelta kwargs (minutes=5)."""
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += step
            return self._now

    def set(self, when: datetime):
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        with self._lock:
            self._now = when
