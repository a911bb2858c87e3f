"""Per-key mutual exclusion."""
import threading
from contextlib import contextmanager


class KeyedLock:
    """Hands out one lock per key so work on the same key never overlaps.

    Locks are created lazily and kept for the process lifetime; the key
    space is bounded by the rule set.
    """

    def __init__(self):
        self._locks = {}
        self._guard = threading.Lock()

    def _get(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key):
        lock = self._get(key)
        with lock:
            yield

    def __len__(self):
        with self._guard:
            return len(self._locks)
