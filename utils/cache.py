"""Clock-driven TTL store."""
import threading
from datetime import timedelta

from utils.clock import SystemClock


class TTLCache:
    """Thread-safe key-value store with per-key expiry.

    Expiry is checked against the injected clock on every read, so an entry
    past its deadline is treated as absent even if nobody deleted it yet.
    """

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._store = {}
        self._lock = threading.Lock()

    def get(self, key, now=None):
        """Get value if exists and not expired."""
        now = now or self.clock.now()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if now >= entry["expires"]:
                del self._store[key]
                return None
            return entry["value"]

    def set(self, key, value, ttl, now=None):
        """Set key with a TTL given as timedelta or seconds."""
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        now = now or self.clock.now()
        with self._lock:
            self._store[key] = {"value": value, "expires": now + ttl}
            return now + ttl

    def expires_at(self, key):
        with self._lock:
            entry = self._store.get(key)
            return entry["expires"] if entry else None

    def invalidate(self, key):
        """Remove a specific key. Returns True if it was present."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def sweep(self, now=None):
        """Drop every expired entry; returns how many were removed."""
        now = now or self.clock.now()
        with self._lock:
            dead = [k for k, e in self._store.items() if now >= e["expires"]]
            for k in dead:
                del self._store[k]
            return len(dead)

    def items(self, now=None):
        """Live (key, value, expires) triples."""
        now = now or self.clock.now()
        with self._lock:
            return [(k, e["value"], e["expires"]) for k, e in self._store.items()
                    if now < e["expires"]]

    def clear(self):
        """Remove all entries."""
        with self._lock:
            self._store.clear()
