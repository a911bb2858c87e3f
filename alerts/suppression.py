"""Time-bounded suppressions keyed by (rule, target)."""
import logging
from datetime import timedelta

from utils.cache import TTLCache

logger = logging.getLogger("alertengine.suppression")


class SuppressionManager:
    def __init__(self, clock=None):
        self._entries = TTLCache(clock)

    @property
    def clock(self):
        return self._entries.clock

    def suppress(self, rule_name, target, duration, now=None, reason=""):
        """Block notifications for (rule_name, target) for `duration`. Returns expiry."""
        if not isinstance(duration, timedelta):
            duration = timedelta(seconds=duration)
        expires = self._entries.set((rule_name, target), reason, duration, now=now)
        logger.info(f"Suppressed {rule_name}/{target} until {expires.isoformat()}")
        return expires

    def is_suppressed(self, rule_name, target, now=None) -> bool:
        return self._entries.get((rule_name, target), now=now) is not None

    def expire(self, rule_name, target) -> bool:
        """Lift a suppression early."""
        removed = self._entries.invalidate((rule_name, target))
        if removed:
            logger.info(f"Suppression lifted for {rule_name}/{target}")
        return removed

    def sweep(self, now=None) -> int:
        return self._entries.sweep(now)

    def active(self, now=None):
        """[(rule_name, target, expires_at, reason)] for unexpired suppressions."""
        return [(key[0], key[1], expires, reason)
                for key, reason, expires in self._entries.items(now)]
