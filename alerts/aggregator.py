"""Fatigue prevention: sliding-window throttling and grouping of related alerts."""
import logging
import threading
from datetime import timedelta

from models.alerts import AlertGroup

logger = logging.getLogger("alertengine.aggregator")


def rule_prefix(rule_name: str) -> str:
    """'cpu_high' -> 'cpu'; names without an underscore are their own prefix."""
    return rule_name.split("_", 1)[0]


class AlertAggregator:
    """Throttles repeated notifications per (rule, service) and groups related alerts."""

    def __init__(self, window=timedelta(minutes=15), max_count=3):
        if not isinstance(window, timedelta):
            window = timedelta(seconds=window)
        self.window = window
        self.max_count = max_count
        self._history = {}
        self._throttled = {}
        self._lock = threading.Lock()

    def should_throttle(self, rule_name, service, now) -> bool:
        key = (rule_name, service)
        cutoff = now - self.window
        with self._lock:
            history = [t for t in self._history.get(key, []) if t > cutoff]
            if len(history) >= self.max_count:
                self._history[key] = history
                self._throttled[key] = self._throttled.get(key, 0) + 1
                logger.info(f"Throttled {rule_name}/{service} ({len(history)} in last {self.window})")
                return True
            history.append(now)
            self._history[key] = history
            return False

    def throttled_count(self, rule_name, service) -> int:
        with self._lock:
            return self._throttled.get((rule_name, service), 0)

    def window_count(self, rule_name, service, now) -> int:
        cutoff = now - self.window
        with self._lock:
            return sum(1 for t in self._history.get((rule_name, service), []) if t > cutoff)

    def reset(self, rule_name, service):
        with self._lock:
            self._history.pop((rule_name, service), None)
            self._throttled.pop((rule_name, service), None)

    def group(self, alerts):
        """Group alerts by (service, rule-name prefix), largest groups first."""
        groups = {}
        for alert in alerts:
            key = (alert.service, rule_prefix(alert.rule_name))
            if key not in groups:
                groups[key] = AlertGroup(service=key[0], prefix=key[1])
            groups[key].members.append(alert)
        return sorted(groups.values(), key=lambda g: (-len(g.members), g.service, g.prefix))
