"""Per-rule alert lifecycle: pending, firing, resolved."""
import logging
import threading

from models.alerts import AlertInstance
from models.enums import AlertState, Outcome

logger = logging.getLogger("alertengine.state")


class AlertStateTracker:
    """Tracks one AlertInstance per rule while its condition holds.

    An instance is created in PENDING the first time the condition is true,
    promoted to FIRING once it has held for the rule's duration, and dropped
    the moment the condition is false. Missing readings leave it untouched.
    """

    def __init__(self):
        self._instances = {}
        self._no_data = {}
        self._resolved = {}
        self._lock = threading.Lock()

    def evaluate(self, rule, value, now) -> Outcome:
        holds = rule.condition.holds(value)
        with self._lock:
            self._no_data.pop(rule.name, None)
            instance = self._instances.get(rule.name)

            if not holds:
                if instance is None:
                    return Outcome.NOOP
                del self._instances[rule.name]
                instance.last_value = value
                if instance.state == AlertState.FIRING:
                    instance.state = AlertState.RESOLVED
                    self._resolved[rule.name] = instance
                    return Outcome.RESOLVED
                logger.debug(f"{rule.name}: pending instance cleared after {now - instance.start_time}")
                return Outcome.NOOP

            if instance is None:
                self._instances[rule.name] = AlertInstance(
                    rule_name=rule.name, start_time=now, last_value=value,
                )
                return Outcome.NOOP

            instance.last_value = value

            if instance.state == AlertState.PENDING and now - instance.start_time >= rule.condition.duration:
                instance.state = AlertState.FIRING
                instance.fired_at = now
                return Outcome.FIRED
            return Outcome.NOOP

    def no_data(self, rule, now) -> Outcome:
        """Record a tick without a reading; returns Outcome.NO_DATA."""
        with self._lock:
            self._no_data[rule.name] = self._no_data.get(rule.name, 0) + 1
        return Outcome.NO_DATA

    def no_data_streak(self, rule_name) -> int:
        with self._lock:
            return self._no_data.get(rule_name, 0)

    def take_resolved(self, rule_name):
        """Hand over an instance that just resolved; it is gone from the tracker after this."""
        with self._lock:
            return self._resolved.pop(rule_name, None)

    def get(self, rule_name):
        with self._lock:
            return self._instances.get(rule_name)

    def active(self):
        with self._lock:
            return list(self._instances.values())

    def remove(self, rule_name):
        with self._lock:
            return self._instances.pop(rule_name, None)

    def __len__(self):
        with self._lock:
            return len(self._instances)
