"""Escalation tracking for alerts that stay firing."""
import logging
import threading
from datetime import timedelta

from models.alerts import EscalationRecord

logger = logging.getLogger("alertengine.escalation")


class EscalationManager:
    """Raises an alert's escalation level the longer it keeps firing.

    Level starts at 0 on the first fire and goes up by one each time more
    than `interval` has passed since the last step. The record is dropped
    on resolution, so a re-fire starts again from 0.

    `alert_count` counts notifications for the episode: the fire plus one
    per escalation step. Ticks where nothing changes are not counted.
    """

    def __init__(self, interval=timedelta(minutes=30)):
        if not isinstance(interval, timedelta):
            interval = timedelta(seconds=interval)
        self.interval = interval
        self._records = {}
        self._lock = threading.Lock()

    def record_fire(self, rule_name, service, now) -> EscalationRecord:
        key = (rule_name, service)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = EscalationRecord(rule_name=rule_name, service=service, level=0,
                                          last_escalation_time=now, alert_count=1)
                self._records[key] = record
                return record

            record.alert_count += 1
            self._step(record, now)
            return record

    def check(self, rule_name, service, now):
        """Advance the level of an alert that is still firing.

        Returns the record, or None when the alert has no escalation record
        (its fire was never recorded).
        """
        with self._lock:
            record = self._records.get((rule_name, service))
            if record is not None and self._step(record, now):
                record.alert_count += 1
            return record

    def _step(self, record, now) -> bool:
        if now - record.last_escalation_time <= self.interval:
            return False
        record.level += 1
        record.last_escalation_time = now
        logger.info(f"{record.rule_name}/{record.service} escalated to level {record.level}")
        return True

    def get_level(self, rule_name, service, now=None) -> int:
        with self._lock:
            record = self._records.get((rule_name, service))
            return record.level if record else 0

    def get(self, rule_name, service):
        with self._lock:
            return self._records.get((rule_name, service))

    def resolve(self, rule_name, service):
        with self._lock:
            return self._records.pop((rule_name, service), None)

    def active(self):
        with self._lock:
            return list(self._records.values())
