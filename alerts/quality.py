"""Alert quality counters and score."""
import logging
import threading

logger = logging.getLogger("alertengine.quality")


class QualityMetricsCollector:
    """In-memory counters of raised, resolved and false-positive alerts.

    score = (1 - false_positives/total) * (resolved/total) * 100, and 100
    when nothing has fired yet (no alerts counts as a clean record).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.total_alerts = 0
        self.resolved_alerts = 0
        self.false_positives = 0
        self.total_resolution_ms = 0
        self.by_severity = {}
        self.by_service = {}

    def record_fire(self, alert):
        with self._lock:
            self.total_alerts += 1
            sev = alert.severity.value
            self.by_severity[sev] = self.by_severity.get(sev, 0) + 1
            self.by_service[alert.service] = self.by_service.get(alert.service, 0) + 1

    def record_resolution(self, alert, resolution_ms, was_false_positive=False):
        with self._lock:
            self.resolved_alerts += 1
            self.total_resolution_ms += max(0, int(resolution_ms))
            if was_false_positive:
                self.false_positives += 1

    def mark_false_positive(self, alert=None):
        """Operator feedback: an alert that fired should not have."""
        with self._lock:
            self.false_positives += 1
        logger.info(f"Marked false positive: {getattr(alert, 'rule_name', alert)}")

    def average_resolution_ms(self) -> float:
        with self._lock:
            if self.resolved_alerts == 0:
                return 0.0
            return self.total_resolution_ms / self.resolved_alerts

    def score(self) -> float:
        with self._lock:
            if self.total_alerts == 0:
                return 100.0
            precision = 1 - self.false_positives / self.total_alerts
            completeness = self.resolved_alerts / self.total_alerts
            return max(0.0, min(100.0, precision * completeness * 100))

    def snapshot(self) -> dict:
        score = self.score()
        avg = self.average_resolution_ms()
        with self._lock:
            return {
                "total_alerts": self.total_alerts,
                "resolved_alerts": self.resolved_alerts,
                "false_positives": self.false_positives,
                "average_resolution_ms": avg,
                "by_severity": dict(self.by_severity),
                "by_service": dict(self.by_service),
                "score": score,
            }
