"""Shared test fixtures."""
import os
import sys
import threading
import pytest
from datetime import datetime, timedelta, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alerts.router import NotificationRouter, BusinessHours
from alerts.rule_store import RuleStore
from models.alerts import AlertRule, Condition
from models.enums import Severity
from monitor.metric_source import StaticMetricSource
from utils.clock import ManualClock

# Monday, inside the default 09:00-18:00 window
MONDAY_NOON = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingChannel:
    """Channel double: remembers every alert, optionally fails or stalls."""

    def __init__(self, name="test", fail=False, error=None, delay=0.0):
        self.name = name
        self.fail = fail
        self.error = error
        self.delay = delay
        self.sent = []
        self._lock = threading.Lock()

    def send(self, alert):
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error:
            raise self.error
        with self._lock:
            self.sent.append(alert)
        return not self.fail

    @property
    def rule_names(self):
        with self._lock:
            return [a.rule_name for a in self.sent]


def make_rule(name="cpu_high", metric="cpu", operator=">", threshold=90, duration=timedelta(minutes=5),
              severity=Severity.CRITICAL, service="api", **extra):
    labels = extra.pop("labels", {"service": service} if service else {})
    return AlertRule(
        name=name,
        metric=metric,
        condition=Condition(operator=operator, threshold=threshold, duration=duration),
        severity=severity,
        labels=labels,
        annotations=extra.pop("annotations", {"summary": f"{name} summary"}),
        selector=extra.pop("selector", {}),
    )


@pytest.fixture
def clock():
    return ManualClock(MONDAY_NOON)


@pytest.fixture
def source():
    return StaticMetricSource()


@pytest.fixture
def channels():
    return {name: RecordingChannel(name) for name in ("chat", "email", "im", "console")}


@pytest.fixture
def router(channels):
    r = NotificationRouter(channels, BusinessHours(), fallback_channel="console",
                           channel_timeout=0.5, dispatch_deadline=1.0)
    yield r
    r.close()


@pytest.fixture
def rule_factory():
    return make_rule


@pytest.fixture
def cpu_rule():
    return make_rule()


@pytest.fixture
def store(cpu_rule):
    return RuleStore([cpu_rule])
