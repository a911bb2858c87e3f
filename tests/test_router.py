"""Tests for channel selection and concurrent dispatch."""
import time
from datetime import datetime, timezone

import pytest

from alerts.router import NotificationRouter, BusinessHours, CHAT, EMAIL, IM
from models.alerts import Alert
from models.enums import AlertKind, Severity
from conftest import MONDAY_NOON, RecordingChannel

SATURDAY_NOON = datetime(2024, 1, 6, 12, 0, tzinfo=timezone.utc)
MONDAY_NIGHT = datetime(2024, 1, 1, 22, 0, tzinfo=timezone.utc)


def _alert(severity=Severity.CRITICAL, name="cpu_high"):
    return Alert(rule_name=name, kind=AlertKind.FIRING, severity=severity,
                 labels={"service": "api"}, timestamp=MONDAY_NOON)


# ── routing ─────────────────────────────────────────────

@pytest.mark.parametrize("severity,expected", [
    (Severity.INFO, {CHAT}),
    (Severity.WARNING, {CHAT, IM}),
    (Severity.CRITICAL, {CHAT, EMAIL, IM}),
    (Severity.FATAL, {CHAT, EMAIL, IM}),
])
def test_base_channels_by_severity(router, severity, expected):
    assert router.route(_alert(severity), 0, MONDAY_NOON) == expected


def test_escalation_widens_channels(router):
    assert router.route(_alert(Severity.INFO), 1, MONDAY_NOON) == {CHAT, EMAIL}
    assert router.route(_alert(Severity.INFO), 2, MONDAY_NOON) == {CHAT, EMAIL, IM}


def test_off_hours_restricts_to_on_call(router):
    assert router.route(_alert(Severity.WARNING), 0, SATURDAY_NOON) == {IM}
    assert router.route(_alert(Severity.INFO), 2, MONDAY_NIGHT) == {IM}


def test_off_hours_critical_unrestricted(router):
    assert router.route(_alert(Severity.CRITICAL), 0, SATURDAY_NOON) == {CHAT, EMAIL, IM}
    assert router.route(_alert(Severity.FATAL), 0, MONDAY_NIGHT) == {CHAT, EMAIL, IM}


def test_business_hours_boundaries():
    hours = BusinessHours(9, 18)
    assert hours.contains(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
    assert hours.contains(datetime(2024, 1, 1, 17, 59, tzinfo=timezone.utc))
    assert not hours.contains(datetime(2024, 1, 1, 18, 0, tzinfo=timezone.utc))
    assert not hours.contains(datetime(2024, 1, 7, 12, 0, tzinfo=timezone.utc))


def test_business_hours_timezone():
    hours = BusinessHours(9, 18, timezone="America/New_York")
    # 12:00 UTC is 07:00 in New York in January
    assert not hours.contains(MONDAY_NOON)
    assert hours.contains(datetime(2024, 1, 1, 15, 0, tzinfo=timezone.utc))


def test_from_config():
    router = NotificationRouter.from_config({
        "business_hours": {"start_hour": 8, "end_hour": 20, "weekdays": [0, 1, 2, 3, 4, 5]},
        "on_call_channel": "chat",
        "fallback_channel": "console",
        "channel_timeout_seconds": 2,
        "dispatch_deadline_seconds": 4,
    }, {})
    try:
        assert router.on_call_channel == "chat"
        assert router.channel_timeout == 2
        assert router.business_hours.contains(SATURDAY_NOON)
        assert router.route(_alert(Severity.WARNING), 0, MONDAY_NIGHT) == {"chat"}
    finally:
        router.close()


# ── dispatch ────────────────────────────────────────────

def test_dispatch_to_all(router, channels):
    result = router.dispatch(_alert(), {CHAT, EMAIL, IM})
    assert result.success
    assert result.succeeded == [CHAT, EMAIL, IM]
    assert not result.fallback_used
    for name in (CHAT, EMAIL, IM):
        assert channels[name].rule_names == ["cpu_high"]
    assert channels["console"].sent == []


def test_dispatch_runs_channels_concurrently():
    slow = {n: RecordingChannel(n, delay=0.3) for n in (CHAT, EMAIL, IM)}
    router = NotificationRouter(slow, channel_timeout=2, dispatch_deadline=3)
    try:
        start = time.monotonic()
        result = router.dispatch(_alert(), {CHAT, EMAIL, IM})
        elapsed = time.monotonic() - start
    finally:
        router.close()
    assert result.success
    assert elapsed < 0.8


def test_slow_channel_times_out_others_delivered():
    chans = {CHAT: RecordingChannel(CHAT), EMAIL: RecordingChannel(EMAIL, delay=2.0),
             IM: RecordingChannel(IM)}
    router = NotificationRouter(chans, channel_timeout=0.3, dispatch_deadline=1.0)
    try:
        start = time.monotonic()
        result = router.dispatch(_alert(), {CHAT, EMAIL, IM})
        elapsed = time.monotonic() - start
    finally:
        router.close()
    assert elapsed < 1.0
    assert result.success
    assert result.succeeded == [CHAT, IM]
    assert result.failed == [EMAIL]
    assert "timed out" in result.results[EMAIL].error


def test_stalled_channel_does_not_starve_others_under_burst():
    chans = {CHAT: RecordingChannel(CHAT, delay=2.0), EMAIL: RecordingChannel(EMAIL),
             IM: RecordingChannel(IM)}
    router = NotificationRouter(chans, channel_timeout=0.3, dispatch_deadline=1.0, max_workers=4)
    try:
        futures = [router.dispatch_async(_alert(name=f"rule_{i}"), {CHAT, EMAIL, IM})
                   for i in range(12)]
        results = [f.result(timeout=10) for f in futures]
    finally:
        router.close()
    for result in results:
        assert result.succeeded == [EMAIL, IM]
        assert result.failed == [CHAT]
    assert len(chans[EMAIL].sent) == 12
    assert len(chans[IM].sent) == 12


def test_channel_exception_is_recorded(router, channels):
    channels[EMAIL].error = ConnectionError("smtp down")
    result = router.dispatch(_alert(), {CHAT, EMAIL})
    assert result.success
    assert result.results[EMAIL].error == "smtp down"
    assert result.results[CHAT].success


def test_channel_returning_false_is_failure(router, channels):
    channels[IM].fail = True
    result = router.dispatch(_alert(), {IM})
    assert not result.results[IM].success
    assert result.fallback_used


def test_all_fail_uses_fallback(router, channels):
    for name in (CHAT, EMAIL, IM):
        channels[name].error = RuntimeError(f"{name} broken")
    result = router.dispatch(_alert(), {CHAT, EMAIL, IM})
    assert not result.success
    assert result.fallback_used
    assert result.fallback_result.success
    assert channels["console"].rule_names == ["cpu_high"]


def test_all_fail_without_fallback_logs_critical(caplog):
    chans = {CHAT: RecordingChannel(CHAT, error=RuntimeError("nope"))}
    router = NotificationRouter(chans, fallback_channel=None)
    try:
        with caplog.at_level("CRITICAL", logger="alertengine.router"):
            result = router.dispatch(_alert(), {CHAT})
    finally:
        router.close()
    assert not result.success
    assert not result.fallback_used
    assert any("could not be delivered" in r.message for r in caplog.records)


def test_unknown_channel_not_configured(router):
    result = router.dispatch(_alert(), {"pager"})
    assert result.results["pager"].error == "channel not configured"
    assert result.fallback_used


def test_dispatch_async_returns_future(router, channels):
    future = router.dispatch_async(_alert(), [CHAT])
    result = future.result(timeout=2)
    assert result.succeeded == [CHAT]
    assert channels[CHAT].rule_names == ["cpu_high"]
