"""Tests for suppression windows and the TTL store behind them."""
from datetime import timedelta

import pytest

from alerts.suppression import SuppressionManager
from utils.cache import TTLCache
from utils.clock import ManualClock
from conftest import MONDAY_NOON


def test_suppressed_for_one_hour(clock):
    sup = SuppressionManager(clock)
    expires = sup.suppress("cpu_high", "api", timedelta(hours=1), reason="maintenance")
    assert expires == MONDAY_NOON + timedelta(hours=1)

    clock.advance(minutes=59)
    assert sup.is_suppressed("cpu_high", "api")

    clock.advance(minutes=1)
    assert not sup.is_suppressed("cpu_high", "api")


def test_suppression_is_per_target(clock):
    sup = SuppressionManager(clock)
    sup.suppress("cpu_high", "api", 600)
    assert sup.is_suppressed("cpu_high", "api")
    assert not sup.is_suppressed("cpu_high", "web")
    assert not sup.is_suppressed("memory_pressure", "api")


def test_resuppress_extends(clock):
    sup = SuppressionManager(clock)
    sup.suppress("cpu_high", "api", timedelta(minutes=10))
    clock.advance(minutes=5)
    sup.suppress("cpu_high", "api", timedelta(minutes=10))
    clock.advance(minutes=9)
    assert sup.is_suppressed("cpu_high", "api")


def test_expire_early(clock):
    sup = SuppressionManager(clock)
    sup.suppress("cpu_high", "api", timedelta(hours=1))
    assert sup.expire("cpu_high", "api")
    assert not sup.is_suppressed("cpu_high", "api")
    assert not sup.expire("cpu_high", "api")


def test_active_lists_live_entries(clock):
    sup = SuppressionManager(clock)
    sup.suppress("cpu_high", "api", timedelta(hours=1), reason="deploy")
    sup.suppress("queue_backlog", "worker", timedelta(minutes=1))
    clock.advance(minutes=2)
    active = sup.active()
    assert active == [("cpu_high", "api", MONDAY_NOON + timedelta(hours=1), "deploy")]
    assert sup.sweep() == 1


def test_explicit_now_overrides_clock(clock):
    sup = SuppressionManager(clock)
    sup.suppress("cpu_high", "api", timedelta(minutes=10))
    assert not sup.is_suppressed("cpu_high", "api", now=MONDAY_NOON + timedelta(minutes=10))


# ── TTLCache ────────────────────────────────────────────

def test_cache_expiry_follows_clock():
    clock = ManualClock(MONDAY_NOON)
    cache = TTLCache(clock)
    cache.set("k", "v", 30)
    assert cache.get("k") == "v"
    assert cache.expires_at("k") == MONDAY_NOON + timedelta(seconds=30)
    clock.advance(seconds=30)
    assert cache.get("k") is None
    assert cache.expires_at("k") is None


def test_cache_rejects_non_positive_ttl():
    cache = TTLCache(ManualClock(MONDAY_NOON))
    with pytest.raises(ValueError):
        cache.set("k", "v", 0)


def test_cache_invalidate_and_clear():
    cache = TTLCache(ManualClock(MONDAY_NOON))
    cache.set("a", 1, 60)
    cache.set("b", 2, 60)
    assert cache.invalidate("a")
    assert not cache.invalidate("a")
    cache.clear()
    assert cache.items() == []
