"""Channel selection and concurrent notification dispatch."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from zoneinfo import ZoneInfo

from models.alerts import ChannelResult, DispatchResult
from models.enums import Severity

logger = logging.getLogger("alertengine.router")

CHAT, EMAIL, IM = "chat", "email", "im"

BASE_CHANNELS = {
    Severity.INFO: {CHAT},
    Severity.WARNING: {CHAT, IM},
    Severity.CRITICAL: {CHAT, EMAIL, IM},
    Severity.FATAL: {CHAT, EMAIL, IM},
}


class BusinessHours:
    """Working window, e.g. 09:00-18:00 Monday to Friday in a given timezone."""

    def __init__(self, start_hour=9, end_hour=18, weekdays=(0, 1, 2, 3, 4), timezone="UTC"):
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.weekdays = frozenset(weekdays)
        self.tz = ZoneInfo(timezone)

    @classmethod
    def from_config(cls, cfg):
        cfg = cfg or {}
        return cls(
            start_hour=cfg.get("start_hour", 9),
            end_hour=cfg.get("end_hour", 18),
            weekdays=cfg.get("weekdays", (0, 1, 2, 3, 4)),
            timezone=cfg.get("timezone", "UTC"),
        )

    def contains(self, when) -> bool:
        local = when.astimezone(self.tz)
        return local.weekday() in self.weekdays and self.start_hour <= local.hour < self.end_hour


class NotificationRouter:
    """Picks channels for an alert and fans the send out in parallel.

    Each channel gets `channel_timeout` seconds; the whole dispatch gets
    `dispatch_deadline`. A channel that overruns is recorded as failed and
    left behind. It keeps a worker of its own pool busy until the send
    returns; other channels have separate pools. Dispatch counts as delivered
    if any channel succeeded, otherwise the fallback channel is tried and,
    failing that, the failure is logged as critical.
    """

    def __init__(self, channels=None, business_hours=None, on_call_channel=IM,
                 fallback_channel=None, channel_timeout=5.0, dispatch_deadline=10.0,
                 max_workers=8):
        self.channels = dict(channels or {})
        self.business_hours = business_hours or BusinessHours()
        self.on_call_channel = on_call_channel
        self.fallback_channel = fallback_channel
        self.channel_timeout = channel_timeout
        self.dispatch_deadline = dispatch_deadline
        # One executor per channel so a hung channel only ties up its own workers
        self._send_pools = {
            name: ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"alert-send-{name}")
            for name in self.channels
        }
        self._dispatch_pool = ThreadPoolExecutor(max_workers=max(1, max_workers // 2),
                                                 thread_name_prefix="alert-dispatch")

    @classmethod
    def from_config(cls, routing_cfg, channels):
        routing_cfg = routing_cfg or {}
        return cls(
            channels=channels,
            business_hours=BusinessHours.from_config(routing_cfg.get("business_hours")),
            on_call_channel=routing_cfg.get("on_call_channel", IM),
            fallback_channel=routing_cfg.get("fallback_channel"),
            channel_timeout=routing_cfg.get("channel_timeout_seconds", 5),
            dispatch_deadline=routing_cfg.get("dispatch_deadline_seconds", 10),
            max_workers=routing_cfg.get("max_workers", 8),
        )

    def route(self, alert, escalation_level, now) -> set:
        selected = set(BASE_CHANNELS[alert.severity])
        if escalation_level > 0:
            selected.add(EMAIL)
        if escalation_level > 1:
            selected.add(IM)
        # Nobody gets paged out of hours for anything below critical
        if not self.business_hours.contains(now) and alert.severity < Severity.CRITICAL:
            selected = {self.on_call_channel}
        return selected

    def dispatch(self, alert, channels) -> DispatchResult:
        result = DispatchResult(alert=alert)
        start = time.monotonic()
        deadline = start + self.dispatch_deadline
        futures = {}

        for name in sorted(channels):
            channel = self.channels.get(name)
            if channel is None:
                result.results[name] = ChannelResult(name, False, "channel not configured")
                continue
            futures[name] = self._send_pools[name].submit(self._send, name, channel, alert)

        for name, future in futures.items():
            remaining = min(start + self.channel_timeout, deadline) - time.monotonic()
            try:
                result.results[name] = future.result(timeout=max(0.0, remaining))
            except FuturesTimeout:
                future.cancel()
                elapsed = int((time.monotonic() - start) * 1000)
                result.results[name] = ChannelResult(
                    name, False, f"timed out after {self.channel_timeout:g}s", elapsed)

        for name in result.failed:
            logger.warning(f"Delivery of {alert.rule_name} to {name} failed: {result.results[name].error}")

        if result.success:
            logger.info(f"Dispatched {alert.kind.value} {alert.rule_name} to {', '.join(result.succeeded)}")
            return result

        if self.fallback_channel and self.fallback_channel in self.channels:
            result.fallback_result = self._send_with_timeout(self.fallback_channel, alert)
            if result.fallback_result.success:
                logger.error(f"All channels failed for {alert.rule_name}; delivered via fallback {self.fallback_channel}")
                return result

        tried = ", ".join(sorted(channels)) or "none"
        logger.critical(f"Alert {alert.rule_name} could not be delivered on any channel (tried: {tried})")
        return result

    def dispatch_async(self, alert, channels):
        """Run dispatch() in the background; returns a Future of DispatchResult."""
        return self._dispatch_pool.submit(self.dispatch, alert, set(channels))

    def _send_with_timeout(self, name, alert) -> ChannelResult:
        future = self._send_pools[name].submit(self._send, name, self.channels[name], alert)
        try:
            return future.result(timeout=self.channel_timeout)
        except FuturesTimeout:
            future.cancel()
            return ChannelResult(name, False, f"timed out after {self.channel_timeout:g}s",
                                 int(self.channel_timeout * 1000))

    @staticmethod
    def _send(name, channel, alert) -> ChannelResult:
        start = time.monotonic()
        try:
            ok = channel.send(alert)
            error = None if ok else "channel reported failure"
        except Exception as e:
            ok = False
            error = str(e) or type(e).__name__
        return ChannelResult(name, bool(ok), error, int((time.monotonic() - start) * 1000))

    def close(self):
        self._dispatch_pool.shutdown(wait=True)
        for pool in self._send_pools.values():
            pool.shutdown(wait=False, cancel_futures=True)
