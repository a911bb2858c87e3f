"""Alert evaluation engine: the per-tick control loop."""
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from alerts.aggregator import AlertAggregator
from alerts.escalation import EscalationManager
from alerts.quality import QualityMetricsCollector
from alerts.router import NotificationRouter
from alerts.state_tracker import AlertStateTracker
from alerts.suppression import SuppressionManager
from models.alerts import Alert
from models.enums import AlertKind, AlertState, Outcome, Severity
from utils.clock import SystemClock
from utils.keyed_lock import KeyedLock

logger = logging.getLogger("alertengine.engine")

# Unreported dispatch futures kept for wait_for_dispatches()
MAX_TRACKED_DISPATCHES = 1024


@dataclass
class PassReport:
    """What happened during one evaluation pass."""
    started_at: datetime
    evaluated: int = 0
    fired: list = field(default_factory=list)
    resolved: list = field(default_factory=list)
    escalated: list = field(default_factory=list)
    no_data: list = field(default_factory=list)
    suppressed: list = field(default_factory=list)
    throttled: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    groups: list = field(default_factory=list)
    dispatches: list = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, kind, item):
        with self._lock:
            getattr(self, kind).append(item)

    @property
    def transitions(self) -> int:
        return len(self.fired) + len(self.resolved)


class Evaluator:
    """Pulls a reading for every rule, feeds the state tracker and acts on transitions.

    Fire:    suppression -> escalation -> throttle -> route/dispatch -> quality
    Resolve: clear escalation -> suppression -> dispatch -> quality
    While firing, escalation is re-checked every tick; a level increase
    sends an escalated notification to the widened channel set.
    Dispatch is asynchronous; a pass never waits for delivery.
    """

    def __init__(self, rule_store, metric_source, router: NotificationRouter,
                 state_tracker=None, suppression=None, escalation=None, aggregator=None,
                 quality=None, clock=None, suppression_label="service",
                 no_data_alert_after=0, escalate_when_throttled=True,
                 batch_notifications=False, max_workers=1):
        self.rule_store = rule_store
        self.metric_source = metric_source
        self.router = router
        self.clock = clock or SystemClock()
        self.state = state_tracker or AlertStateTracker()
        self.suppression = suppression or SuppressionManager(self.clock)
        self.escalation = escalation or EscalationManager()
        self.aggregator = aggregator or AlertAggregator()
        self.quality = quality or QualityMetricsCollector()
        self.suppression_label = suppression_label
        self.no_data_alert_after = no_data_alert_after
        self.escalate_when_throttled = escalate_when_throttled
        self.batch_notifications = batch_notifications
        self.max_workers = max_workers
        self._keys = KeyedLock()
        self._dispatches = deque(maxlen=MAX_TRACKED_DISPATCHES)
        self._dispatch_lock = threading.Lock()
        self._pass_lock = threading.Lock()

    @classmethod
    def from_config(cls, config, rule_store, metric_source, channels, clock=None):
        clock = clock or SystemClock()
        ev = config.get("evaluator", {})
        return cls(
            rule_store=rule_store,
            metric_source=metric_source,
            router=NotificationRouter.from_config(config.get("routing"), channels),
            clock=clock,
            suppression=SuppressionManager(clock),
            escalation=EscalationManager(timedelta(seconds=config["escalation"]["interval_seconds"])),
            aggregator=AlertAggregator(
                window=timedelta(seconds=config["throttle"]["window_seconds"]),
                max_count=config["throttle"]["max_count"],
            ),
            suppression_label=config.get("suppression", {}).get("target_label", "service"),
            no_data_alert_after=ev.get("no_data_alert_after", 0),
            escalate_when_throttled=ev.get("escalate_when_throttled", True),
            batch_notifications=ev.get("batch_notifications", False),
            max_workers=ev.get("max_workers", 1),
        )

    # ── evaluation pass ─────────────────────────────────

    def run_once(self, now=None) -> PassReport:
        """Evaluate every rule once. Overlapping calls run one after another."""
        with self._pass_lock:
            now = now or self.clock.now()
            report = PassReport(started_at=now)
            pending = [] if self.batch_notifications else None
            rules = self.rule_store.get_all_rules()

            if self.max_workers > 1 and len(rules) > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers,
                                        thread_name_prefix="alert-eval") as pool:
                    list(pool.map(lambda r: self._evaluate_safely(r, now, report, pending), rules))
            else:
                for rule in rules:
                    self._evaluate_safely(rule, now, report, pending)

            report.groups = self.aggregator.group(report.fired)
            if pending:
                self._flush_batch(pending, now, report)

            if report.transitions or report.no_data:
                logger.info(f"Pass {now.isoformat()}: {report.evaluated} rules, {len(report.fired)} fired, "
                            f"{len(report.resolved)} resolved, {len(report.no_data)} no-data")
            return report

    def _evaluate_safely(self, rule, now, report, pending):
        try:
            self.evaluate_rule(rule, now, report, pending)
        except Exception as e:
            logger.error(f"Evaluating {rule.name} failed: {e}", exc_info=True)
            report.add("errors", (rule.name, str(e)))

    def evaluate_rule(self, rule, now, report=None, pending=None) -> Outcome:
        report = report if report is not None else PassReport(started_at=now)
        with self._keys.hold((rule.name, rule.service)):
            with report._lock:
                report.evaluated += 1

            value, ok = self._query(rule)
            if not ok:
                outcome = self.state.no_data(rule, now)
                self._handle_no_data(rule, now, report)
                return outcome

            outcome = self.state.evaluate(rule, value, now)
            if outcome == Outcome.FIRED:
                self._handle_fire(rule, self.state.get(rule.name), now, report, pending)
            elif outcome == Outcome.RESOLVED:
                self._handle_resolve(rule, value, now, report)
            else:
                instance = self.state.get(rule.name)
                if instance is not None and instance.state == AlertState.FIRING:
                    self._handle_still_firing(rule, instance, now, report, pending)
            return outcome

    def _query(self, rule):
        try:
            value, ok = self.metric_source.query(rule.metric, dict(rule.selector))
        except Exception as e:
            logger.warning(f"Metric source failed for {rule.name} ({rule.metric}): {e}")
            return 0.0, False
        if ok and value is None:
            return 0.0, False
        return value, ok

    # ── transitions ─────────────────────────────────────

    def _is_suppressed(self, rule, now):
        return self.suppression.is_suppressed(rule.name, rule.target(self.suppression_label), now)

    def _handle_fire(self, rule, instance, now, report, pending):
        if self._is_suppressed(rule, now):
            logger.info(f"{rule.name} fired but is suppressed")
            report.add("suppressed", rule.name)
            return

        if self.escalate_when_throttled:
            level = self.escalation.record_fire(rule.name, rule.service, now).level
            throttled = self.aggregator.should_throttle(rule.name, rule.service, now)
        else:
            throttled = self.aggregator.should_throttle(rule.name, rule.service, now)
            if throttled:
                level = self.escalation.get_level(rule.name, rule.service, now)
            else:
                level = self.escalation.record_fire(rule.name, rule.service, now).level

        alert = Alert.from_rule(rule, AlertKind.FIRING, value=instance.last_value,
                                started_at=instance.start_time, timestamp=now,
                                escalation_level=level)
        report.add("fired", alert)

        if throttled:
            report.add("throttled", rule.name)
        elif pending is not None:
            pending.append(alert)
            instance.notified = True
        else:
            self._notify(alert, now, report)
            instance.notified = True

        self.quality.record_fire(alert)
        instance.counted = True

    def _handle_still_firing(self, rule, instance, now, report, pending):
        if self._is_suppressed(rule, now):
            return
        if not instance.counted:
            # the fire happened under a suppression that has since lapsed
            self._handle_fire(rule, instance, now, report, pending)
            return

        before = self.escalation.get_level(rule.name, rule.service, now)
        record = self.escalation.check(rule.name, rule.service, now)
        if record is None:
            self.escalation.record_fire(rule.name, rule.service, now)
            return
        if record.level <= before:
            return

        alert = Alert.from_rule(rule, AlertKind.ESCALATED, value=instance.last_value,
                                started_at=instance.start_time, timestamp=now,
                                escalation_level=record.level)
        report.add("escalated", alert)
        if self.aggregator.should_throttle(rule.name, rule.service, now):
            report.add("throttled", rule.name)
            return
        self._notify(alert, now, report)
        instance.notified = True

    def _handle_resolve(self, rule, value, now, report):
        self.escalation.resolve(rule.name, rule.service)
        instance = self.state.take_resolved(rule.name)
        if self._is_suppressed(rule, now):
            report.add("suppressed", rule.name)
            return

        started = instance.start_time if instance else None
        alert = Alert.from_rule(rule, AlertKind.RESOLVED, value=value, started_at=started,
                                timestamp=now)
        report.add("resolved", alert)
        # Nobody was told it fired, so there is nothing to announce
        if instance is not None and instance.notified:
            self._notify(alert, now, report)

        if instance is not None and instance.counted:
            elapsed_ms = (now - instance.start_time).total_seconds() * 1000
            self.quality.record_resolution(alert, elapsed_ms, was_false_positive=False)

    def _handle_no_data(self, rule, now, report):
        report.add("no_data", rule.name)
        streak = self.state.no_data_streak(rule.name)
        if streak == 1:
            logger.warning(f"No data for {rule.name} ({rule.metric})")
        if not self.no_data_alert_after or streak != self.no_data_alert_after:
            return
        if self._is_suppressed(rule, now):
            return
        meta = Alert(
            rule_name=rule.name,
            kind=AlertKind.UNEVALUABLE,
            severity=Severity.WARNING,
            labels=dict(rule.labels),
            annotations={"summary": f"rule unevaluable: no data for {rule.metric} "
                                    f"in {streak} consecutive evaluations"},
            timestamp=now,
        )
        self._notify(meta, now, report)

    # ── notification ────────────────────────────────────

    def _notify(self, alert, now, report):
        channels = self.router.route(alert, alert.escalation_level, now)
        future = self.router.dispatch_async(alert, channels)
        with self._dispatch_lock:
            self._dispatches.append(future)
        report.add("dispatches", future)
        return future

    def _flush_batch(self, pending, now, report):
        for group in self.aggregator.group(pending):
            if len(group.members) == 1:
                self._notify(group.members[0], now, report)
                continue
            grouped = Alert(
                rule_name=f"{group.service}/{group.prefix}",
                kind=AlertKind.GROUPED,
                severity=group.severity,
                labels={"service": group.service},
                annotations={"summary": group.summary},
                timestamp=now,
                escalation_level=max(a.escalation_level for a in group.members),
            )
            self._notify(grouped, now, report)

    def wait_for_dispatches(self, timeout: Optional[float] = None) -> list:
        """Block until outstanding dispatches finish.

        Returns the DispatchResults not yet reported by an earlier call, in
        dispatch order. Anything still running at the timeout is reported
        by a later call.
        """
        with self._dispatch_lock:
            futures = list(self._dispatches)
        done, _ = wait(futures, timeout=timeout)
        with self._dispatch_lock:
            self._dispatches = deque((f for f in self._dispatches if f not in done),
                                     maxlen=MAX_TRACKED_DISPATCHES)
        return [f.result() for f in futures if f in done and not f.cancelled() and f.exception() is None]

    # ── operator actions ────────────────────────────────

    def suppress(self, rule_name, duration, target=None):
        rule = self.rule_store.get_rule(rule_name)
        if rule is None:
            raise KeyError(f"unknown rule: {rule_name}")
        target = target or rule.target(self.suppression_label)
        return self.suppression.suppress(rule_name, target, duration, now=self.clock.now())

    def mark_false_positive(self, rule_name):
        rule = self.rule_store.get_rule(rule_name)
        if rule is None:
            raise KeyError(f"unknown rule: {rule_name}")
        self.quality.mark_false_positive(Alert.from_rule(rule, AlertKind.FIRING,
                                                         timestamp=self.clock.now()))

    def status(self) -> dict:
        now = self.clock.now()
        active = []
        for inst in self.state.active():
            rule = self.rule_store.get_rule(inst.rule_name)
            service = rule.service if rule else ""
            active.append({
                "rule": inst.rule_name,
                "state": inst.state.value,
                "since": inst.start_time,
                "value": inst.last_value,
                "level": self.escalation.get_level(inst.rule_name, service, now),
            })
        with self._dispatch_lock:
            inflight = sum(1 for f in self._dispatches if not f.done())
        return {
            "time": now,
            "active": active,
            "suppressions": self.suppression.active(now),
            "quality": self.quality.snapshot(),
            "inflight": inflight,
        }

    def close(self, timeout=None):
        self.wait_for_dispatches(timeout)
        self.router.close()
