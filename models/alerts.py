"""Dataclasses for alert rules, runtime instances and notifications."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from models.enums import AlertKind, AlertState, Severity

DEFAULT_SERVICE = "default"

OPERATOR_MAP = {
    "<": lambda v, t: v < t,
    ">": lambda v, t: v > t,
    "<=": lambda v, t: v <= t,
    ">=": lambda v, t: v >= t,
    "==": lambda v, t: v == t,
    "!=": lambda v, t: v != t,
}


@dataclass(frozen=True)
class Condition:
    operator: str = ">"
    threshold: float = 0.0
    duration: timedelta = timedelta(0)

    def holds(self, value: float) -> bool:
        return OPERATOR_MAP[self.operator](value, self.threshold)

    def describe(self) -> str:
        return f"{self.operator} {self.threshold:g}"


@dataclass(frozen=True)
class AlertRule:
    name: str = ""
    metric: str = ""
    condition: Condition = field(default_factory=Condition)
    severity: Severity = Severity.WARNING
    labels: dict = field(default_factory=dict)
    annotations: dict = field(default_factory=dict)
    selector: dict = field(default_factory=dict)

    @property
    def service(self) -> str:
        return self.labels.get("service") or DEFAULT_SERVICE

    def target(self, label: str) -> str:
        """Value of the label suppressions are keyed on."""
        return self.labels.get(label) or DEFAULT_SERVICE


@dataclass
class AlertInstance:
    rule_name: str
    start_time: datetime
    last_value: float
    state: AlertState = AlertState.PENDING
    fired_at: Optional[datetime] = None
    counted: bool = False
    notified: bool = False


@dataclass
class Alert:
    """Notification payload handed to channels."""
    rule_name: str
    kind: AlertKind
    severity: Severity
    value: Optional[float] = None
    operator: str = ""
    threshold: Optional[float] = None
    labels: dict = field(default_factory=dict)
    annotations: dict = field(default_factory=dict)
    started_at: Optional[datetime] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    escalation_level: int = 0

    @classmethod
    def from_rule(cls, rule: AlertRule, kind: AlertKind, value=None, started_at=None,
                  timestamp=None, escalation_level=0):
        return cls(
            rule_name=rule.name,
            kind=kind,
            severity=rule.severity,
            value=value,
            operator=rule.condition.operator,
            threshold=rule.condition.threshold,
            labels=dict(rule.labels),
            annotations=dict(rule.annotations),
            started_at=started_at,
            timestamp=timestamp or datetime.now(timezone.utc),
            escalation_level=escalation_level,
        )

    @property
    def service(self) -> str:
        return self.labels.get("service") or DEFAULT_SERVICE

    @property
    def summary(self) -> str:
        return self.annotations.get("summary") or self.rule_name

    @property
    def message(self) -> str:
        if self.kind == AlertKind.RESOLVED:
            head = f"RESOLVED {self.rule_name}"
        elif self.kind == AlertKind.ESCALATED:
            head = f"ESCALATED (level {self.escalation_level}) {self.rule_name}"
        elif self.kind == AlertKind.UNEVALUABLE:
            return f"{self.rule_name}: {self.summary}"
        elif self.kind == AlertKind.GROUPED:
            return f"[{self.severity.value.upper()}] {self.summary}"
        else:
            head = f"[{self.severity.value.upper()}] {self.rule_name}"
        parts = [head, self.summary]
        if self.value is not None and self.threshold is not None:
            parts.append(f"value {self.value:g} (threshold {self.operator} {self.threshold:g})")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        return {
            "rule_name": self.rule_name,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "value": self.value,
            "operator": self.operator,
            "threshold": self.threshold,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "timestamp": self.timestamp.isoformat(),
            "escalation_level": self.escalation_level,
            "message": self.message,
        }


@dataclass
class EscalationRecord:
    rule_name: str
    service: str
    level: int
    last_escalation_time: datetime
    alert_count: int = 1


@dataclass
class AlertGroup:
    service: str
    prefix: str
    members: list = field(default_factory=list)

    @property
    def severity(self) -> Severity:
        return max(a.severity for a in self.members)

    @property
    def summary(self) -> str:
        names = ", ".join(sorted(a.rule_name for a in self.members))
        return f"{len(self.members)} {self.prefix} alerts firing on {self.service}: {names}"


@dataclass
class ChannelResult:
    channel: str
    success: bool
    error: Optional[str] = None
    elapsed_ms: int = 0


@dataclass
class DispatchResult:
    alert: Alert
    results: dict = field(default_factory=dict)
    fallback_result: Optional[ChannelResult] = None

    @property
    def fallback_used(self) -> bool:
        return self.fallback_result is not None

    @property
    def success(self) -> bool:
        return any(r.success for r in self.results.values())

    @property
    def succeeded(self) -> list:
        return sorted(name for name, r in self.results.items() if r.success)

    @property
    def failed(self) -> list:
        return sorted(name for name, r in self.results.items() if not r.success)
