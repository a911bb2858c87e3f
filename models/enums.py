"""Enums for severity, alert state, evaluation outcome and notification kind."""
from enum import Enum

_SEVERITY_RANK = {"info": 0, "warning": 1, "critical": 2, "fatal": 3}


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    @classmethod
    def parse(cls, value) -> "Severity":
        """Accept 'CRITICAL', 'critical' or a Severity; raise ValueError otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown severity: {value!r}") from None

    # str's ordering would compare names alphabetically
    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class AlertState(str, Enum):
    PENDING = "pending"
    FIRING = "firing"
    RESOLVED = "resolved"


class Outcome(str, Enum):
    """Result of feeding one reading to the state tracker."""
    NOOP = "noop"
    FIRED = "fired"
    RESOLVED = "resolved"
    NO_DATA = "no_data"


class AlertKind(str, Enum):
    """What a notification is about."""
    FIRING = "firing"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    UNEVALUABLE = "unevaluable"
    GROUPED = "grouped"

