"""Data models package."""
from models.enums import Severity, AlertState, Outcome, AlertKind
from models.alerts import AlertRule, Condition, AlertInstance, Alert, DispatchResult
