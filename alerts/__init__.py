"""Alert evaluation and notification."""
from alerts.engine import Evaluator, PassReport
from alerts.rule_store import RuleStore, RuleConfigError
from alerts.state_tracker import AlertStateTracker
from alerts.escalation import EscalationManager
from alerts.suppression import SuppressionManager
from alerts.aggregator import AlertAggregator
from alerts.quality import QualityMetricsCollector
from alerts.router import NotificationRouter, BusinessHours
from alerts.channels import ConsoleChannel, FileChannel, ChatChannel, EmailChannel
