"""Slack-compatible incoming-webhook client for chat alerts."""
import logging
import requests

from __version__ import __version__
from utils.formatters import format_value

logger = logging.getLogger("alertengine.chat")

_COLORS = {
    "fatal": "#8E0000",
    "critical": "#FF0000",
    "warning": "#FFA500",
    "info": "#0000FF",
}
_RESOLVED_COLOR = "#2EB886"


class ChatWebhook:
    def __init__(self, webhook_url: str, timeout: float = 10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def build_payload(self, alert) -> dict:
        sev = alert.severity.value
        color = _RESOLVED_COLOR if alert.kind.value == "resolved" else _COLORS.get(sev, "#808080")

        fields = [{"title": "Service", "value": alert.service, "short": True}]
        if alert.value is not None:
            fields.append({
                "title": "Value",
                "value": f"{format_value(alert.value)} ({alert.operator} {format_value(alert.threshold)})",
                "short": True,
            })
        if alert.escalation_level:
            fields.append({"title": "Escalation", "value": str(alert.escalation_level), "short": True})
        if alert.annotations.get("runbook"):
            fields.append({"title": "Runbook", "value": alert.annotations["runbook"], "short": False})

        return {
            "attachments": [
                {
                    "color": color,
                    "title": f"[{sev.upper()}] {alert.kind.value}: {alert.rule_name}",
                    "text": alert.annotations.get("description") or alert.summary,
                    "fields": fields,
                    "footer": f"alertengine v{__version__}",
                    "ts": int(alert.timestamp.timestamp()),
                }
            ]
        }

    def post(self, alert) -> bool:
        """POST the alert; True on 2xx, raises requests.RequestException otherwise."""
        resp = requests.post(self.webhook_url, json=self.build_payload(alert), timeout=self.timeout)
        resp.raise_for_status()
        logger.debug(f"Chat webhook accepted {alert.rule_name} ({resp.status_code})")
        return True
