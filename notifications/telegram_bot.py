"""Telegram Bot API client used for instant-message alerts.

Uses raw HTTP POST via requests, no extra dependency needed.
"""
import logging
import requests

from utils.formatters import format_value

logger = logging.getLogger("alertengine.telegram")

TELEGRAM_API = "https://api.telegram.org/bot{token}"

_SEVERITY_EMOJI = {
    "fatal": "\U0001f6a8",
    "critical": "❗❗",
    "warning": "⚠️",
    "info": "ℹ️",
}
_KIND_EMOJI = {"resolved": "✅", "escalated": "\U0001f4e3"}


class TelegramError(Exception):
    """Telegram accepted the request but reported ok=false."""


class TelegramBot:
    """Thin wrapper around Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10):
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.timeout = timeout
        self.base_url = TELEGRAM_API.format(token=bot_token)

    def send_message(self, text: str, chat_id: str = None,
                     parse_mode: str = "Markdown") -> dict:
        """Send a text message. Returns Telegram API response dict."""
        url = f"{self.base_url}/sendMessage"
        payload = {
            "chat_id": chat_id or self.chat_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Telegram send failed: {e}")
            raise
        data = resp.json()
        if not data.get("ok"):
            raise TelegramError(data.get("description", "Telegram API error"))
        return data

    def verify_token(self) -> dict:
        """Verify bot token via getMe endpoint."""
        url = f"{self.base_url}/getMe"
        resp = requests.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def format_alert(self, alert) -> str:
        """Format an alert as Telegram Markdown."""
        sev = alert.severity.value
        emoji = _KIND_EMOJI.get(alert.kind.value) or _SEVERITY_EMOJI.get(sev, "")
        lines = [
            f"{emoji} *{alert.kind.value.upper()} [{sev.upper()}]* `{alert.rule_name}`",
            alert.summary,
        ]
        if alert.value is not None:
            lines.append(f"Value: {format_value(alert.value)} "
                         f"({alert.operator} {format_value(alert.threshold)})")
        lines.append(f"Service: {alert.service}")
        if alert.escalation_level:
            lines.append(f"Escalation level: {alert.escalation_level}")
        runbook = alert.annotations.get("runbook")
        if runbook:
            lines.append(f"[Runbook]({runbook})")
        return "\n".join(lines)
