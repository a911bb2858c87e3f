"""Alert notification channels."""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.text import Text

logger = logging.getLogger("alertengine.alerts.channels")


@runtime_checkable
class NotificationChannel(Protocol):
    def send(self, alert) -> bool: ...


class ConsoleChannel:
    """Print alerts to terminal with rich formatting."""

    severity_styles = {
        "fatal": "bold white on dark_red",
        "critical": "bold white on red",
        "warning": "bold yellow",
        "info": "bold blue",
    }

    def __init__(self, console=None):
        from rich.console import Console
        self.console = console or Console(stderr=True)

    def send(self, alert) -> bool:
        sev = alert.severity.value
        style = "bold green" if alert.kind.value == "resolved" else self.severity_styles.get(sev, "")
        self.console.print(Text(alert.message, style=style))
        return True


class FileChannel:
    """Append alerts to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()

    def send(self, alert) -> bool:
        line = json.dumps(alert.to_dict())
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            with open(self.log_path, "a") as f:
                f.write(line + "\n")
        return True


class ChatChannel:
    """Team chat via a Slack-compatible incoming webhook."""

    def __init__(self, webhook):
        self.webhook = webhook

    def send(self, alert) -> bool:
        return self.webhook.post(alert)


class EmailChannel:
    """Email notifications over SMTP."""

    def __init__(self, sender):
        self.sender = sender

    def send(self, alert) -> bool:
        if not self.sender.is_configured():
            raise RuntimeError("email channel is not configured")
        return self.sender.send_alert(alert)


def build_channels(channels_cfg):
    """Instantiate enabled channels from the `channels` config section.

    Returns {name: channel}. Names are what routing policy refers to:
    chat, email, im, console, file.
    """
    channels_cfg = channels_cfg or {}
    channels = {}

    chat_cfg = dict(channels_cfg.get("chat", {}))
    chat_cfg["webhook_url"] = os.environ.get("ALERTENGINE_CHAT_WEBHOOK", chat_cfg.get("webhook_url", ""))
    if chat_cfg.get("enabled"):
        if not chat_cfg["webhook_url"]:
            raise ValueError("channels.chat.webhook_url is required when chat is enabled")
        from notifications.chat_webhook import ChatWebhook
        channels["chat"] = ChatChannel(ChatWebhook(chat_cfg["webhook_url"],
                                                   timeout=chat_cfg.get("timeout", 10)))

    email_cfg = channels_cfg.get("email", {})
    if email_cfg.get("enabled"):
        from notifications.email_sender import EmailSender
        channels["email"] = EmailChannel(EmailSender(email_cfg))

    im_cfg = dict(channels_cfg.get("im", {}))
    # Secrets from the environment win over the config file
    im_cfg["bot_token"] = os.environ.get("ALERTENGINE_TELEGRAM_TOKEN", im_cfg.get("bot_token", ""))
    im_cfg["chat_id"] = os.environ.get("ALERTENGINE_TELEGRAM_CHAT_ID", im_cfg.get("chat_id", ""))
    if im_cfg.get("enabled"):
        if not (im_cfg.get("bot_token") and im_cfg.get("chat_id")):
            raise ValueError("channels.im.bot_token and chat_id are required when im is enabled")
        from notifications.telegram_bot import TelegramBot
        from alerts.telegram_channel import TelegramChannel
        channels["im"] = TelegramChannel(TelegramBot(im_cfg["bot_token"], im_cfg["chat_id"]),
                                         min_severity=im_cfg.get("min_severity", "info"))

    if channels_cfg.get("console", {}).get("enabled", True):
        channels["console"] = ConsoleChannel()

    file_cfg = channels_cfg.get("file", {})
    if file_cfg.get("enabled"):
        channels["file"] = FileChannel(file_cfg.get("path", "data/alerts.jsonl"))

    logger.info(f"Channels enabled: {', '.join(sorted(channels)) or 'none'}")
    return channels
