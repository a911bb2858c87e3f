"""Telegram instant-message channel."""
import logging

from models.enums import Severity

logger = logging.getLogger("alertengine.alerts.telegram")


class TelegramChannel:
    """Send alert notifications via Telegram.

    Alerts below `min_severity` are not sent and count as not delivered.
    Resolve notifications always go through so an earlier page is closed.
    """

    def __init__(self, bot, min_severity="info"):
        self.bot = bot
        self.min_severity = Severity.parse(min_severity)

    def send(self, alert) -> bool:
        if alert.kind.value != "resolved" and alert.severity < self.min_severity:
            logger.debug(f"Telegram skipped {alert.rule_name} ({alert.severity.value} below {self.min_severity.value})")
            return False

        self.bot.send_message(self.bot.format_alert(alert))
        return True
