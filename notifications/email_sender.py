"""
SMTP email sender for alert notifications.

Handles:
  - SMTP connection with TLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)

No external dependencies beyond Python stdlib (email, smtplib, ssl).
"""
import os
import ssl
import smtplib
import logging
from html import escape
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

from utils.formatters import format_timestamp, format_value

logger = logging.getLogger("alertengine.notifications.email")

SEVERITY_COLORS = {
    "fatal": "#8E0000",
    "critical": "#FF1744",
    "warning": "#FFC107",
    "info": "#2196F3",
}


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: ALERTENGINE_SMTP_USER, ALERTENGINE_SMTP_PASS
      2. Config: channels.email.smtp_username, channels.email.smtp_password
    """

    def __init__(self, email_config: dict):
        email_config = email_config or {}
        self.smtp_host = email_config.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.timeout = email_config.get("timeout", 10)
        self.from_address = email_config.get("from_address", "")
        self.to_address = email_config.get("to_address", "")
        self.from_name = email_config.get("from_name", "Alert Engine")

        self.username = os.environ.get(
            "ALERTENGINE_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "ALERTENGINE_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return all([self.smtp_host, self.from_address, self.to_address,
                    self.username, self.password])

    def build_alert_message(self, alert) -> MIMEMultipart:
        sev = alert.severity.value
        subject = f"[{sev.upper()}] {alert.kind.value}: {alert.rule_name}"
        color = SEVERITY_COLORS.get(sev, "#888888")

        rows = [("Service", alert.service), ("Since", format_timestamp(alert.started_at))]
        if alert.value is not None:
            rows.append(("Value", f"{format_value(alert.value)} "
                                  f"(threshold {alert.operator} {format_value(alert.threshold)})"))
        if alert.escalation_level:
            rows.append(("Escalation level", str(alert.escalation_level)))
        runbook = alert.annotations.get("runbook")
        description = alert.annotations.get("description", "")

        rows_html = "".join(
            f'<tr><td style="color:#636E72;padding-right:12px;">{escape(k)}</td>'
            f"<td>{escape(v)}</td></tr>"
            for k, v in rows
        )
        runbook_html = f'<p><a href="{escape(runbook)}">Runbook</a></p>' if runbook else ""

        html = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 560px; margin: 0 auto;
                    padding: 20px; background: #FFFFFF; color: #1E272E;">
            <div style="padding: 16px; border-left: 4px solid {color}; background: #F5F6FA;">
                <h3 style="margin-top: 0; color: {color};">
                    {escape(sev.upper())}: {escape(alert.rule_name)}
                </h3>
                <p>{escape(alert.summary)}</p>
                <p style="color:#636E72;">{escape(description)}</p>
                <table>{rows_html}</table>
                {runbook_html}
            </div>
        </div>
        """

        plain = [alert.message]
        plain += [f"{k}: {v}" for k, v in rows]
        if runbook:
            plain.append(f"Runbook: {runbook}")

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText("\n".join(plain), "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def send_alert(self, alert) -> bool:
        """Send one alert email. Returns False if unconfigured or SMTP fails."""
        if not self.is_configured():
            logger.warning(f"Email not configured - skipping {alert.rule_name}")
            return False
        return self._send(self.build_alert_message(alert))

    def test_connection(self) -> dict:
        """Test SMTP connectivity without sending an email."""
        try:
            with self._connect() as server:
                return {"status": "ok", "message": "SMTP connection successful",
                        "server_response": str(server.noop())}
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except (smtplib.SMTPException, OSError) as e:
            return {"status": "error", "message": f"Connection failed: {e}"}

    def _connect(self):
        context = ssl.create_default_context()
        server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)
        try:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(self.username, self.password)
        except Exception:
            server.close()
            raise
        return server

    def _send(self, msg: MIMEMultipart) -> bool:
        """Internal: send a constructed MIME message via SMTP."""
        try:
            with self._connect() as server:
                server.send_message(msg)
            logger.info(f"Email sent to {self.to_address}: {msg['Subject']}")
            return True
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed. Check username/password.")
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"Recipient refused: {self.to_address}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email send failed: {e}")
            return False
