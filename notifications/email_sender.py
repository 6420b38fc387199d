"""SMTP delivery of alert emails.

One HTML + plain-text message per alert, banner coloured by severity.
Credentials come from HOSTWATCH_SMTP_USER / HOSTWATCH_SMTP_PASS when set,
otherwise from notifiers.email in the config.
"""
import os
import ssl
import smtplib
import logging
from contextlib import contextmanager
from datetime import datetime
from html import escape
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("hostwatch.notifications.email_sender")

SEVERITY_COLORS = {
    "low": "#17a2b8",
    "medium": "#ffc107",
    "high": "#fd7e14",
    "critical": "#dc3545",
}
DEFAULT_COLOR = "#6c757d"


def severity_color(severity):
    return SEVERITY_COLORS.get(str(severity).lower(), DEFAULT_COLOR)


class EmailSender:
    """Builds and sends alert emails for the ``notifiers.email`` config section.

    ``from_address`` falls back to the SMTP username, and ``to`` may be a
    single address or a list.
    """

    def __init__(self, config: dict):
        email_config = config.get("notifiers", {}).get("email", {})
        self.enabled = email_config.get("enabled", False)
        self.smtp_host = email_config.get("smtp_host", "")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_name = email_config.get("from_name", "hostwatch")

        to = email_config.get("to", [])
        self.to_addresses = [to] if isinstance(to, str) else list(to or [])

        self.username = os.environ.get("HOSTWATCH_SMTP_USER") or email_config.get("username", "")
        self.password = os.environ.get("HOSTWATCH_SMTP_PASS") or email_config.get("password", "")
        self.from_address = email_config.get("from_address") or self.username

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.username and self.to_addresses)

    def build_message(self, subject: str, body: str, severity: str) -> MIMEMultipart:
        color = severity_color(severity)
        sev = str(severity).upper()
        sent_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        html = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <div style="background-color: {color}; color: white; padding: 10px;
                        border-radius: 5px; margin-bottom: 20px;">
                <h2 style="margin: 0;">Alert: {escape(subject)}</h2>
                <p style="margin: 5px 0 0 0;">Severity: {sev}</p>
            </div>
            <div style="padding: 20px; background-color: #f9f9f9; border-radius: 5px;">
                <p><strong>Message:</strong></p>
                <p>{escape(body)}</p>
                <hr>
                <p><small>Timestamp: {sent_at}</small></p>
                <p><small>Generated by hostwatch</small></p>
            </div>
        </body>
        </html>
        """

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = ", ".join(self.to_addresses)
        msg["Subject"] = f"[{sev}] Alert: {subject}"
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(f"{sev}: {subject}\n{body}\n\nTimestamp: {sent_at}", "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def send_alert(self, subject: str, body: str, severity: str) -> bool:
        """Send a single alert email."""
        if not self.is_configured():
            logger.warning("Email configuration incomplete - skipping alert email")
            return False
        return self._send(self.build_message(subject, body, severity))

    @contextmanager
    def _session(self, timeout):
        """Connected, TLS-upgraded and (when a password is set) logged-in SMTP session."""
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=timeout) as server:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self.password:
                server.login(self.username, self.password)
            yield server

    def test_connection(self) -> dict:
        """Open and close an SMTP session without sending anything."""
        try:
            with self._session(timeout=10):
                pass
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except (smtplib.SMTPException, OSError) as e:
            return {"status": "error", "message": f"Connection failed: {e}"}
        return {"status": "ok", "message": "SMTP connection successful"}

    def _send(self, msg: MIMEMultipart) -> bool:
        try:
            with self._session(timeout=30) as server:
                server.send_message(msg, from_addr=self.from_address, to_addrs=self.to_addresses)
        except smtplib.SMTPAuthenticationError:
            logger.error(f"SMTP authentication failed for {self.username}@{self.smtp_host}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused: {', '.join(e.recipients)}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Alert email to {msg['To']} failed: {e}")
            return False
        logger.info(f"Alert email sent to {msg['To']}: {msg['Subject']}")
        return True
