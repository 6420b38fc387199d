"""Generic JSON webhook for alert notifications.

Uses a plain HTTP POST via requests.
"""
import time
import logging
import requests

logger = logging.getLogger("hostwatch.notifications.webhook")

SOURCE = "hostwatch"


class WebhookSender:
    """POSTs ``{alert, message, severity, timestamp, source}`` to a configured URL."""

    def __init__(self, config: dict):
        webhook_config = config.get("notifiers", {}).get("webhook", {})
        self.enabled = webhook_config.get("enabled", False)
        self.url = webhook_config.get("url", "")
        self.timeout = webhook_config.get("timeout", 10)
        self.headers = dict(webhook_config.get("headers") or {})

    def is_configured(self) -> bool:
        return bool(self.url)

    def build_payload(self, subject: str, body: str, severity: str) -> dict:
        return {
            "alert": subject,
            "message": body,
            "severity": severity,
            "timestamp": int(time.time()),
            "source": SOURCE,
        }

    def send(self, subject: str, body: str, severity: str) -> bool:
        if not self.is_configured():
            logger.warning("Webhook URL not configured - skipping")
            return False
        try:
            resp = requests.post(
                self.url,
                json=self.build_payload(subject, body, severity),
                headers=self.headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to send webhook: {e}")
            return False
        logger.info(f"Webhook sent ({resp.status_code})")
        return True
