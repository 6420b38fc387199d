"""Alert notification channels and the fire-and-forget dispatcher."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, runtime_checkable
from notifications.email_sender import EmailSender
from notifications.webhook import WebhookSender

logger = logging.getLogger("hostwatch.alerts.channels")


@runtime_checkable
class AlertChannel(Protocol):
    name: str

    def send(self, subject: str, body: str, severity: str) -> bool: ...


class EmailChannel:
    """Sends every dispatched alert as an individual email."""

    name = "email"

    def __init__(self, config: dict, sender=None):
        self.sender = sender or EmailSender(config)

    def send(self, subject, body, severity) -> bool:
        return self.sender.send_alert(subject, body, severity)


class WebhookChannel:
    name = "webhook"

    def __init__(self, config: dict, sender=None):
        self.sender = sender or WebhookSender(config)

    def send(self, subject, body, severity) -> bool:
        return self.sender.send(subject, body, severity)


def build_channels(config: dict):
    """Channels for every notifier enabled in ``config['notifiers']``."""
    notifiers = config.get("notifiers", {})
    channels = []
    if notifiers.get("email", {}).get("enabled"):
        channels.append(EmailChannel(config))
    if notifiers.get("webhook", {}).get("enabled"):
        channels.append(WebhookChannel(config))
    return channels


class NotificationDispatcher:
    """Delivers alerts to all channels on a small worker pool.

    ``dispatch`` returns immediately with the Future; results and failures
    are only logged. The pool bounds concurrent deliveries.
    """

    def __init__(self, channels=None, max_workers=4):
        self.channels = list(channels or [])
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def dispatch(self, subject, body, severity):
        if not self.channels:
            logger.debug("No notification channels enabled")
            return None
        return self._executor.submit(self._deliver, subject, body, severity)

    def _deliver(self, subject, body, severity):
        delivered = 0
        for channel in self.channels:
            try:
                if channel.send(subject, body, severity):
                    delivered += 1
            except Exception as e:
                logger.warning(f"Alert channel {getattr(channel, 'name', channel)} failed: {e}")
        logger.debug(f"Notification '{subject}' delivered to {delivered}/{len(self.channels)} channels")
        return delivered

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)
