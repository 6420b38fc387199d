"""Alert system module."""
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager
from alerts.pubsub import AlertBroadcaster
from alerts.channels import EmailChannel, WebhookChannel, NotificationDispatcher
