"""Alert rule engine: system metric, log pattern and exception monitors."""
import time
import sqlite3
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone, timedelta
from types import MappingProxyType
from models.alerts import Alert
from models.enums import RuleType, Condition
from alerts.dedup import fingerprint, ProcessedEntries
from utils.errors import MetricsUnavailable, StoreUnavailable

logger = logging.getLogger("hostwatch.alerts.engine")

EXCEPTION_PATTERNS = (
    "Traceback",
    "Exception",
    "TypeError",
    "ValueError",
    "KeyError",
    "NullPointerException",
    "RuntimeException",
    "Fatal error",
    "Uncaught",
)
DEFAULT_EXCEPTION_PATTERN = "|".join(EXCEPTION_PATTERNS)

TEST_ALERT_TYPE = "test"
TEST_ALERT_MESSAGE = "This is a test alert triggered by user"


def truncate(text, max_len):
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def evaluate_metric_rule(rule, metrics):
    """Return the alert message if ``metrics`` breaches ``rule``, else None."""
    condition = rule.condition
    threshold = rule.threshold
    if condition == Condition.CPU_HIGH:
        if metrics.cpu_percent > threshold:
            return f"CPU usage is {metrics.cpu_percent:.2f}% (threshold: {threshold:.2f}%)"
    elif condition == Condition.MEMORY_HIGH:
        if metrics.ram_percent > threshold:
            return f"Memory usage is {metrics.ram_percent:.2f}% (threshold: {threshold:.2f}%)"
    elif condition == Condition.DISK_HIGH:
        if metrics.disk_percent > threshold:
            return f"Disk usage is {metrics.disk_percent:.2f}% (threshold: {threshold:.2f}%)"
    elif condition == Condition.DISK_LOW:
        free = 100.0 - metrics.disk_percent
        if free < threshold:
            return f"Disk free space is {free:.2f}% (threshold: {threshold:.2f}%)"
    else:
        logger.debug(f"Rule {rule.id} has unknown condition {condition!r}")
    return None


def log_pattern_message(pattern, matches):
    """Batched message; ``matches`` is newest first."""
    message = f"Found {len(matches)} new log pattern matches for '{pattern}'"
    message += f". Latest: {truncate(matches[0].message, 100)}"
    if len(matches) > 1:
        message += f". First few: {truncate(matches[-1].message, 50)}"
    return message


def exception_message(matches):
    message = f"Detected {len(matches)} new exceptions in logs"
    message += f". Latest: {truncate(matches[0].message, 100)}"
    if len(matches) > 1:
        message += f". Oldest: {truncate(matches[-1].message, 50)}"
    return message


class AlertEngine:
    """Evaluates cached alert rules and records, notifies and broadcasts firings.

    The rule cache is an immutable mapping replaced wholesale, so monitor
    threads can iterate it without locking. ``_rules_lock`` only serializes
    the writers that build the replacement.
    """

    def __init__(self, db, search, metrics, dispatcher=None, broadcaster=None, config=None):
        self.db = db
        self.search = search
        self.metrics = metrics
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.dedup = ProcessedEntries(db)

        alerts_cfg = (config or {}).get("alerts", {})
        self.recent_window = timedelta(minutes=alerts_cfg.get("recent_window_minutes", 10))
        self.log_pattern_limit = alerts_cfg.get("log_pattern_limit", 500)
        self.exception_limit = alerts_cfg.get("exception_limit", 50)
        self.retention_hours = alerts_cfg.get("retention_hours", 24)
        self.cleanup_interval = alerts_cfg.get("cleanup_interval_seconds", 600)
        self.min_refire_seconds = alerts_cfg.get("min_refire_seconds", 0)

        self._rules = MappingProxyType({})
        self._rules_lock = threading.Lock()
        self._cleanup_lock = threading.Lock()
        self._last_cleanup = time.monotonic()

    # --- Rule cache ---

    @property
    def rules(self):
        return self._rules

    def reload_rules(self):
        try:
            rules = self.db.get_alert_rules()
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.error(f"Failed to load alert rules: {e}")
            return False
        snapshot = MappingProxyType({r.id: r for r in rules})
        with self._rules_lock:
            self._rules = snapshot
        logger.info(f"Loaded {len(snapshot)} alert rules")
        return True

    def _enabled_rules(self, rule_type):
        return [r for r in self._rules.values() if r.enabled and r.type == rule_type]

    def _store_last_triggered(self, rule, when):
        updated = replace(rule, last_triggered=when)
        with self._rules_lock:
            if rule.id in self._rules:
                rules = dict(self._rules)
                rules[rule.id] = updated
                self._rules = MappingProxyType(rules)
        return updated

    # --- Monitors ---

    def check_system_metrics(self):
        """Fire every enabled system_metric rule whose condition holds. Returns the number fired."""
        rules = self._enabled_rules(RuleType.SYSTEM_METRIC)
        if not rules:
            return 0
        try:
            metrics = self.metrics.get_host_metrics()
        except MetricsUnavailable as e:
            logger.warning(f"Skipping system metric check: {e}")
            return 0

        fired = 0
        for rule in rules:
            message = evaluate_metric_rule(rule, metrics)
            if message is None or self._refire_suppressed(rule):
                continue
            if self.trigger_alert(rule, message):
                fired += 1
        return fired

    def _refire_suppressed(self, rule):
        if not self.min_refire_seconds or rule.last_triggered is None:
            return False
        elapsed = (datetime.now(timezone.utc) - rule.last_triggered).total_seconds()
        if elapsed < self.min_refire_seconds:
            logger.debug(f"Rule {rule.name} fired {elapsed:.0f}s ago, within min_refire_seconds")
            return True
        return False

    def check_log_patterns(self):
        fired = 0
        for rule in self._enabled_rules(RuleType.LOG_PATTERN):
            if not rule.log_pattern:
                logger.debug(f"Rule {rule.name} has no log pattern, skipping")
                continue
            try:
                matches = self._new_matches(rule, rule.log_pattern, self.log_pattern_limit)
            except Exception as e:
                logger.warning(f"Log pattern check failed for rule {rule.name}: {e}")
                continue
            if matches and self.trigger_alert(rule, log_pattern_message(rule.log_pattern, matches)):
                fired += 1
        self._maybe_cleanup()
        return fired

    def check_exceptions(self):
        fired = 0
        for rule in self._enabled_rules(RuleType.EXCEPTION_DETECTION):
            pattern = rule.log_pattern or DEFAULT_EXCEPTION_PATTERN
            try:
                matches = self._new_matches(rule, pattern, self.exception_limit)
            except Exception as e:
                logger.warning(f"Exception check failed for rule {rule.name}: {e}")
                continue
            if matches and self.trigger_alert(rule, exception_message(matches)):
                fired += 1
        self._maybe_cleanup()
        return fired

    def _new_matches(self, rule, pattern, limit):
        """Search results inside the recency window not alerted on before, newest first."""
        results = self.search.search(
            query=pattern,
            app_filter=rule.app_filter,
            log_filter=rule.log_filter,
            limit=limit,
        )
        cutoff = datetime.now(timezone.utc) - self.recent_window
        new = []
        for result in results:
            if result.timestamp < cutoff:
                continue
            entry_hash = fingerprint(result.file, result.message, result.timestamp.timestamp())
            if self.dedup.is_processed(entry_hash):
                continue
            new.append(result)
            self.dedup.mark_processed(entry_hash)
        if new:
            logger.debug(f"Rule {rule.name}: {len(new)} new of {len(results)} matches")
        return new

    def run_once(self):
        """Evaluate all three monitors once. Returns fired counts per monitor."""
        return {
            "system": self.check_system_metrics(),
            "logs": self.check_log_patterns(),
            "exceptions": self.check_exceptions(),
        }

    # --- Processed entry cleanup ---

    def initial_cleanup(self):
        removed = self.dedup.cleanup(self.retention_hours)
        logger.info(f"Initial cleanup: removed {removed} old processed entries")
        count = self.dedup.count()
        if count is not None:
            logger.info(f"Starting with {count} processed entries in database")
        return removed

    def _maybe_cleanup(self):
        with self._cleanup_lock:
            now = time.monotonic()
            if now - self._last_cleanup < self.cleanup_interval:
                return None
            self._last_cleanup = now
        thread = threading.Thread(
            target=self.dedup.cleanup, args=(self.retention_hours,),
            name="dedup-cleanup", daemon=True,
        )
        thread.start()
        return thread

    # --- Trigger path ---

    def trigger_alert(self, rule, message):
        """Persist, notify and broadcast one firing of ``rule``. Returns the Alert or None."""
        now = datetime.now(timezone.utc)
        alert = Alert(
            rule_id=rule.id,
            type=rule.name,
            severity=rule.severity,
            message=message,
            timestamp=now,
        )
        try:
            self.db.save_alert(alert)
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.error(f"Failed to record alert for rule {rule.name}: {e}")
            return None

        try:
            self.db.update_rule_last_triggered(rule.id, now)
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.warning(f"Failed to update last_triggered for rule {rule.name}: {e}")
        self._store_last_triggered(rule, now)

        if rule.email_enabled and self.dispatcher is not None:
            self.dispatcher.dispatch(rule.name, message, rule.severity)

        logger.info(f"Triggered: {rule.name} - {message}")

        if self.broadcaster is not None:
            self.broadcaster.publish_new_alert(alert)
            self.broadcaster.publish_rule_updated(rule.id, now)
        return alert

    def trigger_test_alert(self):
        """Record a manual test alert with no rule and broadcast it."""
        alert = Alert(
            rule_id=None,
            type=TEST_ALERT_TYPE,
            severity="medium",
            message=TEST_ALERT_MESSAGE,
        )
        self.db.save_alert(alert)
        logger.info(f"Test alert {alert.id} recorded")
        if self.broadcaster is not None:
            self.broadcaster.publish_new_alert(alert)
        return alert

    def resolve_alert(self, alert_id):
        resolved_at = self.db.resolve_alert(alert_id)
        logger.info(f"Alert {alert_id} resolved")
        if self.broadcaster is not None:
            self.broadcaster.publish_alert_resolved(alert_id, resolved_at)
        return resolved_at
