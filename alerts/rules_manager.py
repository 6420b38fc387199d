"""Alert rule management: validated CRUD over the store plus YAML import."""
import re
import time
import logging
import threading
import yaml
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from models.alerts import AlertRule
from models.enums import RuleType, Severity, Condition
from utils.errors import NotFound, RuleValidationError

logger = logging.getLogger("hostwatch.alerts.rules")

VALID_TYPES = {t.value for t in RuleType}
VALID_SEVERITIES = {s.value for s in Severity}
VALID_CONDITIONS = {c.value for c in Condition}

EDITABLE_FIELDS = (
    "name", "description", "type", "condition", "threshold", "severity",
    "enabled", "email_enabled", "log_pattern", "app_filter", "log_filter",
)

_id_lock = threading.Lock()
_last_id = 0


def new_rule_id():
    """``rule_<unix nanoseconds>``, strictly increasing within the process."""
    global _last_id
    with _id_lock:
        stamp = max(time.time_ns(), _last_id + 1)
        _last_id = stamp
    return f"rule_{stamp}"


def validate_rule(rule: AlertRule):
    """Raise RuleValidationError if ``rule`` cannot be evaluated by the engine."""
    if not rule.name or not rule.name.strip():
        raise RuleValidationError("Rule name is required")
    if rule.type not in VALID_TYPES:
        raise RuleValidationError(f"Unknown rule type: {rule.type!r}")
    if rule.severity not in VALID_SEVERITIES:
        raise RuleValidationError(f"Unknown severity: {rule.severity!r}")

    if rule.type == RuleType.SYSTEM_METRIC:
        if rule.condition not in VALID_CONDITIONS:
            raise RuleValidationError(f"Unknown condition: {rule.condition!r}")
        if not 0 <= rule.threshold <= 100:
            raise RuleValidationError(f"Threshold must be a percentage, got {rule.threshold}")
    elif rule.type == RuleType.LOG_PATTERN and not rule.log_pattern:
        raise RuleValidationError("log_pattern rules need a log_pattern")

    if rule.log_pattern:
        try:
            re.compile(rule.log_pattern)
        except re.error as e:
            raise RuleValidationError(f"Invalid log pattern {rule.log_pattern!r}: {e}") from e


def _coerce(data: dict) -> dict:
    """Keep editable fields and normalise their types."""
    values = {k: data[k] for k in EDITABLE_FIELDS if k in data and data[k] is not None}
    try:
        if "threshold" in values:
            values["threshold"] = float(values["threshold"])
    except (TypeError, ValueError) as e:
        raise RuleValidationError(f"Threshold must be a number: {values['threshold']!r}") from e
    for key in ("enabled", "email_enabled"):
        if key in values:
            values[key] = bool(values[key])
    for key in ("name", "description", "type", "condition", "severity",
                "log_pattern", "app_filter", "log_filter"):
        if key in values:
            values[key] = str(values[key])
    if "severity" in values:
        values["severity"] = values["severity"].lower()
    return values


class RulesManager:
    """Rule mutations go through here so the engine cache and subscribers follow.

    ``on_change`` is called after every successful mutation (normally
    ``AlertEngine.reload_rules``); ``broadcaster`` receives a
    ``rule_updated`` update for created, updated and toggled rules.
    """

    def __init__(self, db, on_change=None, broadcaster=None):
        self.db = db
        self.on_change = on_change
        self.broadcaster = broadcaster

    def _changed(self, rule=None):
        if self.on_change is not None:
            self.on_change()
        if self.broadcaster is not None and rule is not None:
            self.broadcaster.publish_rule_updated(rule.id, rule.last_triggered)

    def list_rules(self):
        return self.db.get_alert_rules()

    def get_rule(self, rule_id):
        return self.db.get_alert_rule(rule_id)

    def create_rule(self, data: dict) -> AlertRule:
        now = datetime.now(timezone.utc)
        rule = AlertRule(id=new_rule_id(), created_at=now, updated_at=now, **_coerce(data))
        validate_rule(rule)
        self.db.create_alert_rule(rule)
        logger.info(f"Created rule {rule.id} ({rule.name})")
        self._changed(rule)
        return rule

    def update_rule(self, rule_id, data: dict) -> AlertRule:
        existing = self.db.get_alert_rule(rule_id)
        rule = replace(existing, updated_at=datetime.now(timezone.utc), **_coerce(data))
        validate_rule(rule)
        self.db.update_alert_rule(rule)
        logger.info(f"Updated rule {rule.id} ({rule.name})")
        self._changed(rule)
        return rule

    def toggle_rule(self, rule_id, enabled: bool) -> AlertRule:
        return self.update_rule(rule_id, {"enabled": enabled})

    def delete_rule(self, rule_id):
        self.db.delete_alert_rule(rule_id)
        logger.info(f"Deleted rule {rule_id}")
        self._changed()

    def seed_defaults(self, config: dict):
        """Create the configured cpu_high/disk_low rules when no rules exist yet."""
        if self.db.count_alert_rules() > 0:
            return []
        defaults = config.get("alerts", {}).get("defaults", {})
        seeds = []
        cpu = defaults.get("cpu_high", {})
        if cpu.get("enabled", True):
            seeds.append({
                "name": "High CPU usage",
                "description": "CPU usage above threshold",
                "type": RuleType.SYSTEM_METRIC.value,
                "condition": Condition.CPU_HIGH.value,
                "threshold": cpu.get("threshold", 80.0),
                "severity": Severity.HIGH.value,
            })
        disk = defaults.get("disk_low", {})
        if disk.get("enabled", True):
            seeds.append({
                "name": "Low disk space",
                "description": "Free disk space below threshold",
                "type": RuleType.SYSTEM_METRIC.value,
                "condition": Condition.DISK_LOW.value,
                "threshold": disk.get("threshold_percent_free", 10.0),
                "severity": Severity.CRITICAL.value,
            })
        created = [self.create_rule(s) for s in seeds]
        if created:
            logger.info(f"Seeded {len(created)} default alert rules")
        return created

    def import_rules(self, path):
        """Load rules from a YAML file with a top-level ``rules`` list.

        Entries with an ``id`` that already exists update that rule; all
        others are created. Invalid entries are logged and skipped.
        Returns ``(imported_rules, skipped_count)``.
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        imported, skipped = [], 0
        for entry in data.get("rules", []):
            if not isinstance(entry, dict):
                skipped += 1
                continue
            try:
                rule_id = entry.get("id")
                if rule_id and self._exists(rule_id):
                    imported.append(self.update_rule(rule_id, entry))
                else:
                    imported.append(self.create_rule(entry))
            except RuleValidationError as e:
                logger.warning(f"Skipping rule {entry.get('name', entry.get('id'))!r} from {path}: {e}")
                skipped += 1
        logger.info(f"Imported {len(imported)} rules from {path} ({skipped} skipped)")
        return imported, skipped

    def _exists(self, rule_id):
        try:
            self.db.get_alert_rule(rule_id)
            return True
        except NotFound:
            return False
