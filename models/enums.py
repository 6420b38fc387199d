"""Enums for rule types, severities, metric conditions and log levels."""
from enum import Enum


class RuleType(str, Enum):
    SYSTEM_METRIC = "system_metric"
    LOG_PATTERN = "log_pattern"
    EXCEPTION_DETECTION = "exception_detection"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Condition(str, Enum):
    CPU_HIGH = "cpu_high"
    MEMORY_HIGH = "memory_high"
    DISK_HIGH = "disk_high"
    DISK_LOW = "disk_low"


class LogLevel(str, Enum):
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"


UPDATE_NEW_ALERT = "new_alert"
UPDATE_RULE_UPDATED = "rule_updated"
UPDATE_ALERT_RESOLVED = "alert_resolved"
UPDATE_RESYNC = "resync"
