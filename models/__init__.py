"""Data models."""
from models.enums import RuleType, Severity, Condition, LogLevel
from models.alerts import AlertRule, Alert
from models.logs import LogFile, LogResult
