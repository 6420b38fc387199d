"""Dataclasses for alert rules and alert records."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def _parse_dt(value):
    if value is None or isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class AlertRule:
    id: str = ""
    name: str = ""
    description: str = ""
    type: str = "system_metric"
    condition: str = ""
    threshold: float = 0.0
    severity: str = "medium"
    enabled: bool = True
    email_enabled: bool = False
    log_pattern: str = ""
    app_filter: str = ""
    log_filter: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_triggered: Optional[datetime] = None

    def to_dict(self):
        d = asdict(self)
        for key in ("created_at", "updated_at", "last_triggered"):
            d[key] = _iso(d[key])
        return d

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description") or "",
            type=d["type"],
            condition=d.get("condition") or "",
            threshold=float(d.get("threshold") or 0.0),
            severity=d.get("severity") or "medium",
            enabled=bool(d.get("enabled")),
            email_enabled=bool(d.get("email_enabled")),
            log_pattern=d.get("log_pattern") or "",
            app_filter=d.get("app_filter") or "",
            log_filter=d.get("log_filter") or "",
            created_at=_parse_dt(d.get("created_at")),
            updated_at=_parse_dt(d.get("updated_at")),
            last_triggered=_parse_dt(d.get("last_triggered")),
        )


@dataclass
class Alert:
    id: Optional[int] = None
    rule_id: Optional[str] = None
    type: str = ""
    severity: str = "medium"
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    def to_dict(self):
        d = asdict(self)
        d["timestamp"] = _iso(d["timestamp"])
        d["resolved_at"] = _iso(d["resolved_at"])
        return d

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        return cls(
            id=d["id"],
            rule_id=d.get("rule_id"),
            type=d.get("type") or "",
            severity=d.get("severity") or "medium",
            message=d.get("message") or "",
            timestamp=_parse_dt(d.get("timestamp")),
            resolved=bool(d.get("resolved")),
            resolved_at=_parse_dt(d.get("resolved_at")),
        )
