"""Dataclass for a host metrics snapshot."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone


@dataclass
class HostMetrics:
    cpu_percent: float = 0.0
    cpu_cores: int = 0
    busy_cores: int = 0  # cores above BUSY_CORE_PERCENT
    ram_percent: float = 0.0
    ram_total: int = 0
    ram_used: int = 0
    disk_percent: float = 0.0
    disk_total: int = 0
    disk_used: int = 0
    uptime: int = 0  # seconds
    load_avg: float = 0.0
    net_sent: int = 0
    net_recv: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def disk_free_percent(self):
        return 100.0 - self.disk_percent

    def to_dict(self):
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d
