"""Ephemeral records produced by log discovery and log search."""
from dataclasses import dataclass
from datetime import datetime


@dataclass
class LogFile:
    name: str
    path: str
    size: int
    mod_time: datetime
    is_archive: bool = False

    def to_dict(self):
        return {
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "mod_time": self.mod_time.isoformat(),
            "is_archive": self.is_archive,
        }


@dataclass
class LogResult:
    app: str
    file: str
    level: str
    message: str
    timestamp: datetime

    def to_dict(self):
        return {
            "app": self.app,
            "file": self.file,
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
