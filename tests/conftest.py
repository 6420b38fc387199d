"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from models.metrics import HostMetrics
from logs.discovery import LogDiscovery
from utils.errors import MetricsUnavailable


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


def set_mtime(path, epoch):
    os.utime(path, (epoch, epoch))


@pytest.fixture
def log_tree(tmp_path):
    """A directory-style log and a file-style log with a rotated sibling.

    api/app.log      live file (newest)
    api/app.log.1.gz compressed rotation
    api/notes.md     not a log
    worker.log       single file log
    worker.log.1     rotated sibling
    """
    api = tmp_path / "api"
    api.mkdir()
    (api / "app.log").write_text(
        "2024-03-01 10:00:00 ERROR database timeout\n"
        "2024-03-01 10:00:05 INFO request served\n"
    )
    (api / "app.log.1.gz").write_bytes(b"\x1f\x8b\x08\x00")
    (api / "notes.md").write_text("# notes\n")
    set_mtime(api / "app.log", 1_700_000_200)
    set_mtime(api / "app.log.1.gz", 1_700_000_100)

    worker = tmp_path / "worker.log"
    worker.write_text("2024-03-01 11:00:00 WARN queue backlog\n")
    (tmp_path / "worker.log.1").write_text("2024-02-29 11:00:00 INFO old line\n")
    set_mtime(worker, 1_700_000_300)
    set_mtime(tmp_path / "worker.log.1", 1_700_000_000)
    return tmp_path


@pytest.fixture
def apps_config(log_tree):
    return [
        {
            "name": "api",
            "service_name": "api.service",
            "logs": [{"name": "app", "path": str(log_tree / "api")}],
        },
        {
            "name": "worker",
            "service_name": "worker.service",
            "logs": [
                {"name": "main", "path": str(log_tree / "worker.log")},
                {"name": "missing", "path": str(log_tree / "nope.log")},
            ],
        },
    ]


@pytest.fixture
def discovery(apps_config):
    return LogDiscovery(apps_config)


class FakeMetrics:
    """Metrics provider returning fixed values, or failing when ``fail`` is set."""

    def __init__(self, cpu=10.0, ram=20.0, disk=30.0, fail=False):
        self.metrics = HostMetrics(cpu_percent=cpu, ram_percent=ram, disk_percent=disk)
        self.fail = fail
        self.calls = 0

    def get_host_metrics(self):
        self.calls += 1
        if self.fail:
            raise MetricsUnavailable("probe failed")
        return self.metrics


class FakeSearch:
    """Search stub that returns canned LogResults and records its calls."""

    def __init__(self, results=None, error=None):
        self.results = list(results or [])
        self.error = error
        self.calls = []

    def search(self, query="", app_filter="", log_filter="", specific_file="",
               level_filter="", limit=100):
        self.calls.append({"query": query, "app_filter": app_filter,
                           "log_filter": log_filter, "limit": limit})
        if self.error:
            raise self.error
        return self.results[:limit]


@pytest.fixture
def fake_metrics():
    return FakeMetrics()


@pytest.fixture
def fake_search():
    return FakeSearch()
