"""Tests for the Flask JSON API."""
import json
import pytest
from unittest.mock import MagicMock
from datetime import datetime, timezone

from conftest import FakeMetrics, FakeSearch
from web.app import create_app
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager
from alerts.pubsub import AlertBroadcaster
from models.logs import LogResult
from utils.errors import ConfigurationNotFound, SubprocessFailure


RESULT = LogResult(app="api", file="/var/log/api/app.log", level="ERROR",
                   message="database timeout",
                   timestamp=datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def engines(temp_db, discovery):
    broadcaster = AlertBroadcaster()
    search = FakeSearch([RESULT])
    metrics = FakeMetrics(cpu=12.5)
    alert_engine = AlertEngine(temp_db, search, metrics, broadcaster=broadcaster)
    rules = RulesManager(temp_db, on_change=alert_engine.reload_rules, broadcaster=broadcaster)
    return {
        "db": temp_db,
        "discovery": discovery,
        "search": search,
        "metrics": metrics,
        "alert_engine": alert_engine,
        "rules": rules,
        "broadcaster": broadcaster,
    }


@pytest.fixture
def client(engines):
    app = create_app({"search": {"default_limit": 500}}, engines)
    app.config["TESTING"] = True
    return app.test_client()


def _events(chunks):
    return [json.loads(c.decode()[len("data: "):]) for c in chunks]


# ── Apps & Metrics ───────────────────────────────────────

def test_apps(client):
    data = client.get("/api/apps").get_json()
    assert data["count"] == 2
    assert data["apps"][0]["name"] == "api"
    assert data["apps"][0]["service_name"] == "api.service"
    assert [l["name"] for l in data["apps"][1]["logs"]] == ["main", "missing"]


def test_host_metrics(client):
    resp = client.get("/api/metrics/host")
    assert resp.status_code == 200
    assert resp.get_json()["cpu_percent"] == 12.5


def test_host_metrics_unavailable(client, engines):
    engines["metrics"].fail = True
    resp = client.get("/api/metrics/host")
    assert resp.status_code == 503
    assert "error" in resp.get_json()


# ── Logs ─────────────────────────────────────────────────

def test_log_files(client):
    data = client.get("/api/logs/files?app=worker&log=main").get_json()
    assert data["count"] == 2
    assert [f["name"] for f in data["files"]] == ["worker.log", "worker.log.1"]
    assert data["files"][1]["is_archive"] is True


def test_log_files_requires_params(client):
    resp = client.get("/api/logs/files?app=worker")
    assert resp.status_code == 400
    assert resp.get_json()["files"] == []


def test_log_files_unknown(client):
    resp = client.get("/api/logs/files?app=ghost&log=main")
    assert resp.status_code == 404
    assert resp.get_json()["files"] == []


def test_log_search(client, engines):
    data = client.get("/api/logs/search?q=timeout&app=api&log=app&limit=10").get_json()
    assert data["count"] == 1
    assert data["results"][0]["message"] == "database timeout"
    assert data["results"][0]["timestamp"] == "2024-03-01T10:00:00+00:00"
    assert engines["search"].calls[0] == {"query": "timeout", "app_filter": "api",
                                          "log_filter": "app", "limit": 10}


def test_log_search_default_limit(client, engines):
    client.get("/api/logs/search")
    assert engines["search"].calls[0]["limit"] == 500


@pytest.mark.parametrize("error,status", [
    (ConfigurationNotFound("ghost"), 404),
    (SubprocessFailure("grep exited with status 2", command=["grep"]), 500),
])
def test_log_search_errors(client, engines, error, status):
    engines["search"].error = error
    resp = client.get("/api/logs/search?q=x")
    assert resp.status_code == status
    assert resp.get_json()["results"] == []
    assert resp.get_json()["error"]


def test_log_stream_requires_params(client):
    assert client.get("/api/logs/stream?app=api").status_code == 400


def test_log_stream_unknown_target(client):
    assert client.get("/api/logs/stream?app=api&log=app&file=other.log").status_code == 404


def test_log_stream_connects(client, log_tree):
    resp = client.get("/api/logs/stream?app=worker&log=main", buffered=False)
    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    stream = iter(resp.response)
    assert _events([next(stream)]) == [{"type": "connected", "file": str(log_tree / "worker.log")}]
    resp.close()


# ── Alerts ───────────────────────────────────────────────

def test_test_alert_and_history(client):
    resp = client.post("/api/alerts/test")
    assert resp.status_code == 200
    alert = resp.get_json()["alert"]
    assert alert["type"] == "test"
    assert alert["rule_id"] is None

    history = client.get("/api/alerts/history").get_json()
    assert history["count"] == 1
    assert history["alerts"][0]["id"] == alert["id"]


def test_alert_stats(client):
    client.post("/api/alerts/test")
    client.post("/api/alerts/test")
    data = client.get("/api/alerts/stats?days=7").get_json()
    assert data == {"days": 7, "by_severity": {"medium": 2}}


def test_resolve_alert(client, engines):
    alert_id = client.post("/api/alerts/test").get_json()["alert"]["id"]
    assert client.post(f"/api/alerts/{alert_id}/resolve").get_json() == {"status": "resolved"}
    assert engines["db"].get_alert(alert_id).resolved is True
    assert client.post("/api/alerts/9999/resolve").status_code == 404


def test_alert_stream_delivers_updates(client, engines):
    broadcaster = engines["broadcaster"]
    resp = client.get("/api/alerts/stream", buffered=False)
    assert resp.mimetype == "text/event-stream"
    assert broadcaster.subscriber_count == 1

    stream = iter(resp.response)
    first = next(stream)
    broadcaster.publish({"type": "rule_updated", "rule_id": "rule_1"})
    second = next(stream)
    assert _events([first, second]) == [
        {"type": "connected"},
        {"type": "rule_updated", "rule_id": "rule_1"},
    ]
    resp.close()
    assert broadcaster.subscriber_count == 0


def test_alert_stream_ends_when_client_falls_behind(client, engines):
    broadcaster = engines["broadcaster"]
    broadcaster.max_queue = 2
    resp = client.get("/api/alerts/stream", buffered=False)
    stream = iter(resp.response)
    chunks = [next(stream)]

    for i in range(3):
        broadcaster.publish({"type": "rule_updated", "rule_id": f"rule_{i}"})
    chunks.extend(stream)

    events = _events(chunks)
    assert events[0] == {"type": "connected"}
    assert events[-1] == {"type": "resync"}
    assert broadcaster.subscriber_count == 0
    resp.close()


# ── Rules ────────────────────────────────────────────────

NEW_RULE = {
    "name": "API errors",
    "type": "log_pattern",
    "log_pattern": "ERROR",
    "app_filter": "api",
    "severity": "high",
}


def test_rule_lifecycle(client, engines):
    resp = client.post("/api/alerts/rules", json=NEW_RULE)
    assert resp.status_code == 201
    rule_id = resp.get_json()["id"]
    assert rule_id in engines["alert_engine"].rules

    resp = client.put(f"/api/alerts/rules/{rule_id}", json={"severity": "critical"})
    assert resp.get_json()["severity"] == "critical"

    resp = client.post(f"/api/alerts/rules/{rule_id}/toggle", json={"enabled": False})
    assert resp.get_json() == {"status": "updated"}
    assert engines["alert_engine"].rules[rule_id].enabled is False

    rules = client.get("/api/alerts/rules").get_json()["rules"]
    assert [r["id"] for r in rules] == [rule_id]

    assert client.delete(f"/api/alerts/rules/{rule_id}").get_json() == {"status": "deleted"}
    assert dict(engines["alert_engine"].rules) == {}


def test_rule_validation_errors(client):
    assert client.post("/api/alerts/rules", json={**NEW_RULE, "log_pattern": ""}).status_code == 400
    assert client.post("/api/alerts/rules", data="not json").status_code == 400


def test_rule_not_found(client):
    assert client.put("/api/alerts/rules/rule_0", json={"name": "x"}).status_code == 404
    assert client.delete("/api/alerts/rules/rule_0").status_code == 404
    assert client.post("/api/alerts/rules/rule_0/toggle", json={"enabled": True}).status_code == 404
    assert client.post("/api/alerts/rules/rule_0/toggle", json={}).status_code == 400
    assert client.post("/api/alerts/rules/rule_0/toggle", json={"enabled": "false"}).status_code == 400


# ── Settings ─────────────────────────────────────────────

def test_settings(client):
    assert client.get("/api/settings").get_json() == {}
    resp = client.put("/api/settings", json={"theme": "dark"})
    assert resp.get_json() == {"theme": "dark"}
    assert client.put("/api/settings", json=["bad"]).status_code == 400
