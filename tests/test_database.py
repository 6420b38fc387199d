"""Tests for the SQLite store."""
import pytest
from datetime import datetime, timezone, timedelta
from models.alerts import AlertRule, Alert
from models.database import Database
from utils.errors import NotFound, StoreUnavailable


def _rule(rule_id="rule_1", **kwargs):
    defaults = dict(id=rule_id, name="High CPU", type="system_metric",
                    condition="cpu_high", threshold=80.0, severity="high")
    defaults.update(kwargs)
    return AlertRule(**defaults)


def test_tables_created(temp_db):
    rows = temp_db.conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    names = {r["name"] for r in rows}
    assert {"alert_rules", "alerts", "processed_log_entries", "app_settings"} <= names


def test_unconnected_store_raises():
    db = Database(":memory:")
    with pytest.raises(StoreUnavailable):
        db.get_alert_rules()


def test_rule_crud(temp_db):
    temp_db.create_alert_rule(_rule())
    rule = temp_db.get_alert_rule("rule_1")
    assert rule.name == "High CPU"
    assert rule.threshold == 80.0
    assert rule.enabled is True
    assert rule.created_at.tzinfo is not None

    temp_db.update_alert_rule(_rule(name="Very high CPU", threshold=95.0, enabled=False))
    rule = temp_db.get_alert_rule("rule_1")
    assert rule.name == "Very high CPU"
    assert rule.enabled is False

    temp_db.delete_alert_rule("rule_1")
    assert temp_db.get_alert_rules() == []


def test_rule_unknown_id(temp_db):
    with pytest.raises(NotFound):
        temp_db.get_alert_rule("missing")
    with pytest.raises(NotFound):
        temp_db.update_alert_rule(_rule("missing"))
    with pytest.raises(NotFound):
        temp_db.delete_alert_rule("missing")


def test_last_triggered(temp_db):
    temp_db.create_alert_rule(_rule())
    when = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    temp_db.update_rule_last_triggered("rule_1", when)
    assert temp_db.get_alert_rule("rule_1").last_triggered == when


def test_save_and_history(temp_db):
    now = datetime.now(timezone.utc)
    first = Alert(rule_id="rule_1", type="High CPU", severity="high", message="a",
                  timestamp=now - timedelta(minutes=5))
    second = Alert(rule_id=None, type="test", severity="medium", message="b", timestamp=now)
    assert temp_db.save_alert(first) == first.id
    temp_db.save_alert(second)

    history = temp_db.get_alert_history()
    assert [a.message for a in history] == ["b", "a"]
    assert history[0].rule_id is None
    assert temp_db.get_alert_history(limit=1)[0].id == second.id


def test_resolve_alert(temp_db):
    alert = Alert(rule_id="rule_1", type="x", message="m")
    temp_db.save_alert(alert)
    resolved_at = temp_db.resolve_alert(alert.id)

    stored = temp_db.get_alert(alert.id)
    assert stored.resolved is True
    assert stored.resolved_at == resolved_at

    with pytest.raises(NotFound):
        temp_db.resolve_alert(9999)


def test_alert_stats(temp_db):
    for sev in ("high", "high", "low"):
        temp_db.save_alert(Alert(type="x", severity=sev, message="m"))
    temp_db.save_alert(Alert(type="x", severity="critical", message="old",
                             timestamp=datetime.now(timezone.utc) - timedelta(days=60)))
    assert temp_db.get_alert_stats(days=30) == {"high": 2, "low": 1}


def test_mark_processed_idempotent(temp_db):
    temp_db.mark_entry_processed("abc")
    temp_db.mark_entry_processed("abc")
    assert temp_db.is_entry_processed("abc")
    assert not temp_db.is_entry_processed("def")
    assert temp_db.count_processed_entries() == 1


def test_cleanup_processed_entries(temp_db):
    now = datetime.now(timezone.utc)
    temp_db.mark_entry_processed("old1", now - timedelta(hours=30))
    temp_db.mark_entry_processed("old2", now - timedelta(hours=25))
    temp_db.mark_entry_processed("fresh", now - timedelta(hours=1))

    assert temp_db.cleanup_processed_entries(24) == 2
    assert temp_db.is_entry_processed("fresh")
    assert not temp_db.is_entry_processed("old1")
    assert temp_db.cleanup_processed_entries(24) == 0


def test_settings(temp_db):
    assert temp_db.get_settings() == {}
    temp_db.save_settings({"app_name": "hostwatch", "theme": "dark"})
    temp_db.save_settings({"theme": "light"})
    assert temp_db.get_settings() == {"app_name": "hostwatch", "theme": "light"}
