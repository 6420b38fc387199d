"""Tests for config loading, merging and validation."""
import pytest
import yaml
from config import load_config, get_config, _deep_merge, _validate_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("HOSTWATCH_DB_PATH", "HOSTWATCH_LOG_LEVEL", "HOSTWATCH_LISTEN_PORT"):
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_defaults(monkeypatch):
    monkeypatch.setattr("config.SEARCH_PATHS", ())
    config = load_config()
    assert config["server"]["port"] == 7005
    assert config["apps"] == []
    assert config["alerts"]["intervals"] == {"system": 60, "logs": 30, "exceptions": 30}
    assert config["alerts"]["min_refire_seconds"] == 0
    assert config["search"]["max_files"] == 5
    assert config["notifiers"]["email"]["enabled"] is False


def test_get_config_caches():
    loaded = load_config()
    assert get_config() is loaded


def test_override_file_merges(tmp_path):
    path = _write(tmp_path, {
        "server": {"port": 9000},
        "alerts": {"intervals": {"logs": 10}},
        "apps": [{"name": "api", "logs": [{"name": "app", "path": "/var/log/api"}]}],
    })
    config = load_config(path)
    assert config["server"]["port"] == 9000
    assert config["server"]["host"] == "0.0.0.0"
    assert config["alerts"]["intervals"] == {"system": 60, "logs": 10, "exceptions": 30}
    assert config["apps"][0]["name"] == "api"


def test_missing_override_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "nope.yaml"))
    assert config["server"]["port"] == 7005


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("HOSTWATCH_LISTEN_PORT", "8088")
    monkeypatch.setenv("HOSTWATCH_DB_PATH", "/tmp/hw.db")
    config = load_config()
    assert config["server"]["port"] == 8088
    assert config["database"]["path"] == "/tmp/hw.db"


def test_deep_merge_does_not_mutate_base():
    base = {"a": {"b": 1, "c": 2}}
    merged = _deep_merge(base, {"a": {"b": 5}})
    assert merged == {"a": {"b": 5, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


@pytest.mark.parametrize("override,message", [
    ({"alerts": {"intervals": {"system": 1}}}, "between"),
    ({"alerts": {"intervals": {"logs": "often"}}}, "between"),
    ({"search": {"timeout_seconds": 0}}, "positive"),
    ({"apps": {"api": {}}}, "list"),
    ({"apps": [{"logs": []}]}, "name"),
    ({"apps": [{"name": "api", "logs": [{"name": "app"}]}]}, "path"),
])
def test_invalid_config(tmp_path, override, message):
    with pytest.raises(ValueError, match=message):
        load_config(_write(tmp_path, override))


def test_missing_section():
    with pytest.raises(ValueError, match="alerts"):
        _validate_config({"server": {}, "database": {}, "logging": {}, "apps": [],
                          "search": {}, "notifiers": {}})


def test_invalid_env_value(monkeypatch):
    monkeypatch.setenv("HOSTWATCH_LISTEN_PORT", "eighty")
    with pytest.raises(ValueError, match="HOSTWATCH_LISTEN_PORT"):
        load_config()


def test_search_paths_used_without_explicit_path(tmp_path, monkeypatch):
    import config as config_module
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"server": {"port": 7100}}))
    monkeypatch.setattr(config_module, "SEARCH_PATHS", (tmp_path / "absent.yaml", path))
    assert load_config()["server"]["port"] == 7100
