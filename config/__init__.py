"""Configuration management.

Layers, lowest to highest precedence:
  1. config/default_config.yaml
  2. an override YAML file (explicit path, else the first of SEARCH_PATHS that exists)
  3. HOSTWATCH_* environment variables
"""
import os
import logging
import yaml
from pathlib import Path

logger = logging.getLogger("hostwatch.config")

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

SEARCH_PATHS = (
    Path("/etc/hostwatch/config.yaml"),
    Path("config.yaml"),
)

# env var -> (config path, converter)
ENV_OVERRIDES = {
    "HOSTWATCH_DB_PATH": (("database", "path"), str),
    "HOSTWATCH_LOG_LEVEL": (("logging", "level"), str.upper),
    "HOSTWATCH_LISTEN_PORT": (("server", "port"), int),
}

REQUIRED_SECTIONS = ("server", "database", "logging", "apps", "search", "alerts", "notifiers")
INTERVAL_BOUNDS = (5, 86400)


def _read_yaml(path):
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _find_override(path):
    if path:
        if Path(path).exists():
            return Path(path)
        logger.warning(f"Config file {path} not found, using defaults")
        return None
    return next((p for p in SEARCH_PATHS if p.exists()), None)


def load_config(path=None):
    """Build the effective config dict and cache it for get_config()."""
    global _config

    config = _read_yaml(_DEFAULT_CONFIG)

    override = _find_override(path)
    if override is not None:
        config = _deep_merge(config, _read_yaml(override))
        logger.debug(f"Loaded config overrides from {override}")

    _apply_env(config)
    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _apply_env(config):
    for env_key, (keys, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_key)
        if not raw:
            continue
        try:
            value = convert(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_key}: {raw!r}") from e
        section = config
        for key in keys[:-1]:
            section = section.setdefault(key, {})
        section[keys[-1]] = value


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    merged = dict(base)
    for key, val in override.items():
        if isinstance(merged.get(key), dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


def _validate_config(config):
    """Raise ValueError for configs the monitors or search cannot run with."""
    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    apps = config["apps"] or []
    if not isinstance(apps, list):
        raise ValueError("apps must be a list")
    for app in apps:
        if not app.get("name"):
            raise ValueError("Every app needs a name")
        for entry in app.get("logs") or []:
            if not entry.get("name") or not entry.get("path"):
                raise ValueError(f"Log entries of app '{app['name']}' need a name and a path")

    low, high = INTERVAL_BOUNDS
    for name, seconds in config["alerts"].get("intervals", {}).items():
        if not isinstance(seconds, (int, float)) or not low <= seconds <= high:
            raise ValueError(f"alerts.intervals.{name} must be between {low} and {high} seconds")

    if config["search"].get("timeout_seconds", 10) <= 0:
        raise ValueError("search.timeout_seconds must be positive")
