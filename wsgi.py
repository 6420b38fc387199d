"""WSGI entry point for production deployment (e.g. gunicorn wsgi:app)."""
import sys
import os
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from main import _init_components
from monitor.scheduler import EngineScheduler
from web.app import create_app

logger = logging.getLogger("hostwatch.wsgi")

components = _init_components(os.environ.get("HOSTWATCH_CONFIG"))
config = components["config"]

app = create_app(config, components)

# Run monitors inside the web process unless disabled (one worker only)
if os.environ.get("HOSTWATCH_DISABLE_MONITORS", "").lower() not in ("1", "true", "yes"):
    scheduler = EngineScheduler(components["alert_engine"], config["alerts"].get("intervals"))
    scheduler.start()
    logger.info("Alert monitors started in WSGI process")
