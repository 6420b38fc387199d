"""Utility modules for hostwatch."""
from utils.logger import setup_logging
from utils.errors import HostwatchError
