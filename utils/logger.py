"""Logging configuration for the ``hostwatch`` logger tree."""
import logging
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "hostwatch"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO", log_file=None):
    """Rich console output on stderr plus an optional plain-text log file.

    Handlers are attached once; later calls only change the level, so CLI
    commands that re-initialise components do not duplicate output.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(numeric_level)

    if root.handlers:
        for handler in root.handlers:
            handler.setLevel(numeric_level)
        return root

    # stderr keeps stdout clean for --json output
    console_handler = RichHandler(
        level=numeric_level,
        console=Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_path=False,
    )
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)

    return root
