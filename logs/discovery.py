"""Resolve configured (app, log) entries to concrete files on disk."""
import os
import re
import logging
from datetime import datetime, timezone
from pathlib import Path
from models.logs import LogFile
from utils.errors import ConfigurationNotFound, LogFileSystemError

logger = logging.getLogger("hostwatch.logs.discovery")

LOG_SUFFIXES = (".txt", ".out", ".err", ".trace")
COMPRESSED_SUFFIXES = (".gz", ".z", ".bz2", ".xz", ".lzma", ".lz4", ".zip", ".zst")

_NUMBERED_ROTATION = re.compile(r"\.\d+$")
_DATED_ROTATION = re.compile(r"[-_.]\d{4}-?\d{2}-?\d{2}(?:[-_]?\d{2,6})?$")


def _strip_compression(name):
    for suffix in COMPRESSED_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)], True
    return name, False


def is_archive(name):
    """Rotated or compressed files: app.log.1, app.log.2.gz, app.log-20240101, app.log.old."""
    lower = name.lower()
    base, compressed = _strip_compression(lower)
    if compressed:
        return True
    return (
        base.endswith(".old")
        or bool(_NUMBERED_ROTATION.search(base))
        or bool(_DATED_ROTATION.search(base))
    )


def is_log_file(name):
    """Heuristic for directory listings: keep log-looking files, skip everything else."""
    lower = name.lower()
    base, compressed = _strip_compression(lower)
    if ".log" in base or base.endswith(LOG_SUFFIXES):
        return True
    if compressed:
        return True
    return bool(_NUMBERED_ROTATION.search(base) or _DATED_ROTATION.search(base))


def _log_file(path, archive):
    st = path.stat()
    return LogFile(
        name=path.name,
        path=str(path),
        size=st.st_size,
        mod_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        is_archive=archive,
    )


class LogDiscovery:
    """Looks up configured log paths and expands them into LogFile lists.

    ``apps`` is the configured list of
    ``{"name": ..., "service_name": ..., "logs": [{"name": ..., "path": ...}]}``.
    """

    def __init__(self, apps=None):
        self.apps = list(apps or [])

    def configured_path(self, app_name, log_name):
        for app in self.apps:
            if app.get("name") != app_name:
                continue
            for entry in app.get("logs", []):
                if entry.get("name") == log_name:
                    return entry.get("path", "")
        raise ConfigurationNotFound(app_name, log_name)

    def entries(self, app_filter="", log_filter=""):
        """Yield (app, log, path) for configured logs matching the filters (empty = any)."""
        for app in self.apps:
            if app_filter and app.get("name") != app_filter:
                continue
            for entry in app.get("logs", []):
                if log_filter and entry.get("name") != log_filter:
                    continue
                yield app.get("name", ""), entry.get("name", ""), entry.get("path", "")

    def list_files(self, app_name, log_name):
        """All files for one configured log, newest first."""
        target = Path(self.configured_path(app_name, log_name))
        logger.debug(f"Resolving {target} for app={app_name}, log={log_name}")

        if not target.exists():
            return []

        try:
            if target.is_dir():
                files = self._list_directory(target)
            else:
                files = self._list_with_siblings(target)
        except OSError as e:
            raise LogFileSystemError(f"Cannot read {target}: {e}", path=str(target)) from e

        files.sort(key=lambda f: f.mod_time, reverse=True)
        logger.debug(f"Found {len(files)} files for app={app_name}, log={log_name}")
        return files

    def _list_directory(self, directory):
        files = []
        for entry in sorted(os.scandir(directory), key=lambda e: e.name):
            if not entry.is_file() or not is_log_file(entry.name):
                continue
            files.append(_log_file(Path(entry.path), is_archive(entry.name)))
        return files

    def _list_with_siblings(self, target):
        files = [_log_file(target, False)]
        base = target.name
        for sibling in sorted(target.parent.iterdir()):
            if sibling.name == base or not sibling.is_file():
                continue
            if sibling.name.startswith(base):
                files.append(_log_file(sibling, True))
        return files

    def app_for_path(self, path, known=None):
        """Find which app owns a path.

        Exact lookup first, then a substring match in either direction for
        paths that differ only in normalisation. When one configured path is
        a prefix of another the first match in ``known`` wins.
        """
        known = known if known is not None else {p: a for a, _, p in self.entries()}
        if path in known:
            return known[path]
        for candidate, app in known.items():
            if candidate and (candidate in path or path in candidate):
                return app
        return ""

    def resolve_stream_target(self, app_name, log_name, file=None):
        """Pick the file to follow: the requested one if it belongs to the log, else the newest live file."""
        files = self.list_files(app_name, log_name)
        if file:
            for f in files:
                if f.path == file or f.name == file:
                    return f.path
            raise ConfigurationNotFound(app_name, f"{log_name}:{file}")
        live = [f for f in files if not f.is_archive]
        if live:
            return live[0].path
        configured = Path(self.configured_path(app_name, log_name))
        if not configured.is_dir():
            return str(configured)
        raise ConfigurationNotFound(app_name, log_name)
