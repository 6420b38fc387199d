"""Log search over configured application logs using external grep tools."""
import os
import time
import signal
import logging
import tempfile
import threading
import subprocess
from datetime import datetime, timezone
from models.logs import LogFile, LogResult
from logs.parsing import parse_level, parse_timestamp, sentinel_timestamp
from logs.searchers import default_searchers
from utils.errors import ConfigurationNotFound, NoCompatibleFiles, SubprocessFailure

logger = logging.getLogger("hostwatch.logs.search")


class LogSearch:
    """Runs bounded grep searches and turns their output into LogResults.

    Latency and memory are bounded three ways: only the ``max_files`` most
    recently modified candidates are scanned, every subprocess shares one
    ``timeout`` deadline (partial output is kept when it expires), and no
    more than ``max_scan`` records are accumulated before sorting.
    """

    def __init__(self, discovery, searchers=None, max_files=5, max_scan=2000,
                 timeout=10.0, max_count_per_file=500):
        self.discovery = discovery
        self.searchers = list(searchers) if searchers is not None else default_searchers()
        self.max_files = max_files
        self.max_scan = max_scan
        self.timeout = timeout
        self.max_count_per_file = max_count_per_file

    def search(self, query="", app_filter="", log_filter="", specific_file="",
               level_filter="", limit=100):
        files, path_map = self._resolve_files(app_filter, log_filter, specific_file)
        if not files:
            logger.info(f"No files found for app={app_filter or '*'}, log={log_filter or '*'}")
            return []

        files = self._cap_files(files)
        plan = self._plan(files)
        logger.debug(
            f"Searching {sum(len(p) for _, p in plan)} files for query={query!r}, level={level_filter or '*'}"
        )

        level_filter = (level_filter or "").upper()
        now = datetime.now(timezone.utc)
        sentinel = sentinel_timestamp(now)
        deadline = time.monotonic() + self.timeout
        collected = []

        for searcher, paths in plan:
            if len(collected) >= self.max_scan:
                break
            lines = self._run(searcher, query, paths, deadline)
            try:
                for line in lines:
                    path, sep, content = line.partition(":")
                    if not sep:
                        continue

                    level = parse_level(content)
                    if level_filter and level != level_filter:
                        continue

                    ts, message = parse_timestamp(content, now=now)
                    collected.append(LogResult(
                        app=self.discovery.app_for_path(path, path_map),
                        file=path,
                        level=level,
                        message=message,
                        timestamp=ts or sentinel,
                    ))
                    if len(collected) >= self.max_scan:
                        logger.debug(f"Scan cap of {self.max_scan} records reached")
                        break
            finally:
                lines.close()

        collected.sort(key=lambda r: r.timestamp, reverse=True)
        logger.debug(f"Collected {len(collected)} results, returning {min(len(collected), limit)}")
        return collected[:limit]

    def _resolve_files(self, app_filter, log_filter, specific_file):
        if specific_file:
            path_map = {specific_file: app_filter or self.discovery.app_for_path(specific_file)}
            try:
                st = os.stat(specific_file)
            except FileNotFoundError:
                return [], path_map
            return [LogFile(
                name=os.path.basename(specific_file),
                path=specific_file,
                size=st.st_size,
                mod_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            )], path_map

        matched = list(self.discovery.entries(app_filter, log_filter))
        if not matched and (app_filter or log_filter):
            raise ConfigurationNotFound(app_filter or "*", log_filter or None)

        # Rotated files are only searched when asked for by name; a line moved
        # from app.log to app.log.1 would otherwise come back under a new path.
        files, path_map = [], {}
        for app, log, _ in matched:
            for f in self.discovery.list_files(app, log):
                if f.is_archive:
                    continue
                if f.path not in path_map:
                    files.append(f)
                    path_map[f.path] = app
        return files, path_map

    def _cap_files(self, files):
        if len(files) <= self.max_files:
            return files
        newest = sorted(files, key=lambda f: f.mod_time, reverse=True)[: self.max_files]
        logger.debug(f"Limiting search to {self.max_files} newest of {len(files)} files")
        return newest

    def _plan(self, files):
        """Group files by the searcher that can read them; drop those without an available tool."""
        plan = []
        skipped = []
        for f in files:
            searcher = next((s for s in self.searchers if s.handles(f.path)), None)
            if searcher is None or not searcher.available():
                skipped.append(f.path)
                continue
            for entry in plan:
                if entry[0] is searcher:
                    entry[1].append(f.path)
                    break
            else:
                plan.append((searcher, [f.path]))

        if skipped:
            logger.warning(f"No search tool available for {len(skipped)} file(s): {', '.join(skipped)}")
        if not plan:
            raise NoCompatibleFiles(f"None of {len(files)} candidate files can be searched")
        return plan

    def _run(self, searcher, pattern, paths, deadline):
        """Stream stdout lines of one search process, killing it at the deadline.

        The tool runs in its own session so the whole process group can be
        killed: zgrep and friends are shell scripts whose decompressor and
        grep children hold stdout open after the script itself dies. stderr
        goes to a temp file so a chatty tool never blocks on a full pipe.
        """
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning(f"Search deadline passed, skipping {searcher.tool} on {len(paths)} file(s)")
            return

        cmd = searcher.build_command(pattern, paths, self.max_count_per_file)
        logger.debug(f"Executing: {' '.join(cmd)}")
        errfile = tempfile.TemporaryFile(mode="w+", errors="replace")
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=errfile,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except OSError as e:
            errfile.close()
            raise SubprocessFailure(f"Failed to start {searcher.tool}: {e}", command=cmd) from e

        timed_out = threading.Event()

        def _expire():
            timed_out.set()
            _kill_group(proc)

        timer = threading.Timer(remaining, _expire)
        timer.daemon = True
        timer.start()

        produced = 0
        drained = False
        try:
            for line in proc.stdout:
                produced += 1
                yield line.rstrip("\r\n")
            drained = True
        finally:
            timer.cancel()
            if not drained:
                _kill_group(proc)
            proc.stdout.close()
            proc.wait()
            errfile.seek(0)
            stderr = errfile.read()
            errfile.close()

        if timed_out.is_set():
            logger.warning(f"{searcher.tool} timed out after {self.timeout}s, keeping {produced} partial lines")
            return
        # grep: 0 = matches, 1 = no matches, >1 = error
        if proc.returncode > 1:
            if produced == 0:
                raise SubprocessFailure(
                    f"{searcher.tool} exited with status {proc.returncode}: {stderr.strip()}",
                    command=cmd, returncode=proc.returncode, stderr=stderr,
                )
            logger.warning(f"{searcher.tool} exited with status {proc.returncode}: {stderr.strip()}")


def _kill_group(proc):
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
