"""Background scheduler running the alert engine's monitors."""
import logging
import threading
import schedule

logger = logging.getLogger("hostwatch.scheduler")

DEFAULT_INTERVALS = {"system": 60, "logs": 30, "exceptions": 30}


class EngineScheduler:
    """One daemon thread per monitor, each with its own schedule.Scheduler.

    A monitor that is still running when its next tick comes due is skipped
    for that tick rather than run concurrently with itself.
    """

    def __init__(self, engine, intervals=None, poll_seconds=1.0):
        self.engine = engine
        self.intervals = dict(DEFAULT_INTERVALS)
        self.intervals.update(intervals or {})
        self.poll_seconds = poll_seconds
        self._stop = threading.Event()
        self._threads = []
        self._guards = {}
        self._consecutive_failures = {}

    @property
    def running(self):
        return any(t.is_alive() for t in self._threads)

    def _jobs(self):
        return {
            "system": self.engine.check_system_metrics,
            "logs": self.engine.check_log_patterns,
            "exceptions": self.engine.check_exceptions,
        }

    def start(self):
        """Start the monitor threads and the one-shot initial cleanup."""
        if self.running:
            return
        self._stop.clear()
        self._threads = []

        cleanup = threading.Thread(target=self._initial_cleanup, name="initial-cleanup", daemon=True)
        cleanup.start()
        self._threads.append(cleanup)

        for name, func in self._jobs().items():
            interval = self.intervals[name]
            self._guards[name] = threading.Lock()
            self._consecutive_failures[name] = 0
            thread = threading.Thread(
                target=self._run_loop, args=(name, func, interval),
                name=f"monitor-{name}", daemon=True,
            )
            thread.start()
            self._threads.append(thread)
            logger.info(f"Monitor '{name}' started (every {interval}s)")

    def stop(self, timeout=5):
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("Scheduler stopped")

    def _initial_cleanup(self):
        try:
            self.engine.initial_cleanup()
        except Exception as e:
            logger.warning(f"Initial cleanup failed: {e}")

    def _run_loop(self, name, func, interval):
        scheduler = schedule.Scheduler()
        scheduler.every(interval).seconds.do(self.run_job, name, func)
        while not self._stop.is_set():
            scheduler.run_pending()
            self._stop.wait(self.poll_seconds)
        scheduler.clear()

    def run_job(self, name, func):
        """Run one tick of a monitor unless another tick of it is still running.

        Scheduled ticks never overlap: each monitor has its own single-threaded
        loop. The guard only matters when run_job is also called from outside
        that loop, for example by a manual run while the scheduler is active.

        Returns the monitor's result, or None when skipped or failed.
        """
        guard = self._guards.setdefault(name, threading.Lock())
        if not guard.acquire(blocking=False):
            logger.warning(f"Monitor '{name}' still running, skipping tick")
            return None
        try:
            result = func()
            self._consecutive_failures[name] = 0
            if result:
                logger.debug(f"Monitor '{name}' fired {result} alerts")
            return result
        except Exception as e:
            failures = self._consecutive_failures.get(name, 0) + 1
            self._consecutive_failures[name] = failures
            logger.error(f"Monitor '{name}' failed ({failures} consecutive): {e}")
            if failures >= 5:
                logger.critical(f"Monitor '{name}' has failed 5+ times in a row")
            return None
        finally:
            guard.release()
