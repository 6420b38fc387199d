"""Host metrics collection via psutil."""
import time
import logging
import psutil
from models.metrics import HostMetrics
from utils.errors import MetricsUnavailable

logger = logging.getLogger("hostwatch.metrics")

BUSY_CORE_PERCENT = 5.0


class MetricsProvider:
    """Collects a HostMetrics snapshot for the disk holding ``disk_path``."""

    def __init__(self, disk_path="/"):
        self.disk_path = disk_path
        # Prime the counters so the first non-blocking cpu_percent() is meaningful
        psutil.cpu_percent(interval=None)
        psutil.cpu_percent(interval=None, percpu=True)

    def get_host_metrics(self) -> HostMetrics:
        try:
            cpu = psutil.cpu_percent(interval=None)
            per_core = psutil.cpu_percent(interval=None, percpu=True)
            mem = psutil.virtual_memory()
            disk = psutil.disk_usage(self.disk_path)
            net = psutil.net_io_counters()
            load1 = psutil.getloadavg()[0]
            uptime = int(time.time() - psutil.boot_time())
        except (OSError, psutil.Error, AttributeError) as e:
            logger.warning(f"Host metrics probe failed: {e}")
            raise MetricsUnavailable(f"Host metrics probe failed: {e}") from e

        return HostMetrics(
            cpu_percent=cpu,
            cpu_cores=psutil.cpu_count(logical=True) or len(per_core),
            busy_cores=sum(1 for p in per_core if p > BUSY_CORE_PERCENT),
            ram_percent=mem.percent,
            ram_total=mem.total,
            ram_used=mem.used,
            disk_percent=disk.percent,
            disk_total=disk.total,
            disk_used=disk.used,
            uptime=uptime,
            load_avg=load1,
            net_sent=net.bytes_sent if net else 0,
            net_recv=net.bytes_recv if net else 0,
        )
