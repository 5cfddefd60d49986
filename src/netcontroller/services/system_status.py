"""Local system metrics reported with the controller heartbeat."""

from __future__ import annotations

import logging

import psutil

logger = logging.getLogger(__name__)

DISK_FREE_WARNING_PERCENT = 15
CPU_LOAD_WARNING_PERCENT = 95


class SystemMetrics:
    """Samples disk headroom, CPU load and this process's CPU share."""

    def __init__(self, disk_path: str = "/") -> None:
        self._disk_path = disk_path
        self._process = psutil.Process()
        # Prime the counters so the first non-blocking sample is meaningful
        psutil.cpu_percent(interval=None)
        self._process.cpu_percent(interval=None)

    def disk_free(self) -> int:
        """Free space on the disk holding the working directory, in percent."""
        try:
            usage = psutil.disk_usage(self._disk_path)
        except OSError as exc:
            logger.warning("Cannot read disk usage for %s: %s", self._disk_path, exc)
            return 0
        return int(round(100.0 - usage.percent))

    def cpu_load(self) -> int:
        """Overall CPU load since the previous sample, in percent."""
        return int(round(psutil.cpu_percent(interval=None)))

    def process_cpu_load(self) -> int:
        """CPU share used by this process since the previous sample, in percent."""
        cpu_count = psutil.cpu_count() or 1
        return int(round(self._process.cpu_percent(interval=None) / cpu_count))

    def status(self, disk: int, cpu: int) -> str:
        """Derive the controller's own status from the sampled values."""
        if disk < DISK_FREE_WARNING_PERCENT or cpu > CPU_LOAD_WARNING_PERCENT:
            return "WARN"
        return "OK"

    def sample(self) -> tuple[str, dict[str, int]]:
        """Return the controller status and the stats payload."""
        disk = self.disk_free()
        cpu = self.cpu_load()
        stats = {"disk": disk, "cpu": cpu, "pcpu": self.process_cpu_load()}
        return self.status(disk, cpu), stats
