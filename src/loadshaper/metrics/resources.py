"""Process resource sampling via psutil."""

from __future__ import annotations

import time
from typing import Optional

import psutil
import structlog

from loadshaper.protocols import ResourceSample

logger = structlog.get_logger(__name__)


class ResourceSampler:
    """
    Reads CPU and memory usage of the load-generating process.

    ``cpu_pct`` is normalised by logical core count so it stays within 0-100.

    ``memory_bytes`` and ``heap_used_bytes`` report resident set size;
    ``heap_total_bytes`` reports virtual memory size.
    """

    def __init__(self, pid: Optional[int] = None) -> None:
        self._process = psutil.Process(pid)
        self._cores = psutil.cpu_count() or 1
        # The first cpu_percent call always returns 0.0; prime it so the first tick is meaningful.
        self._process.cpu_percent(interval=None)

    def sample(self, now: Optional[float] = None) -> ResourceSample:
        now = time.time() if now is None else now
        try:
            with self._process.oneshot():
                cpu = self._process.cpu_percent(interval=None)
                mem = self._process.memory_info()
        except psutil.Error as e:
            logger.warning("Resource sampling failed", error=str(e))
            return ResourceSample(timestamp=now, cpu_pct=0.0, memory_bytes=0, heap_used_bytes=0, heap_total_bytes=0)
        return ResourceSample(
            timestamp=now,
            cpu_pct=min(float(cpu) / self._cores, 100.0),
            memory_bytes=int(mem.rss),
            heap_used_bytes=int(mem.rss),
            heap_total_bytes=int(mem.vms),
        )
