from __future__ import annotations

import os
import socket
import time
import logging
from typing import Any, Optional

import psutil

from loadtest.state import StatusSnapshot

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def pod_identity() -> str:
    """Pod name from ``HOSTNAME``, else the host name, else ``"Unknown"``."""
    name = os.environ.get("HOSTNAME")
    if name:
        return name
    try:
        return socket.gethostname() or "Unknown"
    except OSError:
        return "Unknown"


def available_processors() -> int:
    # Respect the CPU set the container was pinned to where the OS reports it.
    try:
        return max(1, len(os.sched_getaffinity(0)))
    except (AttributeError, OSError):
        return max(1, os.cpu_count() or 1)


class StatusReporter:
    """Reads OS counters and the engine's state into a StatusSnapshot."""

    def __init__(self, engine: Any, cpu_percent_interval_s: Optional[float] = 0.1) -> None:
        self.engine = engine
        self.cpu_percent_interval_s = cpu_percent_interval_s

    def snapshot(self) -> StatusSnapshot:
        try:
            cpu = psutil.cpu_percent(interval=self.cpu_percent_interval_s)
        except Exception as e:
            logger.warning(f"Could not read CPU usage: {e}")
            cpu = 0.0
        try:
            mem = psutil.virtual_memory()
            total_mb = mem.total // MB
            used_mb = (mem.total - mem.available) // MB
        except Exception as e:
            logger.warning(f"Could not read memory usage: {e}")
            total_mb = used_mb = 0

        return StatusSnapshot(
            cpu_usage_percent=float(cpu),
            used_memory_mb=int(used_mb),
            total_memory_mb=int(total_mb),
            available_processors=self.engine.available_processors(),
            pod_name=pod_identity(),
            running=bool(self.engine.running),
        )

    def stats(self) -> dict:
        """Lightweight per-pod stats: identity, scheduling node, load average, process memory."""
        try:
            load = os.getloadavg()[0]
        except (AttributeError, OSError):
            load = 0.0
        try:
            used_bytes = psutil.Process().memory_info().rss
            total_bytes = psutil.virtual_memory().total
        except Exception as e:
            logger.warning(f"Could not read memory usage: {e}")
            used_bytes = total_bytes = 0

        return {
            "node_name": os.environ.get("NODE_NAME") or "Unknown-Node",
            "pod_name": pod_identity(),
            "cpu_load": max(0.0, float(load)),
            "used_memory_bytes": int(used_bytes),
            "max_memory_bytes": int(total_bytes),
            "timestamp": int(time.time() * 1000),
        }
