"""System load and temperature collectors -- CPU, RAM, uptime, thermal zone.

Reads from /proc and /sys on Linux. No external dependencies.
CPU load is the busy share of jiffies since the previous read, so the
first call reports the average since boot.
"""

import logging
import os
import threading
from typing import Any, Dict, Optional, Tuple

import config
from core.comparators import SYSTEM_METRICS_FIELDS, ScalarMetricComparator
from core.registry import register_channel

logger = logging.getLogger(__name__)


def _read_cpu_times(proc_path: str) -> Tuple[int, int]:
    """Return (busy, total) jiffies from the aggregate cpu line of /proc/stat."""
    with open(os.path.join(proc_path, "stat")) as f:
        parts = f.readline().split()
    values = [int(v) for v in parts[1:]]
    idle = values[3] + (values[4] if len(values) > 4 else 0)  # idle + iowait
    total = sum(values)
    return total - idle, total


def _read_cpu_info(proc_path: str) -> Dict[str, Any]:
    info = {"manufacturer": "", "brand": "", "cores": os.cpu_count() or 1, "speed": 0.0}
    try:
        with open(os.path.join(proc_path, "cpuinfo")) as f:
            for line in f:
                key, _, value = line.partition(":")
                key, value = key.strip(), value.strip()
                if key == "vendor_id" and not info["manufacturer"]:
                    info["manufacturer"] = value
                elif key in ("model name", "Model") and not info["brand"]:
                    info["brand"] = value
                elif key == "cpu MHz" and not info["speed"]:
                    info["speed"] = round(float(value) / 1000, 2)
    except (OSError, ValueError):
        pass
    return info


def _read_meminfo(proc_path: str) -> Dict[str, int]:
    meminfo = {}
    with open(os.path.join(proc_path, "meminfo")) as f:
        for line in f:
            parts = line.split(":")
            if len(parts) == 2:
                meminfo[parts[0].strip()] = int(parts[1].strip().split()[0]) * 1024
    return meminfo


class SystemMonitor:
    """Stateful reader: keeps the previous CPU sample between calls."""

    def __init__(self, proc_path: Optional[str] = None):
        self.proc_path = proc_path or config.PROC_PATH
        self._lock = threading.Lock()
        self._last_busy = 0
        self._last_total = 0
        self._cpu_info: Optional[Dict[str, Any]] = None

    def cpu_load(self) -> float:
        busy, total = _read_cpu_times(self.proc_path)
        with self._lock:
            d_busy = busy - self._last_busy
            d_total = total - self._last_total
            self._last_busy, self._last_total = busy, total
        if d_total <= 0:
            return 0.0
        return round(d_busy / d_total * 100, 2)

    def read(self) -> Dict[str, Any]:
        if self._cpu_info is None:
            self._cpu_info = _read_cpu_info(self.proc_path)

        cpu = dict(self._cpu_info)
        cpu["currentLoad"] = self.cpu_load()
        try:
            with open(os.path.join(self.proc_path, "loadavg")) as f:
                cpu["avgLoad"] = float(f.read().split()[0])
        except (OSError, ValueError, IndexError):
            cpu["avgLoad"] = 0.0

        meminfo = _read_meminfo(self.proc_path)
        total = meminfo.get("MemTotal", 0)
        available = meminfo.get("MemAvailable", meminfo.get("MemFree", 0))
        used = total - available
        memory = {
            "total": total,
            "free": meminfo.get("MemFree", 0),
            "used": used,
            "available": available,
            "usedPercentage": round(used / total * 100, 2) if total else 0.0,
        }

        with open(os.path.join(self.proc_path, "uptime")) as f:
            uptime = float(f.read().split()[0])

        return {"cpu": cpu, "memory": memory, "uptime": uptime}


system_monitor = SystemMonitor()


@register_channel("metrics:system", comparator=ScalarMetricComparator(SYSTEM_METRICS_FIELDS))
def read_system_metrics() -> Dict[str, Any]:
    return system_monitor.read()


@register_channel("metrics:temperature")
def read_temperature() -> Dict[str, Any]:
    """CPU temperature in Celsius, or None where no thermal zone exists."""
    cpu_temp = None
    try:
        with open(config.THERMAL_PATH) as f:
            cpu_temp = round(int(f.read().strip()) / 1000.0, 1)
    except (FileNotFoundError, ValueError):
        pass
    return {"cpu": cpu_temp, "unit": "C"}
