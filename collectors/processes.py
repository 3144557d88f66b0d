"""Process list collector.

Walks /proc/<pid> for every process: name, state, owner, memory, and
CPU share since the previous read (from utime+stime against the
aggregate jiffies in /proc/stat). The list is sorted by resident memory.
"""

import logging
import os
import threading
import time
from typing import Any, Dict, Optional

import config
from core.comparators import RankedListComparator
from core.registry import register_channel

logger = logging.getLogger(__name__)

UID_CACHE_TTL = 60.0  # seconds


def _field(status: str, name: str) -> Optional[str]:
    for line in status.splitlines():
        if line.startswith(name + ":"):
            return line.split(":", 1)[1].strip()
    return None


class ProcessMonitor:
    """Stateful process reader; remembers per-pid CPU times between calls."""

    def __init__(self, proc_path: Optional[str] = None, passwd_path: Optional[str] = None):
        self.proc_path = proc_path or config.PROC_PATH
        self.passwd_path = passwd_path or config.PASSWD_PATH
        self._lock = threading.Lock()
        self._prev_cpu_times: Dict[int, int] = {}
        self._prev_system_time = 0
        self._uid_cache: Dict[str, str] = {}
        self._uid_cache_time = 0.0
        self._num_cpus = os.cpu_count() or 1

    def _refresh_uid_cache(self):
        now = time.time()
        if self._uid_cache and now - self._uid_cache_time < UID_CACHE_TTL:
            return
        try:
            cache = {}
            with open(self.passwd_path) as f:
                for line in f:
                    parts = line.split(":")
                    if len(parts) >= 3:
                        cache[parts[2]] = parts[0]
            self._uid_cache = cache
            self._uid_cache_time = now
        except OSError:
            pass  # keep the stale cache

    def _system_time(self) -> int:
        with open(os.path.join(self.proc_path, "stat")) as f:
            return sum(int(v) for v in f.readline().split()[1:])

    def _mem_total_kb(self) -> int:
        with open(os.path.join(self.proc_path, "meminfo")) as f:
            for line in f:
                if line.startswith("MemTotal:"):
                    return int(line.split()[1])
        return 0

    def _read_process(self, pid: str) -> Optional[Dict[str, Any]]:
        base = os.path.join(self.proc_path, pid)
        try:
            with open(os.path.join(base, "status")) as f:
                status = f.read()
            with open(os.path.join(base, "stat")) as f:
                stat = f.read()
        except OSError:
            return None  # exited while we were reading

        # comm may contain spaces; fields after the closing paren are fixed
        after = stat.rsplit(")", 1)[-1].split()
        try:
            utime, stime = int(after[11]), int(after[12])
        except (IndexError, ValueError):
            utime = stime = 0

        name = _field(status, "Name") or "unknown"
        command = name
        try:
            with open(os.path.join(base, "cmdline")) as f:
                command = f.read().replace("\0", " ").strip() or name
        except OSError:
            pass

        uid = (_field(status, "Uid") or "0").split()[0]
        rss = _field(status, "VmRSS")
        vsz = _field(status, "VmSize")
        return {
            "pid": int(pid),
            "name": name,
            "state": (_field(status, "State") or "S")[:1],
            "user": self._uid_cache.get(uid, uid),
            "memRssKB": int(rss.split()[0]) if rss else 0,
            "memVszKB": int(vsz.split()[0]) if vsz else 0,
            "cpuTime": utime + stime,
            "command": command[:100],
        }

    def read(self) -> Dict[str, Any]:
        self._refresh_uid_cache()
        total_mem_mb = self._mem_total_kb() / 1024

        counts = {"running": 0, "sleeping": 0, "blocked": 0}
        processes = []
        with self._lock:
            system_time = self._system_time()
            system_delta = system_time - self._prev_system_time
            current_times: Dict[int, int] = {}

            for pid in os.listdir(self.proc_path):
                if not pid.isdigit():
                    continue
                proc = self._read_process(pid)
                if not proc:
                    continue

                state = proc["state"]
                if state == "R":
                    counts["running"] += 1
                elif state in ("S", "I"):
                    counts["sleeping"] += 1
                elif state == "D":
                    counts["blocked"] += 1

                cpu_time = proc.pop("cpuTime")
                prev_time = self._prev_cpu_times.get(proc["pid"], cpu_time)
                current_times[proc["pid"]] = cpu_time
                cpu = (cpu_time - prev_time) / system_delta * 100 * self._num_cpus if system_delta > 0 else 0.0

                mem_rss_mb = proc["memRssKB"] / 1024
                processes.append({
                    "pid": proc["pid"],
                    "name": proc["name"],
                    "cpu": round(min(cpu, 100.0), 2),
                    "mem": round(mem_rss_mb / total_mem_mb * 100, 2) if total_mem_mb else 0.0,
                    "memVsz": proc["memVszKB"],
                    "memRss": proc["memRssKB"],
                    "memRssMB": round(mem_rss_mb, 2),
                    "command": proc["command"],
                    "user": proc["user"],
                    "state": state,
                })

            # Exited pids drop out of the map here
            self._prev_cpu_times = current_times
            self._prev_system_time = system_time

        processes.sort(key=lambda p: p["memRssMB"], reverse=True)
        return {
            "all": len(processes),
            **counts,
            "list": processes[:config.MAX_PROCESSES],
        }


process_monitor = ProcessMonitor()


@register_channel("metrics:processes", comparator=RankedListComparator())
def read_processes() -> Dict[str, Any]:
    return process_monitor.read()
