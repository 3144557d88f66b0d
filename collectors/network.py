"""Network interface collector.

Reads per-interface counters from /proc/net/dev and interface details
from /sys/class/net. Rates (bytes/s) are computed against the previous
read, so the first sample reports zero throughput.

Loopback and container plumbing (veth*, br-*, docker*) are hidden.
"""

import fcntl
import logging
import os
import socket
import struct
import threading
import time
from typing import Any, Dict, List, Optional

import config
from core.comparators import InterfaceRateComparator
from core.registry import register_channel

logger = logging.getLogger(__name__)

SIOCGIFADDR = 0x8915


def is_active_interface(name: str) -> bool:
    return (
        name not in config.EXCLUDED_INTERFACES
        and not name.startswith(config.EXCLUDED_INTERFACE_PREFIXES)
    )


def _read_sys(iface: str, attr: str) -> str:
    try:
        with open(os.path.join(config.SYS_NET_PATH, iface, attr)) as f:
            return f.read().strip()
    except OSError:
        return ""


def _ipv4_address(iface: str) -> str:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            packed = fcntl.ioctl(s.fileno(), SIOCGIFADDR, struct.pack("256s", iface[:15].encode()))
        return socket.inet_ntoa(packed[20:24])
    except OSError:
        return ""


def default_interface(proc_path: Optional[str] = None) -> str:
    """Interface holding the default route, from /proc/net/route."""
    try:
        with open(os.path.join(proc_path or config.PROC_PATH, "net", "route")) as f:
            next(f, None)
            for line in f:
                parts = line.split()
                if len(parts) > 1 and parts[1] == "00000000":
                    return parts[0]
    except OSError:
        pass
    return ""


def read_counters(proc_path: Optional[str] = None) -> Dict[str, Dict[str, int]]:
    """Raw per-interface counters from /proc/net/dev."""
    counters = {}
    with open(os.path.join(proc_path or config.PROC_PATH, "net", "dev")) as f:
        lines = f.readlines()
    for line in lines[2:]:
        name, _, rest = line.partition(":")
        parts = rest.split()
        if len(parts) < 12:
            continue
        counters[name.strip()] = {
            "rx_bytes": int(parts[0]),
            "rx_errors": int(parts[2]),
            "rx_dropped": int(parts[3]),
            "tx_bytes": int(parts[8]),
            "tx_errors": int(parts[10]),
            "tx_dropped": int(parts[11]),
        }
    return counters


class NetworkMonitor:
    """Keeps the previous counter sample to turn byte totals into rates."""

    def __init__(self, proc_path: Optional[str] = None):
        self.proc_path = proc_path or config.PROC_PATH
        self._lock = threading.Lock()
        self._last: Dict[str, Dict[str, int]] = {}
        self._last_time = 0.0

    def read(self) -> Dict[str, Any]:
        now = time.time()
        counters = {
            name: c for name, c in read_counters(self.proc_path).items()
            if is_active_interface(name)
        }
        default = default_interface(self.proc_path)

        with self._lock:
            dt = now - self._last_time if self._last_time else 0.0
            last = self._last
            self._last, self._last_time = counters, now

        stats: List[Dict[str, Any]] = []
        for name, c in counters.items():
            prev = last.get(name)
            if prev and dt > 0:
                rx_sec = max(0.0, (c["rx_bytes"] - prev["rx_bytes"]) / dt)
                tx_sec = max(0.0, (c["tx_bytes"] - prev["tx_bytes"]) / dt)
            else:
                rx_sec = tx_sec = 0.0
            stats.append({
                "interface": name,
                **c,
                "rx_sec": round(rx_sec, 2),
                "tx_sec": round(tx_sec, 2),
                "ms": int(dt * 1000),
            })

        interfaces = []
        for name in counters:
            speed = _read_sys(name, "speed")
            interfaces.append({
                "name": name,
                "ip4": _ipv4_address(name),
                "mac": _read_sys(name, "address"),
                "type": "wireless" if os.path.isdir(os.path.join(config.SYS_NET_PATH, name, "wireless")) else "wired",
                "speed": int(speed) if speed.lstrip("-").isdigit() and int(speed) > 0 else None,
                "operstate": _read_sys(name, "operstate") or "unknown",
                "isDefault": name == default,
            })

        return {
            "interfaces": interfaces,
            "stats": stats,
            "defaultInterface": default,
            "timestamp": int(now * 1000),
        }


network_monitor = NetworkMonitor()


@register_channel("metrics:network", comparator=InterfaceRateComparator())
def read_network() -> Dict[str, Any]:
    return network_monitor.read()
