"""Homelab Portal - Configuration

Defaults for the hub server, the REST API and the console client.
Anything here can be overridden from portal.yaml (see load_config) and
from the environment:

  PORT            REST API port           (default 3001)
  WS_PORT         WebSocket hub port      (default 3002)
  DB_PATH         services SQLite file    (default ./data/homelab.db)
  HOST_PROC       procfs mount to read    (default /proc)
  PORTAL_API_URL  client REST base URL
  PORTAL_WS_URL   client WebSocket URL
"""

import copy
import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Channels -- push interval and change threshold per channel.
# threshold None means any structural change is broadcast.
# ---------------------------------------------------------------------------
CHANNELS = {
    "metrics:system": {
        "label": "System load",
        "interval_ms": 2000,
        "threshold": 0.05,      # 5 percentage points of CPU or memory
    },
    "metrics:temperature": {
        "label": "Temperature",
        "interval_ms": 5000,
        "threshold": None,
    },
    "metrics:network": {
        "label": "Network",
        "interval_ms": 1000,
        "threshold": 0.1,       # 10% change of combined rx+tx rate
    },
    "metrics:disk:detailed": {
        "label": "Disks",
        "interval_ms": 10000,
        "threshold": 0.01,
    },
    "metrics:processes": {
        "label": "Processes",
        "interval_ms": 2000,
        "threshold": None,
    },
    "docker:containers": {
        "label": "Containers",
        "interval_ms": 5000,
        "threshold": None,
    },
    "docker:info": {
        "label": "Docker",
        "interval_ms": 5000,
        "threshold": None,
    },
    "services": {
        "label": "Services",
        "interval_ms": 30000,
        "threshold": None,
    },
}

# ---------------------------------------------------------------------------
# Panels -- client-side regions and the channel each one follows
# ---------------------------------------------------------------------------
PANEL_TO_CHANNEL = {
    "system": "metrics:system",
    "temperature": "metrics:temperature",
    "network": "metrics:network",
    "disk": "metrics:disk:detailed",
    "processes": "metrics:processes",
    "docker": "docker:containers",
    "services": "services",
}

# Polling fallback intervals (ms)
DEFAULT_POLLING_INTERVALS = {
    "network": 2000,
    "disk": 10000,
    "processes": 3000,
    "docker": 5000,
    "services": 30000,
}
FALLBACK_POLLING_INTERVAL = 5000

# Reconnect backoff (ms)
RECONNECT_INITIAL_DELAY = 1000
RECONNECT_MAX_DELAY = 30000

# ---------------------------------------------------------------------------
# Collectors
# ---------------------------------------------------------------------------
PROC_PATH = os.environ.get("HOST_PROC", "/proc")
THERMAL_PATH = "/sys/class/thermal/thermal_zone0/temp"
SYS_NET_PATH = "/sys/class/net"
PASSWD_PATH = "/etc/passwd"
MAX_PROCESSES = 150

# Interfaces hidden from the network panel
EXCLUDED_INTERFACES = ("lo", "lo0")
EXCLUDED_INTERFACE_PREFIXES = ("veth", "br-", "docker")

# Filesystems hidden from the disk panel
VIRTUAL_FS_TYPES = ("overlay", "tmpfs", "devtmpfs")
VIRTUAL_MOUNT_PREFIXES = ("/dev", "/sys", "/proc", "/run")

DEFAULT_SERVICES = [
    {"name": "Portainer", "url": "http://raspberrypi:9000", "icon": "\U0001f433", "category": "Management"},
    {"name": "Pi-hole", "url": "http://raspberrypi/admin", "icon": "\U0001f6e1\ufe0f", "category": "Network"},
    {"name": "Grafana", "url": "http://raspberrypi:3000", "icon": "\U0001f4ca", "category": "Monitoring"},
]

# ---------------------------------------------------------------------------
# Runtime settings (portal.yaml sections)
# ---------------------------------------------------------------------------
DEFAULTS = {
    "server": {
        "host": "0.0.0.0",
        "port": int(os.environ.get("PORT", 3001)),
        "ws_port": int(os.environ.get("WS_PORT", 3002)),
        "db_path": os.environ.get("DB_PATH", "./data/homelab.db"),
        "seed_services": True,
    },
    "client": {
        "api_url": os.environ.get("PORTAL_API_URL", "http://localhost:3001"),
        "ws_url": os.environ.get("PORTAL_WS_URL", "ws://localhost:3002"),
        "request_timeout": 10,
        "panels": {},
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load portal.yaml over DEFAULTS. A missing or broken file yields defaults."""
    if not path:
        return copy.deepcopy(DEFAULTS)
    try:
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.info("Config %s not found, using defaults", path)
        return copy.deepcopy(DEFAULTS)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not read config %s: %s", path, exc)
        return copy.deepcopy(DEFAULTS)

    if not isinstance(loaded, dict):
        logger.warning("Config %s is not a mapping, ignoring it", path)
        return copy.deepcopy(DEFAULTS)
    return _merge(DEFAULTS, loaded)
