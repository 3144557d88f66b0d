"""Disk usage collectors.

Lists mounted filesystems from /proc/mounts and sizes them with statvfs.
Virtual filesystems and repeated mounts of the same device are skipped,
so bind mounts inside containers don't show up twice.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import config
from core.comparators import KeyedUsageComparator
from core.registry import register_channel

logger = logging.getLogger(__name__)

GB = 1024 ** 3


def _is_virtual(device: str, fs_type: str, mount: str) -> bool:
    return (
        fs_type in config.VIRTUAL_FS_TYPES
        or device.startswith(("overlay", "tmpfs"))
        or mount.startswith(config.VIRTUAL_MOUNT_PREFIXES)
    )


def _usage(mount: str) -> Optional[Dict[str, Any]]:
    try:
        st = os.statvfs(mount)
    except OSError:
        return None
    size = st.f_blocks * st.f_frsize
    if not size:
        return None
    available = st.f_bavail * st.f_frsize
    used = size - st.f_bfree * st.f_frsize
    return {
        "size": size,
        "used": used,
        "available": available,
        "use": round(used / size * 100, 2),
    }


def read_mounts(proc_path: Optional[str] = None) -> List[Dict[str, str]]:
    mounts = []
    with open(os.path.join(proc_path or config.PROC_PATH, "mounts")) as f:
        for line in f:
            parts = line.split()
            if len(parts) >= 3:
                # /proc/mounts escapes spaces as \040
                mounts.append({
                    "fs": parts[0],
                    "mount": parts[1].replace("\\040", " "),
                    "type": parts[2],
                })
    return mounts


@register_channel("metrics:disk:detailed", comparator=KeyedUsageComparator())
def read_detailed_disks() -> List[Dict[str, Any]]:
    seen = set()
    disks = []
    for entry in read_mounts():
        if entry["fs"] in seen or _is_virtual(entry["fs"], entry["type"], entry["mount"]):
            continue
        usage = _usage(entry["mount"])
        if usage is None:
            continue
        seen.add(entry["fs"])
        disks.append({
            **entry,
            **usage,
            "sizeGB": f"{usage['size'] / GB:.2f}",
            "usedGB": f"{usage['used'] / GB:.2f}",
            "availableGB": f"{usage['available'] / GB:.2f}",
        })
    return disks


def read_disk_summary(mount: str = "/") -> Dict[str, Any]:
    """Usage of a single mount point (the root filesystem by default)."""
    usage = _usage(mount)
    if usage is None:
        raise OSError(f"Cannot stat {mount}")
    return {
        "total": usage["size"],
        "used": usage["used"],
        "available": usage["available"],
        "usedPercentage": usage["use"],
        "mount": mount,
    }
