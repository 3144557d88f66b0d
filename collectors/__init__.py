"""Data collectors for Homelab Portal.

Importing this package registers every built-in channel in
core.registry.CHANNEL_REGISTRY. Each collector is a plain function the
REST API can call directly; the hub runs the same functions in a worker
thread on its push schedule.
"""

from collectors.system import read_system_metrics, read_temperature
from collectors.disk import read_detailed_disks, read_disk_summary
from collectors.network import read_network
from collectors.processes import read_processes
from collectors.docker_state import (
    DockerUnavailable,
    container_action,
    read_containers,
    read_docker_info,
)
from collectors.services import bind_store, read_services

__all__ = [
    "read_system_metrics",
    "read_temperature",
    "read_detailed_disks",
    "read_disk_summary",
    "read_network",
    "read_processes",
    "read_containers",
    "read_docker_info",
    "container_action",
    "DockerUnavailable",
    "bind_store",
    "read_services",
]
