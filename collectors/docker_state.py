"""Docker collectors -- container list, daemon info, container actions.

Talks to the local daemon through the Docker SDK (DOCKER_HOST or the
default unix socket). The client is created lazily and rebuilt after a
failure, so a daemon that starts after the portal is picked up on the
next tick.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException

from core.comparators import MembershipComparator
from core.registry import register_channel

logger = logging.getLogger(__name__)

ALLOWED_ACTIONS = ("start", "stop", "restart")


class DockerUnavailable(Exception):
    """The Docker daemon could not be reached."""


_client = None
_client_lock = threading.Lock()


def get_client():
    global _client
    with _client_lock:
        if _client is None:
            try:
                _client = docker.from_env()
            except DockerException as exc:
                raise DockerUnavailable(str(exc)) from exc
        return _client


def reset_client():
    global _client
    with _client_lock:
        _client = None


def _format_ports(ports: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {"private": p.get("PrivatePort"), "public": p.get("PublicPort"), "type": p.get("Type")}
        for p in ports or []
    ]


def format_container(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a low-level /containers/json entry for the dashboard."""
    names = raw.get("Names") or ["/"]
    return {
        "id": raw.get("Id", "")[:12],
        "name": names[0].lstrip("/"),
        "image": raw.get("Image"),
        "state": raw.get("State"),
        "status": raw.get("Status"),
        "created": raw.get("Created"),
        "ports": _format_ports(raw.get("Ports")),
    }


@register_channel("docker:containers", comparator=MembershipComparator())
def read_containers() -> List[Dict[str, Any]]:
    try:
        raw = get_client().api.containers(all=True)
    except DockerException as exc:
        reset_client()
        raise DockerUnavailable(str(exc)) from exc
    return [format_container(c) for c in raw]


@register_channel("docker:info")
def read_docker_info() -> Dict[str, Any]:
    try:
        info = get_client().info()
    except DockerException as exc:
        reset_client()
        raise DockerUnavailable(str(exc)) from exc
    return {
        "containersRunning": info.get("ContainersRunning"),
        "containersPaused": info.get("ContainersPaused"),
        "containersStopped": info.get("ContainersStopped"),
        "images": info.get("Images"),
        "serverVersion": info.get("ServerVersion"),
    }


def container_action(container_id: str, action: str) -> Optional[Dict[str, Any]]:
    """Run start/stop/restart on a container. Raises ValueError for other actions."""
    if action not in ALLOWED_ACTIONS:
        raise ValueError(f"Invalid action: {action}")
    container = get_client().containers.get(container_id)
    getattr(container, action)()
    logger.info("Container %s: %s completed", container_id, action)
    return {"success": True, "action": action, "containerId": container_id}
