"""REST client for the Homelab Portal API.

Panels fall back to these endpoints when the WebSocket hub is not
available. Each GET returns the same JSON shape the hub would push on
the matching channel.
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Channel -> REST resource serving the same payload
CHANNEL_TO_ENDPOINT = {
    "metrics:system": "/api/metrics/system",
    "metrics:temperature": "/api/metrics/temperature",
    "metrics:network": "/api/metrics/network",
    "metrics:disk:detailed": "/api/metrics/disk/detailed",
    "metrics:processes": "/api/metrics/processes",
    "docker:containers": "/api/docker/containers",
    "docker:info": "/api/docker/info",
    "services": "/api/services",
}


class APIError(Exception):
    """A request to the portal API failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PortalAPI:
    """Thin requests wrapper around the portal REST endpoints."""

    def __init__(self, base_url: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise APIError(f"Cannot reach {url}: {exc}") from exc

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", f"HTTP {resp.status_code}")
            except (ValueError, AttributeError):
                message = f"HTTP {resp.status_code}"
            raise APIError(message, resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def fetch_channel(self, channel: str) -> Any:
        """Fetch the REST equivalent of a hub channel."""
        path = CHANNEL_TO_ENDPOINT.get(channel)
        if path is None:
            raise APIError(f"No REST endpoint for channel {channel}")
        return self.get(path)

    def fetcher_for(self, channel: str) -> Callable[[], Any]:
        return lambda: self.fetch_channel(channel)

    # ─── Convenience wrappers ───

    def fetch_system_metrics(self):
        return self.get("/api/metrics/system")

    def fetch_network_metrics(self):
        return self.get("/api/metrics/network")

    def fetch_detailed_disk_info(self):
        return self.get("/api/metrics/disk/detailed")

    def fetch_processes(self):
        return self.get("/api/metrics/processes")

    def fetch_docker_containers(self):
        return self.get("/api/docker/containers")

    def fetch_services(self):
        return self.get("/api/services")

    def fetch_hub_stats(self):
        return self.get("/api/ws/stats")

    def create_service(self, service: Dict[str, Any]):
        return self._request("POST", "/api/services", json=service)

    def update_service(self, service_id: int, service: Dict[str, Any]):
        return self._request("PUT", f"/api/services/{service_id}", json=service)

    def delete_service(self, service_id: int):
        return self._request("DELETE", f"/api/services/{service_id}")

    def container_action(self, container_id: str, action: str):
        return self._request("POST", f"/api/docker/containers/{container_id}/{action}")
