"""Tests for client.api.PortalAPI and the PortalClient context."""

import pytest
import requests

from client.api import CHANNEL_TO_ENDPOINT, APIError, PortalAPI
from client.context import PortalClient
from client.network_speed import NetworkSpeedTracker
from config import PANEL_TO_CHANNEL
from conftest import FakeConnection, FakePoller


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"x"):
        self.status_code = status_code
        self._payload = payload
        self.content = content if payload is not None or status_code >= 400 else b""

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


def test_fetch_channel_uses_matching_endpoint():
    session = FakeSession(FakeResponse(payload={"cpu": {}}))
    api = PortalAPI("http://portal:3001/", session=session)
    assert api.fetcher_for("metrics:system")() == {"cpu": {}}
    assert session.requests[0][:2] == ("GET", "http://portal:3001/api/metrics/system")


def test_error_body_becomes_api_error():
    session = FakeSession(FakeResponse(500, {"error": "Failed to fetch Docker containers"}))
    api = PortalAPI("http://portal", session=session)
    with pytest.raises(APIError) as info:
        api.fetch_docker_containers()
    assert str(info.value) == "Failed to fetch Docker containers"
    assert info.value.status == 500


def test_error_without_json_body():
    session = FakeSession(FakeResponse(502))
    with pytest.raises(APIError, match="HTTP 502"):
        PortalAPI("http://portal", session=session).fetch_services()


def test_connection_error_wrapped():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(APIError, match="Cannot reach"):
        PortalAPI("http://portal", session=session).fetch_processes()


def test_delete_returns_none_on_204():
    session = FakeSession(FakeResponse(204))
    assert PortalAPI("http://portal", session=session).delete_service(3) is None
    assert session.requests[0][:2] == ("DELETE", "http://portal/api/services/3")


def test_unknown_channel_has_no_endpoint():
    with pytest.raises(APIError):
        PortalAPI("http://portal", session=FakeSession()).fetch_channel("nope")


def test_every_panel_channel_has_rest_fallback():
    assert set(PANEL_TO_CHANNEL.values()) <= set(CHANNEL_TO_ENDPOINT)


# ============================================================================
# PortalClient
# ============================================================================

def make_client():
    connection = FakeConnection()
    connection.connect = lambda: None
    connection.close = lambda: None
    api = PortalAPI("http://portal", session=FakeSession(FakeResponse(payload={})))
    return PortalClient("http://portal", "ws://portal", connection=connection, api=api)


def test_panel_is_created_once_and_mounted():
    client = make_client()
    source = client.panel("docker", mode="websocket", poller_factory=FakePoller)
    assert client.panel("docker") is source
    assert source.channel == "docker:containers"
    assert client.connection.listeners
    client.close()
    assert client.connection.listeners == []


def test_network_panel_tracks_speed():
    client = make_client()
    source = client.panel("network", enabled=False)
    assert isinstance(source.transform, NetworkSpeedTracker)
    assert source.transform is client.network_speed
    client.close()


def test_unknown_panel_rejected():
    with pytest.raises(ValueError):
        make_client().panel("toaster")
