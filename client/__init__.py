"""Client side of Homelab Portal.

Architecture:
    ConnectionManager -- one shared WebSocket, backoff reconnect, channel multiplexing
    PanelDataSource   -- per-panel feed, REST polling or WebSocket push
    PortalAPI         -- requests wrapper for the REST fallback endpoints
    PortalClient      -- context object bundling the above for one process
"""

from client.api import APIError, PortalAPI
from client.connection_manager import ConnectionManager, backoff_delay
from client.panel_data import POLLING, WEBSOCKET, PanelDataSource, RepeatingTimer
from client.network_speed import NetworkSpeedTracker
from client.context import PortalClient

__all__ = [
    "APIError",
    "PortalAPI",
    "ConnectionManager",
    "backoff_delay",
    "PanelDataSource",
    "RepeatingTimer",
    "POLLING",
    "WEBSOCKET",
    "NetworkSpeedTracker",
    "PortalClient",
]
