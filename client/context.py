"""Client context: one connection manager and REST client per process.

Panels receive the context explicitly instead of reaching for a global,
so tests and embedders can run several independent clients side by side.
"""

import logging
from typing import Any, Dict, Optional

from client.api import PortalAPI
from client.connection_manager import ConnectionManager
from client.network_speed import NetworkSpeedTracker
from client.panel_data import PanelDataSource
from config import PANEL_TO_CHANNEL

logger = logging.getLogger(__name__)


class PortalClient:
    """Shared transport + REST client + the panels built on them."""

    def __init__(self, api_url: str, ws_url: str, timeout: float = 10,
                 connection: Optional[ConnectionManager] = None,
                 api: Optional[PortalAPI] = None):
        self.api = api or PortalAPI(api_url, timeout=timeout)
        self.connection = connection or ConnectionManager(ws_url)
        self.panels: Dict[str, PanelDataSource] = {}
        self.network_speed = NetworkSpeedTracker()

    @classmethod
    def from_config(cls, settings: Dict[str, Any]) -> "PortalClient":
        return cls(settings["api_url"], settings["ws_url"], timeout=settings.get("request_timeout", 10))

    def panel(self, panel_id: str, **options) -> PanelDataSource:
        """Create (or return) the data source for a panel and mount it."""
        if panel_id in self.panels:
            return self.panels[panel_id]
        channel = options.pop("channel", None) or PANEL_TO_CHANNEL.get(panel_id)
        if channel is None:
            raise ValueError(f"Unknown panel: {panel_id}")
        if channel == "metrics:network":
            options.setdefault("transform", self.network_speed)

        source = PanelDataSource(
            panel_id, self.connection,
            fetch_fn=self.api.fetcher_for(channel),
            channel=channel,
            **options,
        )
        self.panels[panel_id] = source
        source.start()
        return source

    def start(self):
        self.connection.connect()

    def close(self):
        for source in self.panels.values():
            source.stop()
        self.connection.close()
        logger.info("Client closed (%d panels)", len(self.panels))
