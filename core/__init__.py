"""Core framework for the Homelab Portal real-time hub.

Architecture:
    ChannelRegistry  -- static table of channels (fetcher, interval, threshold, comparator)
    ChangeDetector   -- remembers the last broadcast per channel, filters insignificant updates
    ChannelScheduler -- one cancellable asyncio loop per channel
    BroadcastHub     -- owns client connections and subscriptions, fans data out
    HubServer        -- runs the hub behind a websockets server in a background thread
    ServiceStore     -- SQLite link list behind the "services" channel
"""

from core.registry import CHANNEL_REGISTRY, Channel, ChannelRegistry, register_channel
from core.change_detector import ChangeDetector
from core.scheduler import ChannelScheduler
from core.broadcast_hub import BroadcastHub, Connection
from core.server import HubServer
from core.service_store import ServiceStore

__all__ = [
    "CHANNEL_REGISTRY",
    "Channel",
    "ChannelRegistry",
    "register_channel",
    "ChangeDetector",
    "ChannelScheduler",
    "BroadcastHub",
    "Connection",
    "HubServer",
    "ServiceStore",
]
