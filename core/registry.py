"""Channel registry for the Homelab Portal hub.

Each channel pairs a fetcher with its push interval, change threshold
and comparator. Collectors register their fetchers by channel name;
the hub looks channels up here when clients subscribe and when it
arms its per-channel loops.

Usage:
    @register_channel("metrics:system", comparator=ScalarMetricComparator(...))
    def read_system_metrics():
        ...
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from config import CHANNELS
from core.comparators import Comparator, StructuralComparator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Channel:
    """An independently scheduled stream of pushed data."""

    name: str
    fetcher: Callable[[], Any]
    interval_ms: int
    threshold: Optional[float] = None
    comparator: Comparator = field(default_factory=StructuralComparator)

    @property
    def interval(self) -> float:
        """Push interval in seconds."""
        return self.interval_ms / 1000.0

    async def fetch(self) -> Any:
        """Run the fetcher without blocking the event loop.

        Coroutine fetchers are awaited directly; plain functions run in
        a worker thread.
        """
        if inspect.iscoroutinefunction(self.fetcher):
            return await self.fetcher()
        return await asyncio.to_thread(self.fetcher)


class ChannelRegistry:
    """Static table of channel name -> Channel."""

    def __init__(self, channels: Optional[List[Channel]] = None):
        self._channels: Dict[str, Channel] = {}
        for channel in channels or []:
            self.add(channel)

    def add(self, channel: Channel) -> Channel:
        if channel.name in self._channels:
            raise ValueError(f"Channel already registered: {channel.name}")
        self._channels[channel.name] = channel
        logger.debug(
            "Registered channel: %s (%dms, threshold=%s)",
            channel.name, channel.interval_ms, channel.threshold,
        )
        return channel

    def get(self, name: str) -> Optional[Channel]:
        return self._channels.get(name)

    def names(self) -> List[str]:
        return list(self._channels)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._channels

    def __iter__(self) -> Iterator[Channel]:
        return iter(list(self._channels.values()))

    def __len__(self) -> int:
        return len(self._channels)


CHANNEL_REGISTRY = ChannelRegistry()


def register_channel(name, comparator=None, interval_ms=None, threshold=...):
    """Decorator to register a fetcher as the data source of a channel.

    Interval and threshold default to the entry in config.CHANNELS.
    """
    settings = CHANNELS.get(name, {})
    if interval_ms is None:
        interval_ms = settings.get("interval_ms", 5000)
    if threshold is ...:
        threshold = settings.get("threshold")

    def decorator(fn):
        CHANNEL_REGISTRY.add(Channel(
            name=name,
            fetcher=fn,
            interval_ms=interval_ms,
            threshold=threshold,
            comparator=comparator or StructuralComparator(),
        ))
        return fn
    return decorator
