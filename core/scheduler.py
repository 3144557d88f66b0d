"""Per-channel repeating tasks for the hub.

One asyncio task per channel: sleep for the channel's interval, run the
tick callback, repeat. Tasks start together and are cancelled together,
so stopping the hub never leaves an orphaned loop behind.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable

from core.registry import Channel

logger = logging.getLogger(__name__)

TickCallback = Callable[[Channel], Awaitable[None]]


class ChannelScheduler:
    """Owns one cancellable loop per channel.

    Each loop sleeps for the interval and then awaits the tick, so a cycle
    lasts interval + fetch time. A slow fetch stretches only its own channel.
    """

    def __init__(self, on_tick: TickCallback):
        self._on_tick = on_tick
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self, channels: Iterable[Channel]):
        """Arm a loop for every channel. Must be called on the event loop."""
        if self._tasks:
            return
        for channel in channels:
            self._tasks[channel.name] = asyncio.create_task(
                self._run(channel), name=f"channel-{channel.name}"
            )
        logger.info("Scheduler started %d channel loops", len(self._tasks))

    def stop(self):
        """Cancel every loop. Safe to call when already stopped."""
        tasks, self._tasks = self._tasks, {}
        for task in tasks.values():
            task.cancel()
        if tasks:
            logger.info("Scheduler stopped %d channel loops", len(tasks))

    async def _run(self, channel: Channel):
        """Sleep, tick, repeat. A failing tick never ends the loop."""
        while True:
            await asyncio.sleep(channel.interval)
            try:
                await self._on_tick(channel)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Channel %s tick error: %s", channel.name, exc)
