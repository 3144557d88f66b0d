"""Runs the BroadcastHub behind a websockets server in a background thread.

The REST API (Flask) owns the main thread; the hub gets its own asyncio
event loop here. Other threads reach hub state only through stats(),
which hops onto the hub loop.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Optional

from websockets.asyncio.server import serve

from core.broadcast_hub import BroadcastHub

logger = logging.getLogger(__name__)


class HubServer:
    """Background thread serving a BroadcastHub over WebSockets."""

    def __init__(self, hub: BroadcastHub, host: str = "0.0.0.0", port: int = 3002):
        self.hub = hub
        self.host = host
        self.port = port
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown: Optional[asyncio.Event] = None
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, timeout: float = 5.0):
        """Start the server thread and wait until it is listening."""
        if self._thread and self._thread.is_alive():
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="ws-hub")
        self._thread.start()
        if not self._ready.wait(timeout):
            logger.warning("Hub server did not report ready within %.1fs", timeout)

    def stop(self, timeout: float = 5.0):
        """Stop push loops, close the listener and join the thread."""
        if self._loop and self._shutdown:
            self._loop.call_soon_threadsafe(self._shutdown.set)
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def stats(self, timeout: float = 2.0) -> Dict[str, Any]:
        """Hub stats, read on the hub's own loop."""
        if not self._loop or self._loop.is_closed() or not self._ready.is_set():
            return self.hub.get_stats()

        async def _read():
            return self.hub.get_stats()

        future = asyncio.run_coroutine_threadsafe(_read(), self._loop)
        return future.result(timeout)

    def _run(self):
        try:
            asyncio.run(self._serve())
        except Exception as exc:
            logger.error("Hub server crashed: %s", exc)
        finally:
            self._ready.set()

    async def _serve(self):
        self._loop = asyncio.get_running_loop()
        self._shutdown = asyncio.Event()
        async with serve(self.hub.handle_connection, self.host, self.port) as server:
            # port 0 binds an ephemeral port; report the real one
            self.port = server.sockets[0].getsockname()[1]
            self.hub.start()
            logger.info("WebSocket hub listening on ws://%s:%d", self.host, self.port)
            self._ready.set()
            await self._shutdown.wait()
            self.hub.stop()
        logger.info("WebSocket hub stopped")
