"""WebSocket broadcast hub.

Owns every client connection and the per-channel push loops. Clients
subscribe to channels; each loop fetches its channel only while at least
one connection listens, filters the result through the ChangeDetector,
and fans significant changes out to the subscribed connections.

All hub state lives on one asyncio event loop. Handlers and ticks run
to completion between awaits, so the connection map and subscription
sets need no locking.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Set

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from core import protocol
from core.change_detector import ChangeDetector
from core.protocol import ProtocolError
from core.registry import CHANNEL_REGISTRY, Channel, ChannelRegistry
from core.scheduler import ChannelScheduler

logger = logging.getLogger(__name__)


class Connection:
    """Hub-side state for one connected client."""

    def __init__(self, transport, client_id: Optional[str] = None):
        self.transport = transport
        self.id = client_id or self.generate_id()
        self.subscriptions: Set[str] = set()
        self.connected_at = protocol.now_ms()

    @staticmethod
    def generate_id() -> str:
        return f"client_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    @property
    def is_open(self) -> bool:
        return getattr(self.transport, "state", None) is State.OPEN

    def __repr__(self):
        return f"<Connection {self.id} subs={sorted(self.subscriptions)}>"


class BroadcastHub:
    """Channel-based publish/subscribe hub."""

    def __init__(
        self,
        registry: Optional[ChannelRegistry] = None,
        change_detector: Optional[ChangeDetector] = None,
    ):
        self.registry = registry if registry is not None else CHANNEL_REGISTRY
        self.change_detector = change_detector or ChangeDetector()
        self._connections: Dict[Any, Connection] = {}
        self._scheduler = ChannelScheduler(self.push_channel_data)

    # ─── Lifecycle ───

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def start(self):
        """Arm one loop per registered channel. No-op if already running."""
        if self.is_running:
            return
        logger.info("Hub: starting push loops")
        self._scheduler.start(self.registry)

    def stop(self):
        """Cancel every push loop. Connections stay open."""
        if not self.is_running:
            return
        logger.info("Hub: stopping push loops")
        self._scheduler.stop()

    # ─── Connections ───

    async def handle_connection(self, transport):
        """Serve one client for its whole lifetime.

        Used directly as the websockets server handler.
        """
        connection = await self.open_connection(transport)
        try:
            async for raw in transport:
                await self.handle_message(connection, raw)
        except ConnectionClosed:
            pass
        except Exception as exc:
            logger.error("Hub: client %s error: %s", connection.id, exc)
        finally:
            self.close_connection(connection)

    async def open_connection(self, transport) -> Connection:
        connection = Connection(transport)
        self._connections[transport] = connection
        logger.info("Hub: client %s connected", connection.id)
        await self.send(connection, protocol.connected_message(connection.id, self.registry.names()))
        return connection

    def close_connection(self, connection: Connection):
        if self._connections.pop(connection.transport, None) is not None:
            logger.info("Hub: client %s disconnected", connection.id)

    @property
    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    # ─── Inbound messages ───

    async def handle_message(self, connection: Connection, raw):
        """Dispatch one inbound frame. Never raises for bad input."""
        try:
            message = protocol.decode(raw)
            msg_type = message.get("type") if isinstance(message, dict) else None

            if msg_type == protocol.SUBSCRIBE:
                await self.handle_subscribe(connection, protocol.channel_list(message))
            elif msg_type == protocol.UNSUBSCRIBE:
                await self.handle_unsubscribe(connection, protocol.channel_list(message))
            elif msg_type == protocol.PING:
                await self.send(connection, protocol.pong_message())
            else:
                raise ProtocolError(protocol.UNKNOWN_TYPE, f"Unknown message type: {msg_type}")
        except ProtocolError as exc:
            logger.warning("Hub: client %s sent bad message: %s", connection.id, exc.message)
            await self.send(connection, exc.to_message())
        except Exception as exc:
            logger.error("Hub: error handling message from %s: %s", connection.id, exc)

    async def handle_subscribe(self, connection: Connection, channels: List[Any]):
        valid: List[str] = []
        invalid: List[Any] = []
        for name in channels:
            if name in self.registry:
                if name not in valid:
                    valid.append(name)
            else:
                invalid.append(name)

        connection.subscriptions.update(valid)
        await self.send(connection, protocol.subscribed_message(valid, invalid))
        logger.info("Hub: client %s subscribed to %s", connection.id, valid)

        # Current data right away, outside the change detector
        for name in valid:
            channel = self.registry.get(name)
            try:
                data = await channel.fetch()
            except Exception as exc:
                logger.error("Hub: initial fetch for %s failed: %s", name, exc)
                continue
            await self.send(connection, protocol.data_message(name, data))

    async def handle_unsubscribe(self, connection: Connection, channels: List[Any]):
        for name in channels:
            if isinstance(name, str):
                connection.subscriptions.discard(name)
        await self.send(connection, protocol.unsubscribed_message(channels))
        logger.info("Hub: client %s unsubscribed from %s", connection.id, channels)

    # ─── Broadcasting ───

    def has_subscribers(self, channel_name: str) -> bool:
        return any(channel_name in c.subscriptions for c in self._connections.values())

    async def push_channel_data(self, channel: Channel):
        """One tick of a channel loop: fetch, filter, broadcast."""
        if not self.has_subscribers(channel.name):
            return

        try:
            data = await channel.fetch()
        except Exception as exc:
            logger.error("Hub: fetch for %s failed: %s", channel.name, exc)
            return

        if not self.change_detector.has_significant_change(
            channel.name, data, channel.threshold, channel.comparator
        ):
            return

        await self.broadcast(channel.name, data)

    async def broadcast(self, channel_name: str, data: Any) -> int:
        """Send data to every open connection subscribed to channel_name."""
        message = protocol.encode(protocol.data_message(channel_name, data))
        sent = 0
        for connection in self.connections:
            if channel_name not in connection.subscriptions or not connection.is_open:
                continue
            if await self._send_raw(connection, message):
                sent += 1
        logger.debug("Hub: broadcast %s to %d clients", channel_name, sent)
        return sent

    async def send(self, connection: Connection, message: Dict[str, Any]) -> bool:
        if not connection.is_open:
            return False
        return await self._send_raw(connection, protocol.encode(message))

    async def _send_raw(self, connection: Connection, text: str) -> bool:
        try:
            await connection.transport.send(text)
            return True
        except ConnectionClosed:
            logger.debug("Hub: send to closed client %s skipped", connection.id)
        except Exception as exc:
            logger.warning("Hub: send to %s failed: %s", connection.id, exc)
        return False

    # ─── Observability ───

    def get_stats(self) -> Dict[str, Any]:
        channel_subscribers = {name: 0 for name in self.registry.names()}
        for connection in self._connections.values():
            for name in connection.subscriptions:
                if name in channel_subscribers:
                    channel_subscribers[name] += 1
        return {
            "connectedClients": len(self._connections),
            "channelSubscribers": channel_subscribers,
            "isRunning": self.is_running,
        }
