"""Shared WebSocket connection for Homelab Portal clients.

One ConnectionManager serves a whole client process: every panel that
wants pushed data subscribes through it, and the manager keeps a single
transport open to the hub. Several callbacks on the same channel share
one server-side subscription; the first callback subscribes and the
last one to leave unsubscribes.

When the transport drops, the manager reconnects with exponential
backoff and re-subscribes every active channel in one message.

Transport callbacks arrive on the websocket thread while panels
subscribe from their own threads, so shared state sits behind a
re-entrant lock. Subscriber callbacks always run outside it.
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set

import websocket

from config import RECONNECT_INITIAL_DELAY, RECONNECT_MAX_DELAY
from core import protocol

logger = logging.getLogger(__name__)

DataCallback = Callable[[Any, Optional[int]], None]


def backoff_delay(attempts: int, initial_delay: int = RECONNECT_INITIAL_DELAY,
                  max_delay: int = RECONNECT_MAX_DELAY) -> int:
    """Reconnect delay in ms: initial * 2**attempts, capped at max_delay."""
    return min(initial_delay * (2 ** attempts), max_delay)


def _spawn_daemon(target: Callable[[], None]):
    threading.Thread(target=target, daemon=True, name="ws-client").start()


class ConnectionManager:
    """Single transport, reconnect/backoff, channel -> callbacks multiplexer."""

    def __init__(
        self,
        url: str,
        initial_delay: int = RECONNECT_INITIAL_DELAY,
        max_delay: int = RECONNECT_MAX_DELAY,
        transport_factory: Optional[Callable[..., Any]] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        spawn: Callable[[Callable[[], None]], None] = _spawn_daemon,
    ):
        self.url = url
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._transport_factory = transport_factory or websocket.WebSocketApp
        self._timer_factory = timer_factory
        self._spawn = spawn

        self._lock = threading.RLock()
        self._transport = None
        self._open = False
        self._connecting = False
        self._closed = False
        self._reconnect_attempts = 0
        self._reconnect_timer = None
        self._subscribers: Dict[str, Set[DataCallback]] = {}
        self._listeners: List[Dict[str, Optional[Callable[[], None]]]] = []

    # ─── State ───

    def is_connected(self) -> bool:
        return self._transport is not None and self._open

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def channels(self) -> List[str]:
        with self._lock:
            return list(self._subscribers)

    def add_connection_listener(self, on_connect=None, on_disconnect=None) -> Callable[[], None]:
        """Register connect/disconnect callbacks. Returns a remover."""
        entry = {"on_connect": on_connect, "on_disconnect": on_disconnect}
        with self._lock:
            self._listeners.append(entry)

        def remove():
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)
        return remove

    # ─── Connection lifecycle ───

    def connect(self):
        """Open the transport unless it is already open or opening."""
        with self._lock:
            if self._open or self._connecting:
                return
            self._closed = False
            self._connecting = True
            try:
                transport = self._transport_factory(
                    self.url,
                    on_open=self._on_open,
                    on_message=self._on_message,
                    on_error=self._on_error,
                    on_close=self._on_close,
                )
            except Exception as exc:
                logger.error("WebSocket connection failed: %s", exc)
                self._connecting = False
                self._schedule_reconnect()
                return
            self._transport = transport

        logger.debug("WebSocket connecting to %s", self.url)
        self._spawn(lambda: self._run_transport(transport))

    def close(self):
        """Stop reconnecting and close the transport."""
        with self._lock:
            self._closed = True
            self._cancel_reconnect()
            transport = self._transport
        if transport is not None:
            try:
                transport.close()
            except Exception as exc:
                logger.debug("WebSocket close error: %s", exc)

    def _run_transport(self, transport):
        try:
            transport.run_forever()
        except Exception as exc:
            logger.error("WebSocket transport error: %s", exc)
        finally:
            self._handle_close(transport)

    def _on_open(self, transport):
        with self._lock:
            if transport is not self._transport:
                return
            self._open = True
            self._connecting = False
            self._reconnect_attempts = 0
            listeners = list(self._listeners)
            channels = list(self._subscribers)
        logger.info("WebSocket connected to %s", self.url)

        self._notify(listeners, "on_connect")

        if channels:
            self._send(protocol.subscribe_request(channels))

    def _on_message(self, transport, raw):
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.error("WebSocket message parse error: %s", exc)
            return
        if not isinstance(message, dict):
            return

        msg_type = message.get("type")
        if msg_type == protocol.DATA and message.get("channel"):
            with self._lock:
                callbacks = list(self._subscribers.get(message["channel"], ()))
            for cb in callbacks:
                try:
                    cb(message.get("data"), message.get("timestamp"))
                except Exception as exc:
                    logger.error("Subscriber callback error [%s]: %s", message["channel"], exc)
        elif msg_type == protocol.ERROR:
            logger.warning("Hub error %s: %s", message.get("code"), message.get("message"))
        elif msg_type == protocol.SUBSCRIBED and message.get("invalid"):
            logger.warning("Hub rejected channels: %s", message["invalid"])
        else:
            logger.debug("WebSocket message: %s", msg_type)

    def _on_error(self, transport, error):
        logger.error("WebSocket error: %s", error)
        with self._lock:
            if transport is self._transport:
                self._connecting = False

    def _on_close(self, transport, status_code=None, reason=None):
        self._handle_close(transport)

    def _handle_close(self, transport):
        """Runs once per transport, from on_close or when run_forever returns."""
        with self._lock:
            if transport is not self._transport:
                return
            self._transport = None
            self._open = False
            self._connecting = False
            listeners = list(self._listeners)
            closed = self._closed
        logger.info("WebSocket disconnected")

        self._notify(listeners, "on_disconnect")

        if not closed:
            with self._lock:
                self._schedule_reconnect()

    def _schedule_reconnect(self):
        """Arm the single reconnect timer. Caller holds the lock."""
        self._cancel_reconnect()
        delay = backoff_delay(self._reconnect_attempts, self.initial_delay, self.max_delay)
        self._reconnect_attempts += 1
        logger.info("WebSocket reconnecting in %dms (attempt %d)", delay, self._reconnect_attempts)

        timer = self._timer_factory(delay / 1000.0, self._reconnect)
        timer.daemon = True
        self._reconnect_timer = timer
        timer.start()

    def _cancel_reconnect(self):
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _reconnect(self):
        with self._lock:
            self._reconnect_timer = None
            if self._closed:
                return
        self.connect()

    def _notify(self, listeners, key):
        for entry in listeners:
            cb = entry.get(key)
            if cb is None:
                continue
            try:
                cb()
            except Exception as exc:
                logger.error("Connection listener error: %s", exc)

    # ─── Subscriptions ───

    def subscribe(self, channel: str, callback: DataCallback) -> Callable[[], None]:
        """Add callback to channel. Returns an unsubscribe function."""
        with self._lock:
            callbacks = self._subscribers.get(channel)
            if callbacks is None:
                callbacks = self._subscribers[channel] = set()
                if self.is_connected():
                    self._send(protocol.subscribe_request([channel]))
            callbacks.add(callback)

        def unsubscribe():
            with self._lock:
                current = self._subscribers.get(channel)
                if current is None or callback not in current:
                    return
                current.discard(callback)
                if not current:
                    del self._subscribers[channel]
                    if self.is_connected():
                        self._send(protocol.unsubscribe_request([channel]))
        return unsubscribe

    def _send(self, message: Dict[str, Any]) -> bool:
        transport = self._transport
        if transport is None:
            return False
        try:
            transport.send(protocol.encode(message))
            return True
        except Exception as exc:
            logger.warning("WebSocket send failed: %s", exc)
            return False
