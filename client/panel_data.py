"""Per-panel data source: REST polling or WebSocket push.

A PanelDataSource feeds one dashboard panel. In "websocket" mode it
subscribes to the panel's channel through the shared ConnectionManager;
in "polling" mode, or whenever the WebSocket is down, it fetches the
REST endpoint on a timer instead. Either way the panel sees the same
snapshot: data, error, lastUpdate, isLoading, isLive.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from config import DEFAULT_POLLING_INTERVALS, FALLBACK_POLLING_INTERVAL, PANEL_TO_CHANNEL
from core.protocol import now_ms

logger = logging.getLogger(__name__)

POLLING = "polling"
WEBSOCKET = "websocket"
MODES = (POLLING, WEBSOCKET)


class RepeatingTimer:
    """Calls fn immediately, then every interval seconds, on a daemon thread."""

    def __init__(self, interval: float, fn: Callable[[], None], name: str = "poller"):
        self.interval = interval
        self.fn = fn
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()

    def stop(self):
        self._stop.set()

    def _run(self):
        while True:
            try:
                self.fn()
            except Exception as exc:
                logger.error("Poller %s error: %s", self.name, exc)
            if self._stop.wait(self.interval):
                break


class PanelDataSource:
    """Dual-mode data feed for one panel."""

    def __init__(
        self,
        panel_id: str,
        connection,
        fetch_fn: Optional[Callable[[], Any]] = None,
        mode: str = POLLING,
        polling_interval: Optional[int] = None,
        enabled: bool = True,
        channel: Optional[str] = None,
        on_update: Optional[Callable[["PanelDataSource"], None]] = None,
        transform: Optional[Callable[[Any], Any]] = None,
        poller_factory: Callable[..., Any] = RepeatingTimer,
    ):
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        self.panel_id = panel_id
        self.channel = channel or PANEL_TO_CHANNEL.get(panel_id)
        self.connection = connection
        self.fetch_fn = fetch_fn
        self.mode = mode
        self.polling_interval = (
            polling_interval
            or DEFAULT_POLLING_INTERVALS.get(panel_id)
            or FALLBACK_POLLING_INTERVAL
        )
        self.enabled = enabled
        self.on_update = on_update
        self.transform = transform
        self._poller_factory = poller_factory

        self._lock = threading.RLock()
        self._mounted = False
        self._active: Optional[str] = None  # mode actually wired up right now
        self._poller = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._remove_listener: Optional[Callable[[], None]] = None

        self.data: Any = None
        self.error: Optional[str] = None
        self.last_update: Optional[int] = None
        self.is_loading = False

    # ─── Mount / unmount ───

    def start(self):
        """Mount the panel: begin polling or subscribe, as the mode allows."""
        with self._lock:
            if self._mounted:
                return
            self._mounted = True
            self._remove_listener = self.connection.add_connection_listener(
                on_connect=self._reconfigure, on_disconnect=self._reconfigure,
            )
        self._reconfigure()

    def stop(self):
        """Unmount: cancel polling and drop the subscription synchronously."""
        with self._lock:
            if not self._mounted:
                return
            self._mounted = False
            if self._remove_listener:
                self._remove_listener()
                self._remove_listener = None
            self._teardown()

    # ─── Options ───

    def set_mode(self, mode: str):
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        with self._lock:
            self.mode = mode
        self._reconfigure()

    def set_enabled(self, enabled: bool):
        """Disabling stops all fetching but keeps the last data."""
        with self._lock:
            self.enabled = enabled
        self._reconfigure()

    def set_polling_interval(self, interval_ms: int):
        with self._lock:
            self.polling_interval = interval_ms
            if self._active == POLLING:
                self._teardown()
        self._reconfigure()

    # ─── State ───

    @property
    def effective_mode(self) -> str:
        """WebSocket only while the shared connection is actually up."""
        if self.mode == WEBSOCKET and self.connection.is_connected():
            return WEBSOCKET
        return POLLING

    @property
    def is_live(self) -> bool:
        return self.effective_mode == WEBSOCKET

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "data": self.data,
                "error": self.error,
                "lastUpdate": self.last_update,
                "isLoading": self.is_loading,
                "isLive": self.is_live,
                "mode": self.effective_mode,
            }

    # ─── Wiring ───

    def _reconfigure(self):
        """Bring the active feed in line with mode, enabled flag and connection."""
        with self._lock:
            if not self._mounted or not self.enabled or not self.channel:
                desired = None
            else:
                desired = self.effective_mode
            if desired == self._active:
                return
            self._teardown()

            if desired == WEBSOCKET:
                self._unsubscribe = self.connection.subscribe(self.channel, self._on_push)
                self.is_loading = True
                logger.info("Panel %s: live via %s", self.panel_id, self.channel)
            elif desired == POLLING:
                self._poller = self._poller_factory(
                    self.polling_interval / 1000.0, self.refetch, name=f"poll-{self.panel_id}"
                )
                logger.info("Panel %s: polling every %dms", self.panel_id, self.polling_interval)
            self._active = desired
            poller = self._poller

        if poller is not None:
            poller.start()

    def _teardown(self):
        if self._poller is not None:
            self._poller.stop()
            self._poller = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            self.is_loading = False
        self._active = None

    def _on_push(self, data: Any, timestamp: Optional[int] = None):
        with self._lock:
            if self._active != WEBSOCKET:
                return
            self.data = self.transform(data) if self.transform else data
            self.last_update = timestamp or now_ms()
            self.error = None
            self.is_loading = False
        self._notify()

    def refetch(self):
        """Fetch once from REST, recording the result or the error."""
        if self.fetch_fn is None:
            return
        with self._lock:
            self.is_loading = True
        try:
            result = self.fetch_fn()
        except Exception as exc:
            with self._lock:
                self.error = str(exc)
                self.is_loading = False
            logger.warning("Panel %s fetch failed: %s", self.panel_id, exc)
        else:
            with self._lock:
                self.data = self.transform(result) if self.transform else result
                self.last_update = now_ms()
                self.error = None
                self.is_loading = False
        self._notify()

    def _notify(self):
        if self.on_update is None:
            return
        try:
            self.on_update(self)
        except Exception as exc:
            logger.error("Panel %s update callback error: %s", self.panel_id, exc)
