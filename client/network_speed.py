"""Download/upload speed derived from consecutive network snapshots.

Uses the byte counters of the first interface in metrics:network
payloads and the time between snapshots as they arrive.
"""

import time
from typing import Any, Callable, Dict, Optional


class NetworkSpeedTracker:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._previous: Optional[Dict[str, Any]] = None
        self._previous_time: Optional[float] = None
        self.speed: Optional[Dict[str, float]] = None

    def update(self, data: Any) -> Optional[Dict[str, float]]:
        """Feed a snapshot; returns {downloadSpeed, uploadSpeed} in bytes/s when known."""
        now = self._clock()
        current = _first_stats(data)
        previous = _first_stats(self._previous)

        if current and previous and self._previous_time is not None:
            elapsed = now - self._previous_time
            if elapsed > 0:
                rx = max(0, current.get("rx_bytes", 0) - previous.get("rx_bytes", 0))
                tx = max(0, current.get("tx_bytes", 0) - previous.get("tx_bytes", 0))
                self.speed = {"downloadSpeed": rx / elapsed, "uploadSpeed": tx / elapsed}

        self._previous = data
        self._previous_time = now
        return self.speed

    def __call__(self, data: Any) -> Any:
        """Usable as a PanelDataSource transform: records speed, passes data through."""
        self.update(data)
        return data


def _first_stats(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    stats = data.get("stats")
    if isinstance(stats, list) and stats and isinstance(stats[0], dict):
        return stats[0]
    return None
