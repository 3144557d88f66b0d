"""Change detection for hub broadcasts.

Remembers the last value broadcast on each channel and decides whether a
freshly fetched value differs enough to be pushed again. One detector is
shared by every connection: the decision is per channel, not per client.
"""

import json
import logging
from typing import Any, Dict, Optional

from core.comparators import DEFAULT_COMPARATORS, Comparator, StructuralComparator

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Per-channel significant-change filter."""

    def __init__(self, comparators: Optional[Dict[str, Comparator]] = None):
        self._previous: Dict[str, Any] = {}
        self._comparators = dict(DEFAULT_COMPARATORS if comparators is None else comparators)
        self._fallback = StructuralComparator()

    def has_significant_change(
        self,
        channel: str,
        new_data: Any,
        threshold: Optional[float],
        comparator: Optional[Comparator] = None,
    ) -> bool:
        """Return True when new_data should be broadcast on channel.

        The stored snapshot is replaced only when this returns True, so
        it always holds the last value that was actually broadcast.
        """
        if channel not in self._previous:
            self._previous[channel] = self._clone(new_data)
            return True

        prev = self._previous[channel]
        if threshold is None:
            changed = self._fallback.changed(prev, new_data, None)
        else:
            strategy = comparator or self._comparators.get(channel, self._fallback)
            changed = strategy.changed(prev, new_data, threshold)

        if changed:
            self._previous[channel] = self._clone(new_data)
        else:
            logger.debug("No significant change on %s", channel)
        return changed

    def last_value(self, channel: str) -> Any:
        """Copy of the last broadcast value for channel (None if unseen)."""
        if channel not in self._previous:
            return None
        return self._clone(self._previous[channel])

    def clear(self, channel: Optional[str] = None):
        """Forget one channel, or every channel when called without one."""
        if channel:
            self._previous.pop(channel, None)
        else:
            self._previous.clear()

    @staticmethod
    def _clone(data: Any) -> Any:
        return json.loads(json.dumps(data, default=str))
