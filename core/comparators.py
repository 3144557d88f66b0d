"""Change comparators used by the ChangeDetector.

A comparator answers one question: given the last broadcast value and a
freshly fetched one, is the difference worth pushing to clients? Each
channel carries its own comparator in the registry, so adding a channel
never means touching a central switch.

All comparators return True when the data does not have the shape they
expect; an unrecognised payload is always treated as a change.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Tuple


def serialize(data: Any) -> str:
    """Order-sensitive canonical form used for structural equality."""
    return json.dumps(data, separators=(",", ":"), default=str)


def _as_float(value: Any) -> float:
    """Collector payloads may carry numbers as strings ("12.34")."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


class Comparator(ABC):
    """Strategy deciding whether two snapshots differ significantly."""

    @abstractmethod
    def changed(self, prev: Any, curr: Any, threshold: Optional[float]) -> bool:
        ...

    def __repr__(self):
        return f"{type(self).__name__}()"


class StructuralComparator(Comparator):
    """Any difference at all, compared through serialization."""

    def changed(self, prev, curr, threshold):
        return serialize(prev) != serialize(curr)


class ScalarMetricComparator(Comparator):
    """Scalar fields compared in percentage points.

    Each tracked field is a key path into the payload, e.g.
    ("cpu", "currentLoad"). A field triggers when its absolute delta is
    strictly greater than threshold * 100.
    """

    def __init__(self, fields: Sequence[Tuple[str, ...]]):
        self.fields = [tuple(path) for path in fields]

    def _resolve(self, data: Any, path: Tuple[str, ...]):
        """Return (found, value). found is False when a parent object is missing."""
        node = data
        for key in path[:-1]:
            if not isinstance(node, dict) or not isinstance(node.get(key), dict):
                return False, None
            node = node[key]
        if not isinstance(node, dict):
            return False, None
        return True, node.get(path[-1])

    def changed(self, prev, curr, threshold):
        limit = (threshold or 0) * 100
        for path in self.fields:
            prev_found, prev_value = self._resolve(prev, path)
            curr_found, curr_value = self._resolve(curr, path)
            if not prev_found or not curr_found:
                return True
            if abs(_as_float(prev_value) - _as_float(curr_value)) > limit:
                return True
        return False

    def __repr__(self):
        return f"ScalarMetricComparator(fields={self.fields!r})"


class InterfaceRateComparator(Comparator):
    """Per-interface throughput compared as a fractional change.

    Lists are compared by position. A reordered interface enumeration
    therefore counts as a change even when every rate is identical, while
    an interface vanishing from the end of the list does not.
    """

    def __init__(self, list_key="stats", id_key="interface", rate_keys=("rx_sec", "tx_sec")):
        self.list_key = list_key
        self.id_key = id_key
        self.rate_keys = tuple(rate_keys)

    def _rate(self, item: dict) -> float:
        return sum(_as_float(item.get(key)) for key in self.rate_keys)

    def changed(self, prev, curr, threshold):
        if not isinstance(prev, dict) or not isinstance(curr, dict):
            return True
        prev_list = prev.get(self.list_key)
        curr_list = curr.get(self.list_key)
        if not isinstance(prev_list, list) or not isinstance(curr_list, list):
            return True

        # Walks the current list only: a dropped trailing interface is not a change
        for index, curr_item in enumerate(curr_list):
            prev_item = prev_list[index] if index < len(prev_list) else None
            if not isinstance(prev_item, dict) or not isinstance(curr_item, dict):
                return True
            if prev_item.get(self.id_key) != curr_item.get(self.id_key):
                return True

            prev_rate = self._rate(prev_item)
            curr_rate = self._rate(curr_item)
            if prev_rate == 0 and curr_rate > 0:
                return True
            if prev_rate > 0 and abs((curr_rate - prev_rate) / prev_rate) > (threshold or 0):
                return True
        return False


class RankedListComparator(Comparator):
    """Top-N ranking compared by identity and a fixed utilization margin.

    The threshold argument is ignored: ranking changes and margin are fixed.
    """

    def __init__(self, list_key="list", id_key="pid", metric_key="cpu", top_n=5, margin=5.0):
        self.list_key = list_key
        self.id_key = id_key
        self.metric_key = metric_key
        self.top_n = top_n
        self.margin = margin

    def changed(self, prev, curr, threshold):
        if not isinstance(prev, dict) or not isinstance(curr, dict):
            return True
        prev_list = prev.get(self.list_key)
        curr_list = curr.get(self.list_key)
        if not isinstance(prev_list, list) or not isinstance(curr_list, list):
            return True

        prev_top = prev_list[:self.top_n]
        curr_top = curr_list[:self.top_n]
        if len(prev_top) != len(curr_top):
            return True
        for prev_item, curr_item in zip(prev_top, curr_top):
            if not isinstance(prev_item, dict) or not isinstance(curr_item, dict):
                return True
            if prev_item.get(self.id_key) != curr_item.get(self.id_key):
                return True

        for prev_item, curr_item in zip(prev_top, curr_top):
            delta = abs(_as_float(prev_item.get(self.metric_key)) - _as_float(curr_item.get(self.metric_key)))
            if delta > self.margin:
                return True
        return False


class KeyedUsageComparator(Comparator):
    """Array of resources (disks) keyed by identity, compared on usage percent."""

    def __init__(self, id_key="mount", usage_keys=("use", "usedPercentage")):
        self.id_key = id_key
        self.usage_keys = tuple(usage_keys)

    def _usage(self, item: dict) -> float:
        for key in self.usage_keys:
            if item.get(key):
                return _as_float(item[key])
        return 0.0

    def changed(self, prev, curr, threshold):
        if not isinstance(prev, list) or not isinstance(curr, list):
            return True
        if len(prev) != len(curr):
            return True

        limit = (threshold or 0) * 100
        for prev_item, curr_item in zip(prev, curr):
            if not isinstance(prev_item, dict) or not isinstance(curr_item, dict):
                return True
            if prev_item.get(self.id_key) != curr_item.get(self.id_key):
                return True
            if abs(self._usage(prev_item) - self._usage(curr_item)) > limit:
                return True
        return False


class MembershipComparator(Comparator):
    """Collection of items compared as an unordered set of identity:state pairs."""

    def __init__(self, id_key="id", state_key="state"):
        self.id_key = id_key
        self.state_key = state_key

    def _signature(self, items: list) -> str:
        pairs = []
        for item in items:
            if isinstance(item, dict):
                pairs.append(f"{item.get(self.id_key)}:{item.get(self.state_key)}")
            else:
                pairs.append(serialize(item))
        return ",".join(sorted(pairs))

    def changed(self, prev, curr, threshold):
        if not isinstance(prev, list) or not isinstance(curr, list):
            return True
        if len(prev) != len(curr):
            return True
        return self._signature(prev) != self._signature(curr)


# Built-in comparators by channel name, used when the caller does not
# pass the comparator stored on the registry entry.
SYSTEM_METRICS_FIELDS = (("cpu", "currentLoad"), ("memory", "usedPercentage"))

DEFAULT_COMPARATORS = {
    "metrics:system": ScalarMetricComparator(SYSTEM_METRICS_FIELDS),
    "metrics:network": InterfaceRateComparator(),
    "metrics:processes": RankedListComparator(),
    "metrics:disk:detailed": KeyedUsageComparator(),
    "docker:containers": MembershipComparator(),
}
