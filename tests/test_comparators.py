"""Tests for the per-channel comparators in core.comparators."""

import pytest

from core.comparators import (
    DEFAULT_COMPARATORS,
    SYSTEM_METRICS_FIELDS,
    InterfaceRateComparator,
    KeyedUsageComparator,
    MembershipComparator,
    RankedListComparator,
    ScalarMetricComparator,
)


def system(cpu, mem=40.0):
    return {"cpu": {"currentLoad": cpu}, "memory": {"usedPercentage": mem}}


# ============================================================================
# Scalar metrics (metrics:system)
# ============================================================================

@pytest.mark.parametrize("curr,expected", [
    (55.0, False),    # delta exactly 5 points
    (55.01, True),    # just over
    (45.0, False),
    (44.9, True),
])
def test_scalar_threshold_is_strict(curr, expected):
    comparator = ScalarMetricComparator(SYSTEM_METRICS_FIELDS)
    assert comparator.changed(system(50.0), system(curr), 0.05) is expected


def test_scalar_checks_every_field():
    comparator = ScalarMetricComparator(SYSTEM_METRICS_FIELDS)
    assert comparator.changed(system(50, mem=40), system(50, mem=46), 0.05)


def test_scalar_missing_parent_triggers():
    comparator = ScalarMetricComparator(SYSTEM_METRICS_FIELDS)
    assert comparator.changed(system(50), {"cpu": {"currentLoad": 50}}, 0.05)
    assert comparator.changed(None, system(50), 0.05)


def test_scalar_accepts_numeric_strings():
    comparator = ScalarMetricComparator([("load",)])
    assert not comparator.changed({"load": "10.0"}, {"load": "12.5"}, 0.05)
    assert comparator.changed({"load": "10.0"}, {"load": "15.5"}, 0.05)


# ============================================================================
# Per-interface rates (metrics:network)
# ============================================================================

def net(*rates):
    return {"stats": [
        {"interface": f"eth{i}", "rx_sec": rx, "tx_sec": tx}
        for i, (rx, tx) in enumerate(rates)
    ]}


def test_rate_from_zero_always_triggers():
    comparator = InterfaceRateComparator()
    assert comparator.changed(net((0, 0)), net((0.001, 0)), 0.1)
    assert comparator.changed(net((0, 0)), net((1, 0)), 1000)


def test_rate_fractional_threshold():
    comparator = InterfaceRateComparator()
    assert not comparator.changed(net((100, 100)), net((110, 100)), 0.1)   # 5%
    assert comparator.changed(net((100, 100)), net((150, 100)), 0.1)       # 25%


def test_rate_zero_to_zero_is_quiet():
    comparator = InterfaceRateComparator()
    assert not comparator.changed(net((0, 0)), net((0, 0)), 0.1)


def test_rate_compares_positionally():
    """Swapped interface order counts as a change even with equal rates."""
    comparator = InterfaceRateComparator()
    prev = {"stats": [{"interface": "eth0", "rx_sec": 5, "tx_sec": 5},
                      {"interface": "wlan0", "rx_sec": 5, "tx_sec": 5}]}
    curr = {"stats": list(reversed(prev["stats"]))}
    assert comparator.changed(prev, curr, 0.1)


def test_rate_new_interface_triggers():
    comparator = InterfaceRateComparator()
    assert comparator.changed(net((5, 5)), net((5, 5), (1, 1)), 0.1)


def test_rate_dropped_trailing_interface_is_quiet():
    """Only the current list is walked; a matching prefix is no change."""
    comparator = InterfaceRateComparator()
    prev = {"stats": [{"interface": "eth0", "rx_sec": 10, "tx_sec": 0},
                      {"interface": "wlan0", "rx_sec": 5, "tx_sec": 0}]}
    curr = {"stats": [{"interface": "eth0", "rx_sec": 10, "tx_sec": 0}]}
    assert not comparator.changed(prev, curr, 0.1)


def test_rate_missing_stats_triggers():
    comparator = InterfaceRateComparator()
    assert comparator.changed({}, net((5, 5)), 0.1)


# ============================================================================
# Ranked list (metrics:processes)
# ============================================================================

def procs(*pairs):
    return {"list": [{"pid": pid, "cpu": cpu} for pid, cpu in pairs]}


def test_ranked_reorder_in_top_five_triggers():
    comparator = RankedListComparator()
    prev = procs((1, 10), (2, 10), (3, 10), (4, 10), (5, 10))
    curr = procs((2, 10), (1, 10), (3, 10), (4, 10), (5, 10))
    assert comparator.changed(prev, curr, None)


def test_ranked_changes_below_top_five_ignored():
    comparator = RankedListComparator()
    prev = procs((1, 10), (2, 10), (3, 10), (4, 10), (5, 10), (6, 1))
    curr = procs((1, 10), (2, 10), (3, 10), (4, 10), (5, 10), (9, 99))
    assert not comparator.changed(prev, curr, None)


def test_ranked_utilization_margin():
    comparator = RankedListComparator()
    assert not comparator.changed(procs((1, 10)), procs((1, 15)), None)
    assert comparator.changed(procs((1, 10)), procs((1, 15.5)), None)


# ============================================================================
# Keyed usage (metrics:disk:detailed)
# ============================================================================

def test_keyed_usage_threshold():
    comparator = KeyedUsageComparator()
    prev = [{"mount": "/", "use": 50.0}]
    assert not comparator.changed(prev, [{"mount": "/", "use": 51.0}], 0.01)
    assert comparator.changed(prev, [{"mount": "/", "use": 51.5}], 0.01)


def test_keyed_usage_identity_and_length():
    comparator = KeyedUsageComparator()
    prev = [{"mount": "/", "use": 50.0}]
    assert comparator.changed(prev, [{"mount": "/data", "use": 50.0}], 0.01)
    assert comparator.changed(prev, prev + [{"mount": "/data", "use": 1}], 0.01)


def test_keyed_usage_falls_back_to_used_percentage():
    comparator = KeyedUsageComparator()
    prev = [{"mount": "/", "usedPercentage": 20}]
    assert comparator.changed(prev, [{"mount": "/", "usedPercentage": 30}], 0.01)


# ============================================================================
# Membership (docker:containers)
# ============================================================================

def test_membership_ignores_order_and_other_fields():
    comparator = MembershipComparator()
    prev = [{"id": "a", "state": "running", "status": "Up 1 minute"},
            {"id": "b", "state": "exited", "status": "Exited"}]
    curr = [{"id": "b", "state": "exited", "status": "Exited"},
            {"id": "a", "state": "running", "status": "Up 2 minutes"}]
    assert not comparator.changed(prev, curr, 0)


def test_membership_state_change_triggers():
    comparator = MembershipComparator()
    prev = [{"id": "a", "state": "running"}]
    assert comparator.changed(prev, [{"id": "a", "state": "exited"}], 0)
    assert comparator.changed(prev, [], 0)


def test_builtin_comparators_cover_thresholded_channels():
    assert set(DEFAULT_COMPARATORS) >= {
        "metrics:system", "metrics:network", "metrics:disk:detailed",
    }
