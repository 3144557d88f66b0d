"""Tests for core.service_store.ServiceStore."""

import threading

import pytest

from config import DEFAULT_SERVICES
from core.service_store import ServiceStore


@pytest.fixture
def store(tmp_path):
    s = ServiceStore(str(tmp_path / "data" / "homelab.db"), seed=False)
    yield s
    s.close()


def test_seeds_defaults_into_empty_table(tmp_path):
    s = ServiceStore(str(tmp_path / "seeded.db"))
    names = {svc["name"] for svc in s.get_all()}
    assert names == {svc["name"] for svc in DEFAULT_SERVICES}
    s.close()

    # Reopening does not seed a second time
    again = ServiceStore(str(tmp_path / "seeded.db"))
    assert len(again.get_all()) == len(DEFAULT_SERVICES)
    again.close()


def test_create_get_update_delete(store):
    created = store.create("NAS", "http://nas:5000", icon="💾")
    assert created["name"] == "NAS"
    assert created["category"] == "Other"
    assert store.get(created["id"]) == created

    updated = store.update(created["id"], "NAS", "http://nas:5001", category="Storage")
    assert updated["url"] == "http://nas:5001"
    assert updated["category"] == "Storage"

    assert store.delete(created["id"]) is True
    assert store.get(created["id"]) is None
    assert store.delete(created["id"]) is False


def test_update_missing_returns_none(store):
    assert store.update(999, "x", "http://x") is None


def test_list_ordered_by_category_then_name(store):
    store.create("Zeta", "http://z", category="B")
    store.create("Alpha", "http://a", category="B")
    store.create("Mid", "http://m", category="A")
    assert [s["name"] for s in store.get_all()] == ["Mid", "Alpha", "Zeta"]


def test_reads_from_other_threads(store):
    store.create("Grafana", "http://g")
    seen = []
    worker = threading.Thread(target=lambda: seen.extend(store.get_all()))
    worker.start()
    worker.join()
    assert [s["name"] for s in seen] == ["Grafana"]


def test_memory_database_shares_one_connection():
    s = ServiceStore(":memory:", seed=True)
    seen = []
    worker = threading.Thread(target=lambda: seen.extend(s.get_all()))
    worker.start()
    worker.join()
    assert len(seen) == len(DEFAULT_SERVICES)
    s.close()
