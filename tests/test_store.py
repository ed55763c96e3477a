"""
Tests: workspace store backends.

Covers:
    - SQLWorkspaceStore and MemoryWorkspaceStore share one contract
    - documents are copied in and out
    - atomic units: all writes kept or none, keys locked until the end
"""

import threading

import pytest

from vesta.services.store import MemoryWorkspaceStore, SQLWorkspaceStore


@pytest.fixture(params=["sql", "memory"])
def store(request, app):
    return SQLWorkspaceStore() if request.param == "sql" else MemoryWorkspaceStore()


class TestStoreContract:
    def test_missing_key_returns_default(self, store):
        assert store.get("reports", "ws-1") is None
        assert store.get("reports", "ws-1", []) == []

    def test_set_and_get(self, store):
        store.set("reports", "ws-1", [{"id": "r1"}])
        assert store.get("reports", "ws-1") == [{"id": "r1"}]

    def test_overwrite(self, store):
        store.set("workspaces", "ws-1", {"name": "A"})
        store.set("workspaces", "ws-1", {"name": "B"})
        assert store.get("workspaces", "ws-1") == {"name": "B"}

    def test_collections_are_separate(self, store):
        store.set("reports", "ws-1", [1])
        store.set("audit-logs", "ws-1", [2])
        assert store.get("reports", "ws-1") == [1]
        assert store.keys("audit-logs") == ["ws-1"]

    def test_mutate(self, store):
        store.set("reports", "ws-1", [1])
        assert store.mutate("reports", "ws-1", lambda xs: xs + [2], []) == [1, 2]
        assert store.mutate("reports", "ws-2", lambda xs: xs + [3], []) == [3]
        assert store.get("reports", "ws-1") == [1, 2]

    def test_mutate_error_writes_nothing(self, store):
        store.set("reports", "ws-1", [1])

        def boom(_):
            raise ValueError("nope")

        with pytest.raises(ValueError):
            store.mutate("reports", "ws-1", boom, [])
        assert store.get("reports", "ws-1") == [1]

    def test_delete(self, store):
        store.set("reports", "ws-1", [1])
        store.delete("reports", "ws-1")
        store.delete("reports", "ws-missing")
        assert store.get("reports", "ws-1") is None
        assert store.keys("reports") == []

    def test_returned_documents_are_copies(self, store):
        value = {"items": [1]}
        store.set("workspaces", "ws-1", value)
        value["items"].append(2)
        fetched = store.get("workspaces", "ws-1")
        fetched["items"].append(3)
        assert store.get("workspaces", "ws-1") == {"items": [1]}


class TestMemoryStore:
    def test_clear(self):
        store = MemoryWorkspaceStore()
        store.set("reports", "ws-1", [1])
        store.clear()
        assert store.keys("reports") == []


class TestAtomicUnit:
    def test_writes_are_kept_together(self, store):
        with store.atomic():
            store.mutate("reports", "ws-1", lambda xs: xs + [1], [])
            store.set("audit-logs", "ws-1", ["deleted"])
        assert store.get("reports", "ws-1") == [1]
        assert store.get("audit-logs", "ws-1") == ["deleted"]

    def test_error_discards_every_write(self, store):
        store.set("reports", "ws-1", [1, 2])
        store.set("enhanced-drafts", "r1", {"reportId": "r1"})

        with pytest.raises(RuntimeError):
            with store.atomic():
                store.mutate("reports", "ws-1", lambda xs: xs[1:], [])
                store.delete("enhanced-drafts", "r1")
                store.set("audit-logs", "ws-1", ["deleted"])
                raise RuntimeError("audit write failed")

        assert store.get("reports", "ws-1") == [1, 2]
        assert store.get("enhanced-drafts", "r1") == {"reportId": "r1"}
        assert store.get("audit-logs", "ws-1") is None

    def test_nested_unit_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.atomic():
                with store.atomic():
                    store.set("reports", "ws-1", [1])
                raise RuntimeError("outer failed")
        assert store.get("reports", "ws-1") is None

    def test_mutated_keys_stay_locked_until_the_end(self, store):
        lock = store.lock_for("reports", "ws-1")
        seen = []

        def try_lock():
            acquired = lock.acquire(blocking=False)
            seen.append(acquired)
            if acquired:
                lock.release()

        with store.atomic():
            store.mutate("reports", "ws-1", lambda xs: xs + [1], [])
            other = threading.Thread(target=try_lock)
            other.start()
            other.join()
        other = threading.Thread(target=try_lock)
        other.start()
        other.join()

        assert seen == [False, True]
