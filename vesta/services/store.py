"""
Workspace Store: whole-collection key-value persistence.

Every collection document is read and written as a whole; there is no
partial patch primitive. ``mutate`` wraps the read-modify-write cycle in a
per-key lock so concurrent writers inside one process (bulk delete workers)
do not drop each other's changes. Across processes the store is
last-write-wins.

Writes that belong together go through ``atomic``: they are kept or
discarded as one unit, and the keys they mutate stay locked until the unit
ends.

Usage:
    from vesta.services.store import get_store

    store = get_store()
    reports = store.get("reports", workspace_id, [])
    store.mutate("reports", workspace_id, lambda rs: [r for r in rs if r["id"] != rid], [])

    with store.atomic():
        store.mutate("reports", workspace_id, drop_report, [])
        store.mutate("audit-logs", workspace_id, prepend_entry, [])
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from vesta.core.exceptions import StoreUnavailable
from vesta.models import db
from vesta.models.store import StoreEntry

logger = logging.getLogger(__name__)

# Collections keyed by workspace id; all are wiped when a workspace is deleted.
WORKSPACE_COLLECTIONS = (
    "workspaces",
    "workspace-members",
    "reports",
    "audit-logs",
    "knowledge-sources",
    "dismissal-rules",
    "custom-regulations",
)

_EXTENSION_KEY = "vesta.store"


class WorkspaceStore(ABC):
    """Abstract key-value store of JSON documents grouped in named collections."""

    def __init__(self):
        self._locks: dict[tuple[str, str], threading.RLock] = {}
        self._locks_guard = threading.Lock()
        # per thread: locks held by the open atomic unit, None outside one
        self._unit = threading.local()

    @abstractmethod
    def get(self, collection: str, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, collection: str, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, key: str) -> None:
        ...

    @abstractmethod
    def keys(self, collection: str) -> list[str]:
        ...

    def lock_for(self, collection: str, key: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault((collection, key), threading.RLock())

    @property
    def in_atomic(self) -> bool:
        return getattr(self._unit, "held", None) is not None

    def mutate(self, collection: str, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Read the document, apply ``fn`` and write back the result under the key's lock."""
        lock = self.lock_for(collection, key)
        lock.acquire()
        if self.in_atomic:
            self._unit.held.append(lock)
            return self._read_apply_write(collection, key, fn, default)
        try:
            return self._read_apply_write(collection, key, fn, default)
        finally:
            lock.release()

    def _read_apply_write(self, collection, key, fn, default):
        updated = fn(self.get(collection, key, default))
        self.set(collection, key, updated)
        return updated

    @contextmanager
    def atomic(self):
        """
        Group the writes made inside the block into one unit.

        Nothing is kept if the block raises. Nested blocks join the
        outermost one.

        Raises:
            StoreUnavailable: The unit could not be committed.
        """
        if self.in_atomic:
            yield self
            return
        self._unit.held = held = []
        self._begin()
        try:
            yield self
            self._commit()
        except BaseException:
            self._rollback()
            raise
        finally:
            self._unit.held = None
            for lock in reversed(held):
                lock.release()

    def _begin(self) -> None:
        pass

    def _commit(self) -> None:
        pass

    def _rollback(self) -> None:
        pass


class SQLWorkspaceStore(WorkspaceStore):
    """Store backed by the ``store_entries`` table (one row per collection/key)."""

    def _save(self):
        # inside an atomic unit the commit happens once, at the end
        if self.in_atomic:
            db.session.flush()
        else:
            db.session.commit()

    def get(self, collection, key, default=None):
        try:
            entry = StoreEntry.query.filter_by(collection=collection, key=key).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Store read failed: %s/%s: %s", collection, key, exc)
            raise StoreUnavailable(f"Could not read {collection}") from exc
        if entry is None:
            return copy.deepcopy(default)
        return entry.payload

    def set(self, collection, key, value):
        try:
            entry = StoreEntry.query.filter_by(collection=collection, key=key).first()
            if entry is None:
                entry = StoreEntry(collection=collection, key=key)
                db.session.add(entry)
            entry.payload = value
            self._save()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Store write failed: %s/%s: %s", collection, key, exc)
            raise StoreUnavailable(f"Could not write {collection}") from exc

    def delete(self, collection, key):
        try:
            StoreEntry.query.filter_by(collection=collection, key=key).delete()
            self._save()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Store delete failed: %s/%s: %s", collection, key, exc)
            raise StoreUnavailable(f"Could not delete {collection}") from exc

    def keys(self, collection):
        rows = db.session.query(StoreEntry.key).filter_by(collection=collection).all()
        return [r[0] for r in rows]

    def _commit(self):
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Store commit failed: %s", exc)
            raise StoreUnavailable("Could not save changes") from exc

    def _rollback(self):
        db.session.rollback()


class MemoryWorkspaceStore(WorkspaceStore):
    """In-process store; documents are deep-copied in and out like a remote blob store."""

    _MISSING = object()

    def __init__(self):
        super().__init__()
        self._data: dict[str, dict[str, Any]] = {}
        self._guard = threading.Lock()

    def get(self, collection, key, default=None):
        with self._guard:
            if key not in self._data.get(collection, {}):
                return copy.deepcopy(default)
            return copy.deepcopy(self._data[collection][key])

    def _remember(self, collection, key):
        """Record a key's value before its first write in the open atomic unit."""
        if not self.in_atomic or (collection, key) in self._unit.previous:
            return
        self._unit.previous[(collection, key)] = self._data.get(collection, {}).get(key, self._MISSING)

    def set(self, collection, key, value):
        with self._guard:
            self._remember(collection, key)
            self._data.setdefault(collection, {})[key] = copy.deepcopy(value)

    def delete(self, collection, key):
        with self._guard:
            self._remember(collection, key)
            self._data.get(collection, {}).pop(key, None)

    def keys(self, collection):
        with self._guard:
            return list(self._data.get(collection, {}))

    def clear(self):
        with self._guard:
            self._data.clear()

    def _begin(self):
        self._unit.previous = {}

    def _commit(self):
        self._unit.previous = {}

    def _rollback(self):
        with self._guard:
            for (collection, key), value in self._unit.previous.items():
                if value is self._MISSING:
                    self._data.get(collection, {}).pop(key, None)
                else:
                    self._data.setdefault(collection, {})[key] = value
        self._unit.previous = {}


def init_store(app, store: WorkspaceStore | None = None) -> WorkspaceStore:
    """Attach the workspace store to the app (SQL-backed unless one is given)."""
    store = store or SQLWorkspaceStore()
    app.extensions[_EXTENSION_KEY] = store
    return store


def get_store() -> WorkspaceStore:
    return current_app.extensions[_EXTENSION_KEY]
