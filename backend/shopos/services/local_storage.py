# Overview: Durable key-value storage used to persist the local snapshot and the sync queue.

"""
Local Durable Storage

WHY: The device must keep working (and keep its pending writes) across
restarts and outages. Both the local state snapshot and the operation queue
are persisted as serialized blobs under fixed keys.

USAGE:
    storage = SqlKeyValueStorage(app)
    storage.set(STATE_KEY, json.dumps(snapshot))
    raw = storage.get(STATE_KEY)
"""

from __future__ import annotations

import threading

from ..extensions import db
from ..models import LocalStorageEntry


STATE_KEY = "shopos_data_v1"
QUEUE_KEY = "shopos_sync_queue"


class KeyValueStorage:
    """Contract for durable local storage."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStorage(KeyValueStorage):
    """
    Process-local storage.

    Survives a simulated restart as long as the same instance is handed to
    the new queue/state objects, which is what the tests rely on.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SqlKeyValueStorage(KeyValueStorage):
    """
    Storage backed by the local_storage table.

    Every call pushes its own application context so the scheduler thread and
    background tasks can persist without an active request. Each set commits
    immediately: the queue contract requires enqueue to be durable on return.
    """

    def __init__(self, app):
        self.app = app

    def get(self, key: str) -> str | None:
        with self.app.app_context():
            entry = db.session.get(LocalStorageEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self.app.app_context():
            entry = db.session.get(LocalStorageEntry, key)
            if entry is None:
                entry = LocalStorageEntry(key=key, value=value)
                db.session.add(entry)
            else:
                entry.value = value
            db.session.commit()

    def delete(self, key: str) -> None:
        with self.app.app_context():
            entry = db.session.get(LocalStorageEntry, key)
            if entry is not None:
                db.session.delete(entry)
                db.session.commit()

    def entries(self) -> list[dict]:
        with self.app.app_context():
            rows = db.session.query(LocalStorageEntry).order_by(LocalStorageEntry.key).all()
            return [row.to_dict() for row in rows]
