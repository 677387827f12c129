# Overview: Tenant-scoped in-memory snapshot of the active shop, persisted to local storage.

"""
Local State Store

WHY: The UI must reflect every mutation immediately, online or not. The store
holds one ordered collection per entity type plus the shop settings,
subscription and signed-in user, and persists the whole snapshot to durable
local storage after every change.

TENANT INVARIANT:
The snapshot is tenant-homogeneous. On a shop switch it is either replaced
wholesale (replace) or filtered down to the new shop (filter_to_tenant); it is
never a union of two shops' records. upsert refuses foreign entities.

NOTES:
- current_user is never persisted; it is always None after a reload
- Reads hand out deep copies; mutate only through the store API
- transaction() groups several changes into one locked section with a
  single save at the end (used by multi-entity mutations such as a sale)
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from contextlib import contextmanager
from typing import Callable

from .local_storage import KeyValueStorage, STATE_KEY
from .tenant_service import TenantAccessError, belongs_to_tenant, entity_shop_id


logger = logging.getLogger(__name__)

COLLECTIONS = (
    "users",
    "products",
    "categories",
    "suppliers",
    "expenses",
    "sales",
    "customers",
    "debt_transactions",
    "stock_movements",
    "gift_cards",
    "activity_logs",
    "payments",
)


class LocalStateStore:
    def __init__(self, storage: KeyValueStorage, storage_key: str = STATE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty = False
        self._reset()
        self.load()

    def _reset(self) -> None:
        self._collections: dict[str, list[dict]] = {name: [] for name in COLLECTIONS}
        self._shop_id: str | None = None
        self._settings: dict | None = None
        self._subscription: dict | None = None
        self._current_user: dict | None = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """
        Load the persisted snapshot.

        Snapshots written by older builds may hold several shops' records;
        they are loaded as-is and narrowed at the next login.
        """
        with self._lock:
            self._reset()
            raw = self.storage.get(self.storage_key)
            if not raw:
                return
            try:
                data = json.loads(raw)
            except ValueError:
                logger.error("Local snapshot in storage is not valid JSON; starting empty")
                return

            for name in COLLECTIONS:
                items = data.get(name)
                self._collections[name] = [dict(i) for i in items] if isinstance(items, list) else []
            self._settings = data.get("settings")
            self._subscription = data.get("subscription")
            self._shop_id = data.get("shop_id") or entity_shop_id(self._settings or {})

    def save(self) -> None:
        with self._lock:
            if self._depth:
                self._dirty = True
                return
            self._write()

    def _write(self) -> None:
        data = {name: self._collections[name] for name in COLLECTIONS}
        data["shop_id"] = self._shop_id
        data["settings"] = self._settings
        data["subscription"] = self._subscription
        self.storage.set(self.storage_key, json.dumps(data, default=str))
        self._dirty = False

    @contextmanager
    def transaction(self):
        """Hold the store lock across several changes; save once on exit."""
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0 and self._dirty:
                    self._write()

    # ------------------------------------------------------------------
    # Tenant-level accessors
    # ------------------------------------------------------------------

    @property
    def shop_id(self) -> str | None:
        return self._shop_id

    @property
    def settings(self) -> dict | None:
        with self._lock:
            return copy.deepcopy(self._settings)

    @property
    def subscription(self) -> dict | None:
        with self._lock:
            return copy.deepcopy(self._subscription)

    @property
    def current_user(self) -> dict | None:
        with self._lock:
            return copy.deepcopy(self._current_user)

    def set_current_user(self, user: dict | None) -> None:
        with self._lock:
            if user is not None and user.get("shop_id") not in (None, self._shop_id):
                raise TenantAccessError("Signed-in user belongs to another shop")
            self._current_user = copy.deepcopy(user)

    def set_settings(self, settings: dict) -> None:
        with self._lock:
            if entity_shop_id(settings) != self._shop_id:
                raise TenantAccessError("Settings belong to another shop")
            self._settings = copy.deepcopy(settings)
            self.save()

    def set_subscription(self, subscription: dict | None) -> None:
        with self._lock:
            if subscription is not None and entity_shop_id(subscription) != self._shop_id:
                raise TenantAccessError("Subscription belongs to another shop")
            self._subscription = copy.deepcopy(subscription)
            self.save()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _collection(self, name: str) -> list[dict]:
        if name not in self._collections:
            raise KeyError(f"Unknown collection {name!r}")
        return self._collections[name]

    def list(self, collection: str, include_archived: bool = False) -> list[dict]:
        with self._lock:
            items = self._collection(collection)
            if not include_archived:
                items = [i for i in items if not i.get("is_archived")]
            return copy.deepcopy(items)

    def get(self, collection: str, entity_id: str) -> dict | None:
        with self._lock:
            for item in self._collection(collection):
                if item.get("id") == entity_id:
                    return copy.deepcopy(item)
        return None

    def find(self, collection: str, predicate: Callable[[dict], bool]) -> dict | None:
        with self._lock:
            for item in self._collection(collection):
                if predicate(item):
                    return copy.deepcopy(item)
        return None

    def upsert(self, collection: str, entity: dict) -> dict:
        """Insert or replace by id, keeping insertion order for existing ids."""
        with self._lock:
            if not belongs_to_tenant(entity, self._shop_id):
                raise TenantAccessError(
                    f"Refusing {collection} record of shop {entity_shop_id(entity)!r} "
                    f"in session of shop {self._shop_id!r}"
                )
            items = self._collection(collection)
            stored = copy.deepcopy(entity)
            for index, item in enumerate(items):
                if item.get("id") == stored.get("id"):
                    items[index] = stored
                    break
            else:
                items.append(stored)
            self.save()
            return copy.deepcopy(stored)

    def remove(self, collection: str, entity_id: str) -> bool:
        with self._lock:
            items = self._collection(collection)
            kept = [i for i in items if i.get("id") != entity_id]
            if len(kept) == len(items):
                return False
            self._collections[collection] = kept
            self.save()
            return True

    # ------------------------------------------------------------------
    # Tenant switching
    # ------------------------------------------------------------------

    def replace(self, shop_id: str, data: dict) -> None:
        """
        Replace the whole snapshot with one shop's data set.

        Any incoming record scoped to a different shop is discarded, so the
        invariant holds even if the source returned stray rows.
        """
        with self._lock:
            self._reset()
            self._shop_id = shop_id
            discarded = 0
            for name in COLLECTIONS:
                items = data.get(name) or []
                kept = [copy.deepcopy(i) for i in items if belongs_to_tenant(i, shop_id)]
                discarded += len(items) - len(kept)
                self._collections[name] = kept

            settings = data.get("settings")
            self._settings = copy.deepcopy(settings) if settings and belongs_to_tenant(settings, shop_id) else None
            subscription = data.get("subscription")
            self._subscription = (
                copy.deepcopy(subscription) if subscription and belongs_to_tenant(subscription, shop_id) else None
            )
            if discarded:
                logger.warning("Discarded %d records of other shops while loading shop %s", discarded, shop_id)
            self.save()

    def filter_to_tenant(self, shop_id: str) -> int:
        """
        Narrow the snapshot to one shop's records. Returns how many were removed.
        """
        with self._lock:
            removed = 0
            for name in COLLECTIONS:
                items = self._collections[name]
                kept = [i for i in items if belongs_to_tenant(i, shop_id)]
                removed += len(items) - len(kept)
                self._collections[name] = kept

            if self._settings is not None and not belongs_to_tenant(self._settings, shop_id):
                self._settings = None
                removed += 1
            if self._subscription is not None and not belongs_to_tenant(self._subscription, shop_id):
                self._subscription = None
                removed += 1
            if self._current_user is not None and self._current_user.get("shop_id") != shop_id:
                self._current_user = None

            self._shop_id = shop_id
            if removed:
                logger.info("Filtered %d records of other shops from the local snapshot", removed)
            self.save()
            return removed

    def tenant_ids(self) -> set:
        """Every shop id present in the snapshot (a single one when healthy)."""
        with self._lock:
            ids = {entity_shop_id(i) for name in COLLECTIONS for i in self._collections[name]}
            if self._settings:
                ids.add(entity_shop_id(self._settings))
            if self._subscription:
                ids.add(entity_shop_id(self._subscription))
            return ids

    def clear(self) -> None:
        with self._lock:
            self._reset()
            self.save()

    def to_dict(self) -> dict:
        with self._lock:
            data = {name: copy.deepcopy(self._collections[name]) for name in COLLECTIONS}
            data["shop_id"] = self._shop_id
            data["settings"] = copy.deepcopy(self._settings)
            data["subscription"] = copy.deepcopy(self._subscription)
            return data
