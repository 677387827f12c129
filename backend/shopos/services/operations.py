# Overview: Queued operation model and the dispatch of operations onto the remote store.

"""
Sync Operations

WHY: Every mutation that could not be confirmed remotely is recorded as an
Operation and replayed later. Operation types form a closed set (one member
per entity+verb), so adding an entity without wiring it up fails at import
time instead of silently retrying forever at runtime.

DESIGN:
- OperationType.value is the persisted tag ("CREATE_PRODUCT", ...)
- .verb / .entity are derived from the member name
- Update payloads always carry the full updated entity, so coalescing
  (last write wins) never drops a field from an earlier queued edit
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum


CREATE = "create"
UPDATE = "update"
DELETE = "delete"
VERBS = (CREATE, UPDATE, DELETE)


# entity kind -> (local snapshot collection, remote table)
# Singletons (settings, subscription) have no collection.
ENTITY_REGISTRY: dict[str, tuple[str | None, str]] = {
    "product": ("products", "products"),
    "sale": ("sales", "sales"),
    "customer": ("customers", "customers"),
    "category": ("categories", "categories"),
    "supplier": ("suppliers", "suppliers"),
    "expense": ("expenses", "expenses"),
    "gift_card": ("gift_cards", "gift_cards"),
    "stock_movement": ("stock_movements", "stock_movements"),
    "debt_transaction": ("debt_transactions", "debt_transactions"),
    "user": ("users", "users"),
    "activity_log": ("activity_logs", "activity_logs"),
    "payment": ("payments", "payments"),
    "settings": (None, "shop_settings"),
    "subscription": (None, "subscriptions"),
}

# Everything else is archived (is_archived) or deactivated, never deleted.
HARD_DELETE_KINDS = frozenset({"gift_card"})


class OperationType(str, Enum):
    CREATE_PRODUCT = "CREATE_PRODUCT"
    UPDATE_PRODUCT = "UPDATE_PRODUCT"
    CREATE_SALE = "CREATE_SALE"
    CREATE_CUSTOMER = "CREATE_CUSTOMER"
    UPDATE_CUSTOMER = "UPDATE_CUSTOMER"
    CREATE_CATEGORY = "CREATE_CATEGORY"
    UPDATE_CATEGORY = "UPDATE_CATEGORY"
    CREATE_SUPPLIER = "CREATE_SUPPLIER"
    UPDATE_SUPPLIER = "UPDATE_SUPPLIER"
    CREATE_EXPENSE = "CREATE_EXPENSE"
    UPDATE_EXPENSE = "UPDATE_EXPENSE"
    CREATE_GIFT_CARD = "CREATE_GIFT_CARD"
    UPDATE_GIFT_CARD = "UPDATE_GIFT_CARD"
    DELETE_GIFT_CARD = "DELETE_GIFT_CARD"
    CREATE_STOCK_MOVEMENT = "CREATE_STOCK_MOVEMENT"
    CREATE_DEBT_TRANSACTION = "CREATE_DEBT_TRANSACTION"
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    CREATE_SETTINGS = "CREATE_SETTINGS"
    UPDATE_SETTINGS = "UPDATE_SETTINGS"
    CREATE_ACTIVITY_LOG = "CREATE_ACTIVITY_LOG"
    CREATE_SUBSCRIPTION = "CREATE_SUBSCRIPTION"
    UPDATE_SUBSCRIPTION = "UPDATE_SUBSCRIPTION"
    CREATE_PAYMENT = "CREATE_PAYMENT"

    @property
    def verb(self) -> str:
        return self.name.split("_", 1)[0].lower()

    @property
    def entity(self) -> str:
        return self.name.split("_", 1)[1].lower()

    @property
    def is_update(self) -> bool:
        return self.verb == UPDATE


def _check_operation_types() -> None:
    for op_type in OperationType:
        if op_type.verb not in VERBS:
            raise RuntimeError(f"{op_type.name}: unknown verb {op_type.verb!r}")
        if op_type.entity not in ENTITY_REGISTRY:
            raise RuntimeError(f"{op_type.name}: unknown entity kind {op_type.entity!r}")
        if op_type.verb == DELETE and op_type.entity not in HARD_DELETE_KINDS:
            raise RuntimeError(f"{op_type.name}: {op_type.entity} is archived, not deleted")


_check_operation_types()


def operation_type_for(verb: str, entity: str) -> OperationType:
    """Look up the member for a verb/entity pair (KeyError if not supported)."""
    try:
        return OperationType[f"{verb.upper()}_{entity.upper()}"]
    except KeyError:
        raise KeyError(f"No operation for {verb} {entity}") from None


def collection_for(entity: str) -> str | None:
    return ENTITY_REGISTRY[entity][0]


def table_for(entity: str) -> str:
    return ENTITY_REGISTRY[entity][1]


@dataclass
class Operation:
    """
    One pending mutation in the durable queue.

    type is an OperationType, or the raw persisted string when the tag is not
    known to this build (the sync engine discards those with a warning).
    """
    id: str
    type: OperationType | str
    payload: dict = field(default_factory=dict)
    target_entity_id: str | None = None
    enqueued_at: str | None = None
    retry_count: int = 0
    # Bumped each time a later update is coalesced into this entry
    revision: int = 0

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, OperationType) else str(self.type)

    @property
    def is_known(self) -> bool:
        return isinstance(self.type, OperationType)

    def copy(self) -> "Operation":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type_name,
            "payload": self.payload,
            "target_entity_id": self.target_entity_id,
            "enqueued_at": self.enqueued_at,
            "retry_count": self.retry_count,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Operation":
        raw_type = data.get("type")
        try:
            op_type: OperationType | str = OperationType(raw_type)
        except ValueError:
            op_type = str(raw_type)
        return cls(
            id=str(data["id"]),
            type=op_type,
            payload=data.get("payload") or {},
            target_entity_id=data.get("target_entity_id"),
            enqueued_at=data.get("enqueued_at"),
            retry_count=int(data.get("retry_count") or 0),
            revision=int(data.get("revision") or 0),
        )


def apply_operation(remote, op_type: OperationType, payload: dict, target_entity_id: str | None = None):
    """
    Perform one operation against the remote data-access layer.

    Raises whatever the remote raises (RemoteError family); callers classify.
    """
    verb = op_type.verb
    kind = op_type.entity

    if verb == CREATE:
        return remote.create(kind, payload)
    if verb == UPDATE:
        return remote.update(kind, target_entity_id or payload.get("id"), payload)
    if verb == DELETE:
        return remote.delete(kind, target_entity_id or payload.get("id"))

    raise ValueError(f"Unsupported verb {verb!r}")
