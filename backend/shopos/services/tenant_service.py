# Overview: Tenant scoping helpers for the local-first cache.

"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: A shared shop device may have cached data for more than one shop. The
local snapshot must only ever hold the active shop's records, and only shops
with canonical ids can be synchronized with the remote store.

INVARIANTS:
1. Every entity read from the local snapshot has shop_id == active shop
2. A tenant is sync-eligible iff its id is a canonical UUID AND the device is online
3. Legacy (non-UUID) tenants never reach the remote store

USAGE:
    from shopos.services.tenant_service import is_sync_eligible, filter_entities

    if is_sync_eligible(state.shop_id, network.is_online):
        ...
"""

from __future__ import annotations

from .identifier_service import is_valid_uuid


class TenantAccessError(Exception):
    """Raised when an entity of another tenant would enter the active session."""
    pass


def is_sync_eligible(shop_id: str | None, online: bool) -> bool:
    """
    Derived eligibility check; never stored.

    Offline devices and legacy tenants skip every remote attempt.
    """
    if not online:
        return False
    return is_valid_uuid(shop_id)


def entity_shop_id(entity: dict) -> str | None:
    return entity.get("shop_id") if isinstance(entity, dict) else None


def belongs_to_tenant(entity: dict, shop_id: str | None) -> bool:
    """True when the entity is scoped to the given shop."""
    return shop_id is not None and entity_shop_id(entity) == shop_id


def filter_entities(entities, shop_id: str | None) -> list[dict]:
    """Keep only the entities scoped to shop_id."""
    return [e for e in (entities or []) if belongs_to_tenant(e, shop_id)]


def require_same_tenant(entity: dict, shop_id: str | None) -> dict:
    """
    Validate that an entity belongs to the active tenant.

    Raises:
        TenantAccessError if no tenant is active or the entity is foreign
    """
    if shop_id is None:
        raise TenantAccessError("No active shop")
    if entity_shop_id(entity) != shop_id:
        raise TenantAccessError(
            f"Entity {entity.get('id')!r} belongs to shop {entity_shop_id(entity)!r}, not {shop_id!r}"
        )
    return entity
