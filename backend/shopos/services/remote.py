# Overview: Contract of the remote data-access layer and its error taxonomy.

"""
Remote Data-Access Contract

WHY: The remote relational backend is an external collaborator. The sync core
only needs a CRUD surface keyed by entity kind + id, a bulk tenant load, and a
credential check. Implementations translate their own failures into the
RemoteError family so the core can classify outcomes:

- RemoteUnavailableError: transport failure or timeout -> enqueue and retry
- DuplicateKeyError: the row already exists -> treat as already applied
- RemoteError: any other application failure -> retry up to the bound
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class RemoteError(Exception):
    """Remote write or read failed."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class RemoteUnavailableError(RemoteError):
    """The remote store could not be reached (network down, timeout, 5xx)."""


class DuplicateKeyError(RemoteError):
    """Uniqueness violation: a previous attempt already created the row."""


@dataclass
class AuthResult:
    """Successful remote credential check."""
    user: dict
    settings: dict | None = None


class RemoteDataAccess(ABC):
    """CRUD surface of the remote store, keyed by entity kind and id."""

    @abstractmethod
    def create(self, kind: str, record: dict) -> dict:
        """Insert a record whose id was generated on the device."""

    @abstractmethod
    def update(self, kind: str, entity_id: str, changes: dict) -> dict:
        """Apply changes to an existing record."""

    @abstractmethod
    def delete(self, kind: str, entity_id: str) -> None:
        """Hard-delete a record (only for kinds that allow it)."""

    @abstractmethod
    def load_all_shop_data(self, shop_id: str) -> dict:
        """
        Return every entity of a shop:
        {"settings", "subscription", "users", "products", ...}
        """

    @abstractmethod
    def authenticate_user(self, identifier: str, secret: str) -> AuthResult | None:
        """Return the matching user (and shop settings), or None on bad credentials."""


class UnconfiguredRemote(RemoteDataAccess):
    """
    Stand-in used when no REMOTE_API_URL is configured.

    Every call raises RemoteUnavailableError, so mutations queue up and login
    falls back to the local snapshot.
    """

    def _unavailable(self):
        raise RemoteUnavailableError("Remote data access is not configured")

    def create(self, kind, record):
        self._unavailable()

    def update(self, kind, entity_id, changes):
        self._unavailable()

    def delete(self, kind, entity_id):
        self._unavailable()

    def load_all_shop_data(self, shop_id):
        self._unavailable()

    def authenticate_user(self, identifier, secret):
        self._unavailable()
