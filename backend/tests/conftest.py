"""
Pytest fixtures for ShopOS backend tests.

Provides an in-memory fake of the remote data-access layer, isolated local
storage, runtimes wired with inline background tasks, and a Flask test client.
"""

import pytest

from shopos import create_app
from shopos.services.auth_service import hash_secret, identifier_matches, verify_secret
from shopos.services.identifier_service import generate_id
from shopos.services.local_storage import MemoryKeyValueStorage
from shopos.services.network import NetworkMonitor
from shopos.services.operations import ENTITY_REGISTRY
from shopos.services.remote import (
    AuthResult,
    DuplicateKeyError,
    RemoteDataAccess,
    RemoteUnavailableError,
)
from shopos.services.runtime import ShopRuntime


TEST_BCRYPT_ROUNDS = 4


class FakeRemote(RemoteDataAccess):
    """
    In-memory remote store.

    - tables[kind][id] holds rows; create() of an existing id raises DuplicateKeyError
    - calls records (method, kind, id) in order
    - fail_when(predicate) makes matching calls raise RemoteUnavailableError
    - commit_then_fail(predicate) stores the row, then raises (lost response)
    - available=False makes every call raise RemoteUnavailableError
    """

    def __init__(self):
        self.tables = {kind: {} for kind in ENTITY_REGISTRY}
        self.calls = []
        self.available = True
        self._failures = []
        self._lost_responses = []

    # -- test controls --------------------------------------------------

    def fail_when(self, predicate):
        self._failures.append(predicate)

    def commit_then_fail(self, predicate):
        self._lost_responses.append(predicate)

    def reset_failures(self):
        self._failures = []
        self._lost_responses = []

    def seed(self, kind, record):
        self.tables[kind][self._key(record)] = dict(record)
        return record

    def rows(self, kind):
        return list(self.tables[kind].values())

    def calls_for(self, method=None, kind=None):
        return [c for c in self.calls if (method is None or c[0] == method) and (kind is None or c[1] == kind)]

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _key(record):
        return record.get("id") or record.get("shop_id")

    def _check(self, method, kind, record):
        if not self.available:
            raise RemoteUnavailableError("remote offline")
        for predicate in self._failures:
            if predicate(method, kind, record):
                raise RemoteUnavailableError(f"injected failure for {method} {kind}")

    # -- contract ---------------------------------------------------------

    def create(self, kind, record):
        key = self._key(record)
        self.calls.append(("create", kind, key))
        self._check("create", kind, record)
        if key in self.tables[kind]:
            raise DuplicateKeyError("duplicate key value violates unique constraint", {"code": "23505"})
        self.tables[kind][key] = dict(record)
        for predicate in self._lost_responses:
            if predicate("create", kind, record):
                raise RemoteUnavailableError("connection reset after commit")
        return dict(record)

    def update(self, kind, entity_id, changes):
        self.calls.append(("update", kind, entity_id))
        self._check("update", kind, changes)
        row = {**self.tables[kind].get(entity_id, {}), **changes}
        self.tables[kind][entity_id] = row
        return dict(row)

    def delete(self, kind, entity_id):
        self.calls.append(("delete", kind, entity_id))
        self._check("delete", kind, {"id": entity_id})
        self.tables[kind].pop(entity_id, None)

    def load_all_shop_data(self, shop_id):
        self.calls.append(("load", "shop", shop_id))
        self._check("load", "shop", {"shop_id": shop_id})
        data = {}
        for kind, (collection, _table) in ENTITY_REGISTRY.items():
            if collection is None:
                continue
            data[collection] = [dict(r) for r in self.tables[kind].values() if r.get("shop_id") == shop_id]
        data["settings"] = self.tables["settings"].get(shop_id)
        data["subscription"] = next(
            (dict(s) for s in self.tables["subscription"].values() if s.get("shop_id") == shop_id), None
        )
        return data

    def authenticate_user(self, identifier, secret):
        self.calls.append(("authenticate", "user", identifier))
        self._check("authenticate", "user", {"identifier": identifier})
        for user in self.tables["user"].values():
            if identifier_matches(user, identifier) and verify_secret(secret, user.get("password_hash")):
                return AuthResult(user=dict(user), settings=self.tables["settings"].get(user.get("shop_id")))
        return None


def seed_shop(remote, name, username, password, role="superadmin", status="active"):
    """Create a shop with settings, one user and one product in the fake remote."""
    shop_id = generate_id()
    remote.seed("settings", {"shop_id": shop_id, "business_name": name})
    user = remote.seed("user", {
        "id": generate_id(),
        "shop_id": shop_id,
        "username": username,
        "email": f"{username}@example.com",
        "full_name": username.title(),
        "password_hash": hash_secret(password, rounds=TEST_BCRYPT_ROUNDS),
        "role": role,
        "status": status,
    })
    product = remote.seed("product", {
        "id": generate_id(),
        "shop_id": shop_id,
        "name": f"{name} Rice",
        "units_per_carton": 10,
        "total_units": 50,
        "stock_cartons": 5,
        "stock_units": 0,
    })
    return {"shop_id": shop_id, "user": user, "product": product}


@pytest.fixture
def storage():
    return MemoryKeyValueStorage()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def make_runtime(remote):
    """Factory: build a runtime over a given storage (simulates a process restart)."""
    runtimes = []

    def _make(storage, online=True, remote_override=None, max_retries=5):
        runtime = ShopRuntime(
            storage,
            remote=remote_override or remote,
            network=NetworkMonitor(initial_online=online),
            max_retries=max_retries,
            background_inline=True,
            bcrypt_rounds=TEST_BCRYPT_ROUNDS,
        )
        runtimes.append(runtime)
        return runtime

    yield _make

    for runtime in runtimes:
        runtime.shutdown()


@pytest.fixture
def runtime(make_runtime, storage):
    return make_runtime(storage)


@pytest.fixture
def registered(runtime):
    """A freshly registered shop with its owner signed in."""
    result = runtime.session.register_shop({
        "full_name": "Ada Owner",
        "email": "ada@shop-a.test",
        "shop_name": "Shop A",
        "country": "Nigeria",
        "state": "Lagos",
        "password": "secret-a",
    })
    assert result.success
    return result


@pytest.fixture
def app(remote, storage):
    """Create application for testing."""
    app = create_app(
        overrides={
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'SYNC_SCHEDULER_ENABLED': False,
            'BACKGROUND_TASKS_INLINE': True,
            'BCRYPT_ROUNDS': TEST_BCRYPT_ROUNDS,
            'START_ONLINE': True,
        },
        remote=remote,
        storage=storage,
    )
    yield app
    app.extensions["shopos"].shutdown()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def shop_runtime(app):
    return app.extensions["shopos"]
