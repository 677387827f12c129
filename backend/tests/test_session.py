# Overview: Pytest coverage for login, logout and shop registration.

import json
from datetime import timedelta

import pytest

from conftest import TEST_BCRYPT_ROUNDS, seed_shop
from shopos.services.auth_service import SecretValidationError, hash_secret
from shopos.services.identifier_service import generate_id, is_valid_uuid
from shopos.services.remote import AuthResult
from shopos.services.local_storage import STATE_KEY, MemoryKeyValueStorage
from shopos.services.session_service import DEFAULT_CATEGORIES, SOURCE_LOCAL, SOURCE_REMOTE, RegistrationError
from shopos.services.state_store import COLLECTIONS
from shopos.time_utils import to_utc_z, utcnow


def _all_shop_ids(state):
    ids = {e.get("shop_id") for name in COLLECTIONS for e in state.list(name, include_archived=True)}
    if state.settings:
        ids.add(state.settings.get("shop_id"))
    if state.subscription:
        ids.add(state.subscription.get("shop_id"))
    return ids


class TestRemoteLogin:
    def test_remote_login_replaces_snapshot(self, runtime, remote):
        shop = seed_shop(remote, "Alpha", "alice", "pw-alice")

        result = runtime.session.login("alice", "pw-alice")

        assert result
        assert result.source == SOURCE_REMOTE
        assert runtime.state.shop_id == shop["shop_id"]
        assert runtime.state.get("products", shop["product"]["id"]) is not None
        assert runtime.state.current_user["id"] == shop["user"]["id"]
        assert runtime.state.current_user["last_login"]
        assert remote.tables["user"][shop["user"]["id"]]["last_login"] == result.user["last_login"]

    def test_login_by_email_is_case_insensitive(self, runtime, remote):
        seed_shop(remote, "Alpha", "alice", "pw-alice")

        assert runtime.session.login("ALICE@example.com", "pw-alice")

    def test_second_shop_login_leaves_no_records_of_first(self, runtime, remote):
        shop_a = seed_shop(remote, "Alpha", "alice", "pw-alice")
        shop_b = seed_shop(remote, "Beta", "bob", "pw-bob")

        assert runtime.session.login("alice", "pw-alice")
        runtime.mutations.add_customer({"name": "Alpha customer"})
        assert runtime.session.login("bob", "pw-bob")

        assert shop_a["shop_id"] not in _all_shop_ids(runtime.state)
        assert _all_shop_ids(runtime.state) == {shop_b["shop_id"]}
        assert runtime.state.tenant_ids() == {shop_b["shop_id"]}

    @pytest.mark.parametrize("sequence", [
        ["alice", "bob"],
        ["bob", "alice", "bob"],
        ["alice", "alice", "bob", "alice"],
    ])
    def test_snapshot_is_tenant_homogeneous_after_every_login(self, runtime, remote, sequence):
        shops = {
            "alice": seed_shop(remote, "Alpha", "alice", "pw-alice"),
            "bob": seed_shop(remote, "Beta", "bob", "pw-bob"),
        }

        for username in sequence:
            assert runtime.session.login(username, f"pw-{username}")
            assert _all_shop_ids(runtime.state) == {shops[username]["shop_id"]}

    def test_remote_unreachable_falls_back_to_local(self, runtime, registered, remote):
        runtime.session.logout()
        remote.available = False

        result = runtime.session.login("ada", "secret-a")

        assert result
        assert result.source == SOURCE_LOCAL

    def test_remote_login_caches_verifier_for_offline_login(self, runtime, remote):
        user = seed_shop(remote, "Alpha", "alice", "pw-alice")["user"]
        stripped = {k: v for k, v in user.items() if k != "password_hash"}
        remote.tables["user"][user["id"]] = stripped
        remote.authenticate_user = lambda identifier, secret: AuthResult(user=dict(stripped))

        assert runtime.session.login("alice", "pw-alice").source == SOURCE_REMOTE
        runtime.session.logout()
        runtime.network.set_online(False)

        result = runtime.session.login("alice", "pw-alice")
        assert result.source == SOURCE_LOCAL

    def test_inactive_remote_user_rejected_before_state_change(self, runtime, registered, remote):
        seed_shop(remote, "Beta", "bob", "pw-bob", status="inactive")
        before = runtime.state.to_dict()

        result = runtime.session.login("bob", "pw-bob")

        assert not result
        assert result.error == "Account is inactive"
        assert runtime.state.to_dict() == before
        assert runtime.state.current_user["id"] == registered.user["id"]


class TestLocalLogin:
    def test_offline_login_filters_other_shops(self, make_runtime):
        shop_a, shop_b = generate_id(), generate_id()
        bob = {
            "id": generate_id(),
            "shop_id": shop_b,
            "username": "bob",
            "password_hash": hash_secret("pw-bob", rounds=TEST_BCRYPT_ROUNDS),
            "status": "active",
            "role": "cashier",
        }
        mixed = {
            "shop_id": shop_a,
            "settings": {"shop_id": shop_a, "business_name": "Alpha"},
            "users": [{"id": generate_id(), "shop_id": shop_a, "username": "alice"}, bob],
            "products": [
                {"id": generate_id(), "shop_id": shop_a, "name": "A"},
                {"id": generate_id(), "shop_id": shop_b, "name": "B"},
            ],
            "sales": [{"id": generate_id(), "shop_id": shop_a}],
        }
        runtime = make_runtime(MemoryKeyValueStorage({STATE_KEY: json.dumps(mixed)}), online=False)

        result = runtime.session.login("bob", "pw-bob")

        assert result.source == SOURCE_LOCAL
        assert runtime.state.shop_id == shop_b
        assert _all_shop_ids(runtime.state) == {shop_b}
        assert [p["name"] for p in runtime.state.list("products")] == ["B"]
        assert runtime.state.settings is None

    def test_wrong_password(self, runtime, registered):
        runtime.session.logout()
        runtime.network.set_online(False)

        result = runtime.session.login("ada", "wrong")

        assert not result
        assert result.error == "Invalid username or password"
        assert runtime.state.current_user is None

    def test_inactive_local_user_rejected(self, runtime, registered):
        user = runtime.mutations.add_user({"username": "temp", "password": "1234", "status": "inactive"})
        runtime.session.logout()
        runtime.network.set_online(False)

        result = runtime.session.login("temp", "1234")

        assert not result
        assert runtime.state.get("users", user["id"]).get("last_login") is None

    def test_plaintext_passwords_are_never_trusted(self, make_runtime):
        shop_id = generate_id()
        cached = {
            "shop_id": shop_id,
            "users": [{"id": "u1", "shop_id": shop_id, "username": "old", "password": "1234", "status": "active"}],
        }
        runtime = make_runtime(MemoryKeyValueStorage({STATE_KEY: json.dumps(cached)}), online=False)

        assert not runtime.session.login("old", "1234")

    def test_expired_subscription_flagged_not_blocking(self, runtime, registered):
        subscription = runtime.state.subscription
        subscription["trial_end_date"] = to_utc_z(utcnow() - timedelta(days=1))
        runtime.mutations.update_subscription(subscription)
        runtime.session.logout()
        runtime.network.set_online(False)

        result = runtime.session.login("ada", "secret-a")

        assert result
        assert result.subscription_expired is True

    def test_login_state_survives_restart_without_user(self, make_runtime, storage, runtime, registered):
        restarted = make_runtime(storage, online=False)

        assert restarted.state.shop_id == registered.shop_id
        assert restarted.state.current_user is None
        assert restarted.session.login("ada", "secret-a")


class TestRegistration:
    def test_register_shop(self, runtime, remote, registered):
        shop_id = registered.shop_id

        assert is_valid_uuid(shop_id)
        assert registered.user["role"] == "superadmin"
        assert registered.user["username"] == "ada"
        assert "password" not in registered.user
        assert runtime.state.current_user["id"] == registered.user["id"]
        assert sorted(c["name"] for c in runtime.state.list("categories")) == sorted(DEFAULT_CATEGORIES)
        assert registered.subscription_expired is False

        assert remote.tables["settings"][shop_id]["business_name"] == "Shop A"
        assert registered.user["id"] in remote.tables["user"]
        assert len(remote.rows("category")) == len(DEFAULT_CATEGORIES)
        assert runtime.queue.count() == 0

    def test_register_replaces_previous_shop(self, runtime, remote):
        seed_shop(remote, "Alpha", "alice", "pw-alice")
        runtime.session.login("alice", "pw-alice")

        result = runtime.session.register_shop({
            "email": "new@shop.test", "shop_name": "New Shop", "password": "secret-new",
        })

        assert _all_shop_ids(runtime.state) == {result.shop_id}

    def test_register_requires_email(self, runtime):
        with pytest.raises(RegistrationError):
            runtime.session.register_shop({"email": "", "shop_name": "X", "password": "secret"})

    def test_register_rejects_short_password(self, runtime):
        with pytest.raises(SecretValidationError):
            runtime.session.register_shop({"email": "a@b.c", "shop_name": "X", "password": "12"})
