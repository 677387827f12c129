# Overview: Login, logout and shop registration; decides which shop's data occupies the device.

"""
Session / Tenant Resolution

WHY: A shop device can be shared, and it may have cached data of more than
one shop. Login decides which shop becomes active and makes sure only that
shop's records remain in the local snapshot.

LOGIN FLOW:
1. Online: check credentials with the remote store first
2. Remote success: load the shop's full data set and REPLACE the snapshot
3. Remote unreachable / rejected: check credentials against users cached in
   the local snapshot; when the matching user's shop differs from what is
   cached, FILTER the snapshot down to that shop before continuing
4. Success: stamp last_login and persist

SECURITY:
- Inactive accounts are rejected before any state change
- Local fallback verifies bcrypt hashes only (no plaintext comparison)
- An expired subscription does not block login; it is flagged on the result
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .auth_service import MIN_SECRET_LENGTH, hash_secret, identifier_matches, verify_secret
from .identifier_service import generate_id
from .operations import OperationType
from .remote import RemoteError, RemoteUnavailableError
from .subscription_service import create_trial_subscription, is_active
from shopos.time_utils import now_iso


logger = logging.getLogger(__name__)

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"

DEFAULT_CATEGORIES = ("Provisions", "Drinks", "Pharmacy", "Cosmetics", "Electronics", "General")


class RegistrationError(Exception):
    """Raised when a shop cannot be registered."""
    pass


@dataclass
class LoginResult:
    """Outcome of a login attempt (truthy iff it succeeded)."""
    success: bool
    user: dict | None = None
    shop_id: str | None = None
    source: str | None = None
    subscription_expired: bool = False
    error: str | None = None

    def __bool__(self) -> bool:
        return self.success


def _failed(error: str) -> LoginResult:
    return LoginResult(success=False, error=error)


class ShopSession:
    def __init__(self, state, mutations, remote, network, bcrypt_rounds: int = 12, trial_days: int = 7):
        self.state = state
        self.mutations = mutations
        self.remote = remote
        self.network = network
        self.bcrypt_rounds = bcrypt_rounds
        self.trial_days = trial_days

    @property
    def current_user(self) -> dict | None:
        return self.state.current_user

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, identifier: str, secret: str) -> LoginResult:
        if not identifier or not secret:
            return _failed("Username and password are required")

        if self.network.is_online:
            result = self._login_remote(identifier, secret)
            if result is not None:
                return result

        return self._login_local(identifier, secret)

    def _login_remote(self, identifier: str, secret: str) -> LoginResult | None:
        """
        Returns None when the local fallback should be tried
        (remote unreachable or credentials rejected).
        """
        try:
            auth = self.remote.authenticate_user(identifier, secret)
        except RemoteUnavailableError as e:
            logger.info("Remote authentication unavailable (%s); using local users", e)
            return None
        except RemoteError as e:
            logger.warning("Remote authentication failed (%s); using local users", e)
            return None

        if auth is None:
            return None

        user = dict(auth.user)
        if user.get("status") == "inactive":
            return _failed("Account is inactive")

        shop_id = user.get("shop_id") or (auth.settings or {}).get("shop_id")
        if not shop_id:
            logger.warning("Remote user %s has no shop; using local users", user.get("id"))
            return None
        user["shop_id"] = shop_id
        if len(secret) >= MIN_SECRET_LENGTH and not verify_secret(secret, user.get("password_hash")):
            # Cached verifier for the next offline login
            user["password_hash"] = hash_secret(secret, rounds=self.bcrypt_rounds)
        user.pop("password", None)

        try:
            data = self.remote.load_all_shop_data(shop_id)
        except RemoteError as e:
            logger.warning("Could not load data of shop %s (%s); using local users", shop_id, e)
            return None

        data = dict(data or {})
        if auth.settings and not data.get("settings"):
            data["settings"] = auth.settings
        users = list(data.get("users") or [])
        if not any(u.get("id") == user["id"] for u in users):
            users.append(user)
        data["users"] = users

        self.state.replace(shop_id, data)
        return self._complete(user, SOURCE_REMOTE)

    def _login_local(self, identifier: str, secret: str) -> LoginResult:
        candidates = [u for u in self.state.list("users", include_archived=True) if identifier_matches(u, identifier)]
        user = next((u for u in candidates if verify_secret(secret, u.get("password_hash"))), None)
        if user is None:
            return _failed("Invalid username or password")
        if user.get("status") == "inactive":
            return _failed("Account is inactive")

        shop_id = user.get("shop_id")
        if not shop_id:
            return _failed("User is not linked to a shop")

        if self.state.shop_id != shop_id or self.state.tenant_ids() - {shop_id}:
            removed = self.state.filter_to_tenant(shop_id)
            if removed:
                logger.info("Removed %d cached records of other shops at login of shop %s", removed, shop_id)

        return self._complete(user, SOURCE_LOCAL)

    def _complete(self, user: dict, source: str) -> LoginResult:
        user = dict(user)
        user["last_login"] = now_iso()
        user["updated_at"] = user["last_login"]

        with self.state.transaction():
            self.state.upsert("users", user)
            self.state.set_current_user(user)
        self.mutations.write(OperationType.UPDATE_USER, user, user["id"])

        expired = not is_active(self.state.subscription)
        if expired:
            logger.info("Shop %s signed in with an expired subscription", user["shop_id"])
        logger.info("User %s signed in to shop %s (%s)", user.get("username"), user["shop_id"], source)
        return LoginResult(
            success=True,
            user=user,
            shop_id=user["shop_id"],
            source=source,
            subscription_expired=expired,
        )

    def logout(self) -> None:
        user = self.state.current_user
        if user is None:
            return
        self.mutations.log_activity("LOGOUT", f"User {user.get('username')} signed out")
        self.state.set_current_user(None)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_shop(self, registration: dict) -> LoginResult:
        """
        Create a new shop with a canonical id, its owner (superadmin),
        settings, a trial subscription and default categories, then sign the
        owner in. The snapshot is replaced wholesale by the new shop.
        """
        email = (registration.get("email") or "").strip().lower()
        shop_name = (registration.get("shop_name") or "").strip()
        full_name = (registration.get("full_name") or "").strip()
        if not email or "@" not in email:
            raise RegistrationError("A valid email is required")
        if not shop_name:
            raise RegistrationError("Shop name is required")

        password_hash = hash_secret(registration.get("password") or "", rounds=self.bcrypt_rounds)

        shop_id = generate_id()
        now = now_iso()
        owner = {
            "id": generate_id(),
            "shop_id": shop_id,
            "username": email.split("@")[0],
            "password_hash": password_hash,
            "full_name": full_name or shop_name,
            "email": email,
            "role": "superadmin",
            "status": "active",
            "language": registration.get("language") or "en",
            "created_at": now,
            "updated_at": now,
        }
        settings = {
            "shop_id": shop_id,
            "business_name": shop_name,
            "address": registration.get("address") or "",
            "phone": registration.get("phone") or "",
            "country": registration.get("country") or "",
            "state": registration.get("state") or "",
            "currency": registration.get("currency") or "NGN",
            "receipt_footer": "Thank you for your patronage!",
            "tax_rate": 0,
            "auto_backup": "off",
            "created_at": now,
            "updated_at": now,
        }
        subscription = create_trial_subscription(shop_id, trial_days=self.trial_days)
        categories = [
            {
                "id": generate_id(),
                "shop_id": shop_id,
                "name": name,
                "is_archived": False,
                "created_at": now,
                "updated_at": now,
            }
            for name in DEFAULT_CATEGORIES
        ]

        self.state.replace(shop_id, {
            "settings": settings,
            "subscription": subscription,
            "users": [owner],
            "categories": categories,
        })
        self.state.set_current_user(owner)

        self.mutations.write(OperationType.CREATE_SETTINGS, settings, shop_id)
        self.mutations.write(OperationType.CREATE_USER, owner, owner["id"])
        self.mutations.write(OperationType.CREATE_SUBSCRIPTION, subscription, subscription["id"])
        for category in categories:
            self.mutations.write(OperationType.CREATE_CATEGORY, category, category["id"])

        logger.info("Registered shop %s (%s)", shop_name, shop_id)
        return LoginResult(
            success=True,
            user=owner,
            shop_id=shop_id,
            source=SOURCE_LOCAL,
            subscription_expired=not is_active(subscription),
        )
