# Overview: Single entry point for every entity mutation (local commit, then sync or enqueue).

"""
Mutation Service

WHY: Every feature that changes data goes through the same fixed order, so the
UI is always read-after-write consistent locally and nothing is lost when the
remote store is unreachable:

1. Compute the full entity (id, shop_id, timestamps, derived fields) from a
   snapshot read taken before any remote call
2. Commit it to the local state store
3. Append an activity-log entry (remote write runs as a background task)
4. Sync-eligible: attempt the remote write now, enqueue on failure
5. Not eligible (offline / legacy shop): enqueue directly

Fan-out mutations (a sale) write each dependent record independently; a
partially synced sale is a valid intermediate state, the queue carries only
the failed parts forward.

Remote failures never propagate to the caller. Tenant violations and
validation errors do.
"""

from __future__ import annotations

import copy
import logging

from .auth_service import hash_secret
from .identifier_service import generate_id
from .operations import CREATE, UPDATE, OperationType, apply_operation, collection_for, operation_type_for
from .remote import DuplicateKeyError, RemoteError
from .sales_service import apply_stock_total, compute_sale_effects, units_for
from .subscription_service import create_trial_subscription, extend_subscription
from .tenant_service import TenantAccessError, is_sync_eligible
from shopos.time_utils import now_iso


logger = logging.getLogger(__name__)


class MutationError(Exception):
    """Raised when a mutation cannot be applied."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(MutationError):
    """The referenced record is not in the active shop."""
    pass


class MutationFacade:
    def __init__(
        self,
        state,
        queue,
        remote,
        network,
        background=None,
        engine=None,
        bcrypt_rounds: int = 12,
    ):
        self.state = state
        self.queue = queue
        self.remote = remote
        self.network = network
        self.background = background
        self.engine = engine
        self.bcrypt_rounds = bcrypt_rounds

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def is_eligible(self) -> bool:
        return is_sync_eligible(self.state.shop_id, self.network.is_online)

    def write(self, op_type: OperationType, payload: dict, target_entity_id: str | None = None) -> bool:
        """
        Sync-if-eligible, else enqueue.

        An entity that still has queued operations is queued behind them, so
        replay order stays FIFO and a stale queued update never lands on top
        of a newer direct write.

        Returns True when the remote store confirmed the write (or already had it).
        """
        if not self.is_eligible() or self.queue.has_pending_for(target_entity_id):
            self.queue.enqueue(op_type, payload, target_entity_id)
            return False

        try:
            apply_operation(self.remote, op_type, payload, target_entity_id)
        except DuplicateKeyError:
            logger.info("%s %s already applied remotely", op_type.value, target_entity_id or payload.get("id"))
            return True
        except RemoteError as e:
            logger.warning("Remote %s failed (%s); queued for retry", op_type.value, e)
            self.queue.enqueue(op_type, payload, target_entity_id)
            return False
        except Exception:
            logger.exception("Unexpected error writing %s; queued for retry", op_type.value)
            self.queue.enqueue(op_type, payload, target_entity_id)
            return False
        return True

    def _require_shop(self) -> str:
        shop_id = self.state.shop_id
        if not shop_id:
            raise TenantAccessError("No active shop")
        return shop_id

    def _prepare(self, entity: dict, now: str | None = None) -> dict:
        """Attach id, shop_id and timestamps; refuse records of another shop."""
        shop_id = self._require_shop()
        now = now or now_iso()
        prepared = copy.deepcopy(entity)
        prepared.pop("password", None)
        if not prepared.get("id"):
            prepared["id"] = generate_id()
        if prepared.get("shop_id") in (None, ""):
            prepared["shop_id"] = shop_id
        elif prepared["shop_id"] != shop_id:
            raise TenantAccessError(f"Record belongs to shop {prepared['shop_id']!r}, not {shop_id!r}")
        prepared.setdefault("created_at", now)
        prepared["updated_at"] = now
        return prepared

    def _existing(self, kind: str, entity_id: str) -> dict:
        found = self.state.get(collection_for(kind), entity_id)
        if found is None:
            raise NotFoundError(f"{kind.replace('_', ' ').capitalize()} not found", {"id": entity_id})
        return found

    def log_activity(self, action: str, details: str) -> dict | None:
        """Local activity entry; the remote write is fire-and-forget."""
        user = self.state.current_user
        if user is None or not self.state.shop_id:
            return None

        entry = {
            "id": generate_id(),
            "shop_id": self.state.shop_id,
            "user_id": user.get("id"),
            "user_name": user.get("full_name") or user.get("username"),
            "action": action,
            "details": details,
            "created_at": now_iso(),
        }
        self.state.upsert("activity_logs", entry)
        self._in_background(
            f"activity log {action}",
            self.write, OperationType.CREATE_ACTIVITY_LOG, entry, entry["id"],
        )
        return entry

    def _in_background(self, name: str, fn, *args):
        if self.background is None:
            return fn(*args)
        return self.background.submit(name, fn, *args)

    def request_drain(self) -> None:
        """Ask the sync engine for a drain without waiting for it."""
        if self.engine is None or not self.queue.has_pending():
            return
        self._in_background("drain", self.engine.drain)

    def _create(self, kind: str, entity: dict, action: str, details) -> dict:
        with self.state.transaction():
            prepared = self._prepare(entity)
            self.state.upsert(collection_for(kind), prepared)
            self.log_activity(action, details(prepared))
        self.write(operation_type_for(CREATE, kind), prepared, prepared["id"])
        return prepared

    def _update(self, kind: str, entity_id: str, changes, action: str | None, details) -> dict:
        with self.state.transaction():
            existing = self._existing(kind, entity_id)
            if callable(changes):
                changes = changes(existing)
            merged = {**existing, **copy.deepcopy(changes), "id": existing["id"]}
            prepared = self._prepare(merged)
            self.state.upsert(collection_for(kind), prepared)
            if action:
                self.log_activity(action, details(prepared))
        self.write(operation_type_for(UPDATE, kind), prepared, prepared["id"])
        return prepared

    def _archive(self, kind: str, entity_id: str, action: str) -> dict:
        return self._update(
            kind, entity_id, {"is_archived": True}, action,
            lambda e: f"Archived {kind.replace('_', ' ')} ID: {e['id']}",
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def add_product(self, product: dict) -> dict:
        product = dict(product)
        per_carton = max(1, int(product.get("units_per_carton") or 1))
        product["units_per_carton"] = per_carton
        if product.get("cost_price_unit") is None and product.get("cost_price_carton") is not None:
            product["cost_price_unit"] = product["cost_price_carton"] / per_carton
        if product.get("total_units") is None:
            product["total_units"] = int(product.get("stock_cartons") or 0) * per_carton + int(product.get("stock_units") or 0)
        product = apply_stock_total(product, int(product["total_units"]))
        product.setdefault("min_stock_level", 0)
        product.setdefault("is_archived", False)
        return self._create("product", product, "ADD_PRODUCT", lambda p: f"Added product: {p.get('name')}")

    def edit_product(self, product_id: str, changes: dict) -> dict:
        return self._update("product", product_id, changes, "EDIT_PRODUCT", lambda p: f"Edited product: {p.get('name')}")

    def delete_product(self, product_id: str) -> dict:
        return self._archive("product", product_id, "DELETE_PRODUCT")

    def update_stock(
        self,
        product_id: str,
        quantity: int,
        quantity_type: str,
        batch_number: str | None = None,
        expiry_date: str | None = None,
    ) -> dict:
        """
        Add (or, with a negative quantity, remove) stock.

        The new total is computed from the product as it is in the local
        snapshot at call time, inside the store lock.
        """
        with self.state.transaction():
            product = self._existing("product", product_id)
            change = units_for(product, quantity, quantity_type)
            new_total = int(product.get("total_units") or 0) + change
            updated = apply_stock_total(product, new_total)
            if batch_number:
                updated["batch_number"] = batch_number
            if expiry_date:
                updated["expiry_date"] = expiry_date
            updated = self._prepare(updated)

            user = self.state.current_user or {}
            movement = self._prepare({
                "product_id": product_id,
                "type": "restock" if change >= 0 else "adjustment",
                "quantity_change": change,
                "quantity_type": quantity_type,
                "balance_after": new_total,
                "user_id": user.get("id") or "system",
                "note": "Manual Restock" if change >= 0 else "Manual Adjustment",
                "batch_number": batch_number,
            })
            self.state.upsert("products", updated)
            self.state.upsert("stock_movements", movement)
            self.log_activity("UPDATE_STOCK", f"Updated stock for product ID: {product_id}")

        self.write(OperationType.UPDATE_PRODUCT, updated, updated["id"])
        self.write(OperationType.CREATE_STOCK_MOVEMENT, movement, movement["id"])
        return updated

    def add_category(self, category: dict) -> dict:
        category = {"is_archived": False, **category}
        return self._create("category", category, "ADD_CATEGORY", lambda c: f"Created category: {c.get('name')}")

    def edit_category(self, category_id: str, changes: dict) -> dict:
        return self._update("category", category_id, changes, "EDIT_CATEGORY", lambda c: f"Edited category: {c.get('name')}")

    def delete_category(self, category_id: str) -> dict:
        return self._archive("category", category_id, "DELETE_CATEGORY")

    def add_supplier(self, supplier: dict) -> dict:
        supplier = {"is_archived": False, **supplier}
        return self._create("supplier", supplier, "ADD_SUPPLIER", lambda s: f"Added supplier: {s.get('name')}")

    def edit_supplier(self, supplier_id: str, changes: dict) -> dict:
        return self._update("supplier", supplier_id, changes, "EDIT_SUPPLIER", lambda s: f"Edited supplier: {s.get('name')}")

    def delete_supplier(self, supplier_id: str) -> dict:
        return self._archive("supplier", supplier_id, "DELETE_SUPPLIER")

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_sale(self, sale: dict) -> dict:
        """
        Record a completed sale and every record it changes.

        Each dependent write syncs or enqueues on its own, then a drain is
        requested in the background to push anything left over.
        """
        with self.state.transaction():
            shop_id = self._require_shop()
            sale = dict(sale)
            if sale.get("shop_id") not in (None, "", shop_id):
                raise TenantAccessError("Sale belongs to another shop")
            sale["shop_id"] = shop_id
            user = self.state.current_user
            if user is not None:
                sale.setdefault("cashier_id", user.get("id"))
                sale.setdefault("cashier_name", user.get("full_name"))

            products = {}
            for item in sale.get("items") or []:
                product_id = item.get("product_id") or item.get("id")
                product = self.state.get("products", product_id)
                if product is not None:
                    products[product_id] = product

            customer = None
            if sale.get("customer_id"):
                customer = self.state.get("customers", sale["customer_id"])

            gift_card = None
            if sale.get("gift_card_code"):
                gift_card = self.state.find("gift_cards", lambda g: g.get("code") == sale["gift_card_code"])

            effects = compute_sale_effects(sale, products, customer=customer, gift_card=gift_card)

            self.state.upsert("sales", effects.sale)
            for product in effects.products:
                self.state.upsert("products", product)
            for movement in effects.stock_movements:
                self.state.upsert("stock_movements", movement)
            if effects.customer is not None:
                self.state.upsert("customers", effects.customer)
                self.state.upsert("debt_transactions", effects.debt_transaction)
            if effects.gift_card is not None:
                self.state.upsert("gift_cards", effects.gift_card)
            self.log_activity("SALE", f"Recorded sale: {effects.sale.get('total')}")

        self.write(OperationType.CREATE_SALE, effects.sale, effects.sale["id"])
        for product in effects.products:
            self.write(OperationType.UPDATE_PRODUCT, product, product["id"])
        for movement in effects.stock_movements:
            self.write(OperationType.CREATE_STOCK_MOVEMENT, movement, movement["id"])
        if effects.customer is not None:
            self.write(OperationType.UPDATE_CUSTOMER, effects.customer, effects.customer["id"])
            self.write(OperationType.CREATE_DEBT_TRANSACTION, effects.debt_transaction, effects.debt_transaction["id"])
        if effects.gift_card is not None:
            self.write(OperationType.UPDATE_GIFT_CARD, effects.gift_card, effects.gift_card["id"])

        self.request_drain()
        return effects.sale

    # ------------------------------------------------------------------
    # Customers and debt
    # ------------------------------------------------------------------

    def add_customer(self, customer: dict) -> dict:
        customer = {"total_debt": 0, "is_archived": False, **customer}
        return self._create("customer", customer, "ADD_CUSTOMER", lambda c: f"Added customer: {c.get('name')}")

    def edit_customer(self, customer_id: str, changes: dict) -> dict:
        return self._update("customer", customer_id, changes, "EDIT_CUSTOMER", lambda c: f"Edited customer: {c.get('name')}")

    def update_customer_debt(self, customer_id: str, amount) -> dict:
        return self._update(
            "customer", customer_id,
            lambda c: {"total_debt": (c.get("total_debt") or 0) + amount},
            None, None,
        )

    def record_debt_payment(self, customer_id: str, amount) -> dict:
        if amount is None or amount <= 0:
            raise MutationError("Payment amount must be positive", {"amount": amount})

        with self.state.transaction():
            customer = self._existing("customer", customer_id)
            customer["total_debt"] = max(0, (customer.get("total_debt") or 0) - amount)
            customer = self._prepare(customer)
            transaction = self._prepare({
                "customer_id": customer_id,
                "date": now_iso(),
                "type": "payment",
                "amount": amount,
                "note": "Debt Repayment",
            })
            self.state.upsert("customers", customer)
            self.state.upsert("debt_transactions", transaction)
            self.log_activity("DEBT_PAYMENT", f"Recorded payment of {amount} for customer {customer_id}")

        self.write(OperationType.UPDATE_CUSTOMER, customer, customer["id"])
        self.write(OperationType.CREATE_DEBT_TRANSACTION, transaction, transaction["id"])
        return customer

    def get_debt_history(self, customer_id: str) -> list[dict]:
        return [t for t in self.state.list("debt_transactions") if t.get("customer_id") == customer_id]

    # ------------------------------------------------------------------
    # Gift cards
    # ------------------------------------------------------------------

    def add_gift_card(self, card: dict) -> dict:
        card = dict(card)
        if not card.get("code"):
            raise MutationError("Gift card code is required")
        if self.state.find("gift_cards", lambda g: g.get("code") == card["code"]) is not None:
            raise MutationError("Gift card code already exists", {"code": card["code"]})
        card.setdefault("balance", card.get("initial_value") or 0)
        card.setdefault("initial_value", card["balance"])
        card.setdefault("status", "active" if card["balance"] > 0 else "empty")
        card.setdefault("theme", "standard")
        return self._create("gift_card", card, "ADD_GIFT_CARD", lambda g: f"Created gift card: {g.get('code')}")

    def delete_gift_card(self, card_id: str) -> bool:
        """Gift cards are the one kind that is deleted outright."""
        with self.state.transaction():
            card = self._existing("gift_card", card_id)
            self.state.remove("gift_cards", card_id)
            self.log_activity("DELETE_GIFT_CARD", f"Deleted gift card: {card.get('code')}")
        return self.write(OperationType.DELETE_GIFT_CARD, {"id": card_id, "shop_id": card.get("shop_id")}, card_id)

    def get_gift_card(self, code: str) -> dict | None:
        return self.state.find("gift_cards", lambda g: g.get("code") == code and g.get("status") == "active")

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def add_expense(self, expense: dict) -> dict:
        expense = {"is_archived": False, **expense}
        expense.setdefault("date", now_iso())
        user = self.state.current_user
        if user is not None:
            expense.setdefault("recorded_by_user_id", user.get("id"))
        return self._create(
            "expense", expense, "ADD_EXPENSE",
            lambda e: f"Added expense: {e.get('amount')} ({e.get('category')})",
        )

    def delete_expense(self, expense_id: str) -> dict:
        return self._archive("expense", expense_id, "DELETE_EXPENSE")

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def _with_hashed_secret(self, user: dict) -> dict:
        user = dict(user)
        secret = user.pop("password", None)
        if secret:
            user["password_hash"] = hash_secret(secret, rounds=self.bcrypt_rounds)
        return user

    def add_user(self, user: dict) -> dict | None:
        """
        Create a user in the active shop.

        Returns None when the username is already taken in this shop.
        """
        username = (user.get("username") or "").strip().lower()
        if not username:
            raise MutationError("Username is required")
        taken = self.state.find("users", lambda u: (u.get("username") or "").strip().lower() == username)
        if taken is not None:
            return None

        user = self._with_hashed_secret(user)
        user.setdefault("role", "cashier")
        user.setdefault("status", "active")
        user.setdefault("language", "en")
        return self._create(
            "user", user, "ADD_USER",
            lambda u: f"Created user: {u.get('username')} ({u.get('role')})",
        )

    def update_user(self, user_id: str, changes: dict) -> dict:
        changes = self._with_hashed_secret(changes)
        return self._update("user", user_id, changes, "EDIT_USER", lambda u: f"Updated user: {u.get('username')}")

    def toggle_user_status(self, user_id: str) -> dict:
        return self._update(
            "user", user_id,
            lambda u: {"status": "inactive" if u.get("status") == "active" else "active"},
            "TOGGLE_USER_STATUS",
            lambda u: f"Toggled status for user ID: {u['id']}",
        )

    # ------------------------------------------------------------------
    # Settings and billing
    # ------------------------------------------------------------------

    def update_settings(self, changes: dict) -> dict:
        shop_id = self._require_shop()
        with self.state.transaction():
            settings = {**(self.state.settings or {}), **copy.deepcopy(changes)}
            settings["shop_id"] = shop_id
            now = now_iso()
            settings.setdefault("created_at", now)
            settings["updated_at"] = now
            self.state.set_settings(settings)
            self.log_activity("UPDATE_SETTINGS", "Updated shop settings")
        self.write(OperationType.UPDATE_SETTINGS, settings, shop_id)
        return settings

    def update_subscription(self, subscription: dict) -> dict:
        with self.state.transaction():
            prepared = self._prepare(subscription)
            self.state.set_subscription(prepared)
        self.write(OperationType.UPDATE_SUBSCRIPTION, prepared, prepared["id"])
        return prepared

    def record_subscription_payment(self, plan: str, reference: str, amount, now=None) -> dict:
        """
        Apply a payment the gateway has already verified: store the payment
        record and extend (or start) the subscription.
        """
        with self.state.transaction():
            shop_id = self._require_shop()
            current = self.state.subscription
            created = current is None
            if created:
                current = create_trial_subscription(shop_id, trial_days=0, now=now)

            extended = self._prepare(extend_subscription(current, plan, reference, amount, now=now))
            user = self.state.current_user or {}
            payment = self._prepare({
                "plan": plan,
                "amount": amount,
                "reference": reference,
                "status": "success",
                "user_id": user.get("id"),
                "paid_at": extended["last_payment_date"],
            })
            self.state.set_subscription(extended)
            self.state.upsert("payments", payment)
            self.log_activity("SUBSCRIPTION_PAYMENT", f"Paid {amount} for {plan} plan ({reference})")

        self.write(OperationType.CREATE_PAYMENT, payment, payment["id"])
        op_type = OperationType.CREATE_SUBSCRIPTION if created else OperationType.UPDATE_SUBSCRIPTION
        self.write(op_type, extended, extended["id"])
        return extended
