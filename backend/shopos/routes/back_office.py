# Overview: Flask API routes for expenses, users, settings, subscription and activity logs.

# backend/shopos/routes/back_office.py
"""
Back-office routes.

SECURITY:
- Users: manage_users; admins cannot create, edit or deactivate a superadmin
- Settings and billing: manage_settings
- Expenses: view_financials
- Activity logs: view_reports
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_login, require_permission
from ..permissions import MANAGE_SETTINGS, MANAGE_USERS, ROLES, VIEW_FINANCIALS, VIEW_REPORTS
from ..services.auth_service import SecretValidationError, public_user
from ..services.mutation_service import MutationError, NotFoundError
from ..services.subscription_service import PLANS, SubscriptionError, check_status, days_remaining
from ..services.tenant_service import TenantAccessError


back_office_bp = Blueprint("back_office", __name__, url_prefix="/api")


def _is_superadmin() -> bool:
    return g.current_user.get("role") == "superadmin"


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------

@back_office_bp.get("/expenses")
@require_login
@require_permission(VIEW_FINANCIALS)
def list_expenses():
    return jsonify(g.runtime.state.list("expenses")), 200


@back_office_bp.post("/expenses")
@require_login
@require_permission(VIEW_FINANCIALS)
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    amount = payload.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        return jsonify({"error": "amount must be a positive number"}), 400

    try:
        expense = g.runtime.mutations.add_expense(payload)
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403

    return jsonify(expense), 201


@back_office_bp.delete("/expenses/<expense_id>")
@require_login
@require_permission(VIEW_FINANCIALS)
def delete_expense_route(expense_id: str):
    try:
        expense = g.runtime.mutations.delete_expense(expense_id)
    except NotFoundError:
        return jsonify({"error": "Expense not found"}), 404
    return jsonify(expense), 200


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@back_office_bp.get("/users")
@require_login
@require_permission(MANAGE_USERS)
def list_users():
    users = g.runtime.state.list("users", include_archived=True)
    return jsonify([public_user(u) for u in users]), 200


@back_office_bp.post("/users")
@require_login
@require_permission(MANAGE_USERS)
def create_user_route():
    """
    Create a user in the active shop.

    Body: username, password, full_name, role, phone, email
    Returns 409 when the username is taken.
    """
    payload = request.get_json(silent=True) or {}

    if not payload.get("username") or not payload.get("password"):
        return jsonify({"error": "username and password are required"}), 400
    role = payload.get("role", "cashier")
    if role not in ROLES:
        return jsonify({"error": f"Unknown role {role!r}"}), 400
    if role == "superadmin" and not _is_superadmin():
        return jsonify({"error": "Only the shop owner can create a superadmin"}), 403

    try:
        user = g.runtime.mutations.add_user(payload)
    except (MutationError, SecretValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Creating user failed")
        return jsonify({"error": "Internal server error"}), 500

    if user is None:
        return jsonify({"error": "Username already exists"}), 409

    return jsonify(public_user(user)), 201


@back_office_bp.put("/users/<user_id>")
@require_login
@require_permission(MANAGE_USERS)
def update_user_route(user_id: str):
    payload = request.get_json(silent=True) or {}
    target = g.runtime.state.get("users", user_id)
    if target is None:
        return jsonify({"error": "User not found"}), 404
    if not _is_superadmin() and (target.get("role") == "superadmin" or payload.get("role") == "superadmin"):
        return jsonify({"error": "Only the shop owner can change a superadmin"}), 403
    if "role" in payload and payload["role"] not in ROLES:
        return jsonify({"error": f"Unknown role {payload['role']!r}"}), 400
    payload.pop("password_hash", None)

    try:
        user = g.runtime.mutations.update_user(user_id, payload)
    except SecretValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403

    return jsonify(public_user(user)), 200


@back_office_bp.post("/users/<user_id>/toggle-status")
@require_login
@require_permission(MANAGE_USERS)
def toggle_user_status_route(user_id: str):
    """Deactivate / reactivate a user (users are never deleted)."""
    if user_id == g.current_user.get("id"):
        return jsonify({"error": "You cannot deactivate yourself"}), 400
    target = g.runtime.state.get("users", user_id)
    if target is None:
        return jsonify({"error": "User not found"}), 404
    if target.get("role") == "superadmin" and not _is_superadmin():
        return jsonify({"error": "Only the shop owner can change a superadmin"}), 403

    user = g.runtime.mutations.toggle_user_status(user_id)
    return jsonify(public_user(user)), 200


# ---------------------------------------------------------------------------
# Settings and subscription
# ---------------------------------------------------------------------------

@back_office_bp.get("/settings")
@require_login
def get_settings():
    return jsonify(g.runtime.state.settings or {}), 200


@back_office_bp.put("/settings")
@require_login
@require_permission(MANAGE_SETTINGS)
def update_settings_route():
    payload = request.get_json(silent=True) or {}
    payload.pop("shop_id", None)

    try:
        settings = g.runtime.mutations.update_settings(payload)
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Updating settings failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(settings), 200


@back_office_bp.get("/subscription")
@require_login
def get_subscription():
    subscription = g.runtime.state.subscription
    return jsonify({
        "subscription": subscription,
        "status": check_status(subscription),
        "days_remaining": days_remaining(subscription),
    }), 200


@back_office_bp.post("/subscription/payments")
@require_login
@require_permission(MANAGE_SETTINGS)
def subscription_payment_route():
    """
    Apply a verified subscription payment.

    The payment gateway verifies the reference before this is called.
    Body: plan ("monthly"|"yearly"), reference, amount
    """
    payload = request.get_json(silent=True) or {}
    plan = payload.get("plan")
    reference = payload.get("reference")
    amount = payload.get("amount")

    if plan not in PLANS:
        return jsonify({"error": "plan must be 'monthly' or 'yearly'"}), 400
    if not reference:
        return jsonify({"error": "reference is required"}), 400
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        return jsonify({"error": "amount must be a positive number"}), 400

    try:
        subscription = g.runtime.mutations.record_subscription_payment(plan, reference, amount)
    except SubscriptionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "subscription": subscription,
        "status": check_status(subscription),
        "days_remaining": days_remaining(subscription),
    }), 200


@back_office_bp.get("/activity-logs")
@require_login
@require_permission(VIEW_REPORTS)
def list_activity_logs():
    """Most recent first. Query params: limit (default 100)."""
    limit = request.args.get("limit", default=100, type=int)
    logs = sorted(g.runtime.state.list("activity_logs"), key=lambda l: l.get("created_at") or "", reverse=True)
    return jsonify(logs[:max(0, limit)]), 200
