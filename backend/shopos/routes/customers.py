# Overview: Flask API routes for customers and their debt accounts.

# backend/shopos/routes/customers.py
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_login, require_permission
from ..permissions import MANAGE_DEBTORS, PROCESS_SALES
from ..services.mutation_service import MutationError, NotFoundError
from ..services.tenant_service import TenantAccessError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _amount(payload: dict):
    amount = payload.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return None
    return amount


@customers_bp.get("")
@require_login
def list_customers():
    """
    List customers.

    Query params:
    - debtors: "true" to only return customers owing money
    """
    customers = g.runtime.state.list("customers")
    if request.args.get("debtors", "").lower() == "true":
        customers = [c for c in customers if (c.get("total_debt") or 0) > 0]
    return jsonify(customers), 200


@customers_bp.post("")
@require_login
@require_permission(PROCESS_SALES)
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    if not payload.get("name"):
        return jsonify({"error": "name is required"}), 400

    try:
        customer = g.runtime.mutations.add_customer(payload)
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Creating customer failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(customer), 201


@customers_bp.put("/<customer_id>")
@require_login
@require_permission(MANAGE_DEBTORS)
def update_customer_route(customer_id: str):
    payload = request.get_json(silent=True) or {}
    # Debt only changes through sales, payments and explicit adjustments
    payload.pop("total_debt", None)

    try:
        customer = g.runtime.mutations.edit_customer(customer_id, payload)
    except NotFoundError:
        return jsonify({"error": "Customer not found"}), 404
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403

    return jsonify(customer), 200


@customers_bp.post("/<customer_id>/debt")
@require_login
@require_permission(MANAGE_DEBTORS)
def adjust_debt_route(customer_id: str):
    """Add (positive) or remove (negative) an amount from the customer's debt."""
    amount = _amount(request.get_json(silent=True) or {})
    if amount is None:
        return jsonify({"error": "amount must be a number"}), 400

    try:
        customer = g.runtime.mutations.update_customer_debt(customer_id, amount)
    except NotFoundError:
        return jsonify({"error": "Customer not found"}), 404

    return jsonify(customer), 200


@customers_bp.post("/<customer_id>/payments")
@require_login
@require_permission(MANAGE_DEBTORS)
def debt_payment_route(customer_id: str):
    """Record a debt repayment; the balance never goes below zero."""
    amount = _amount(request.get_json(silent=True) or {})
    if amount is None:
        return jsonify({"error": "amount must be a number"}), 400

    try:
        customer = g.runtime.mutations.record_debt_payment(customer_id, amount)
    except NotFoundError:
        return jsonify({"error": "Customer not found"}), 404
    except MutationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(customer), 200


@customers_bp.get("/<customer_id>/debt-history")
@require_login
@require_permission(MANAGE_DEBTORS)
def debt_history_route(customer_id: str):
    if g.runtime.state.get("customers", customer_id) is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify(g.runtime.mutations.get_debt_history(customer_id)), 200
