# Overview: Flask API routes for sales and gift cards.

# backend/shopos/routes/sales.py
"""
Sales routes.

A sale is committed locally first and its dependent records (stock,
movements, customer debt, gift card) are synced or queued independently.
The till always gets an immediate 201, online or not.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_login, require_permission
from ..permissions import APPROVE_CREDIT, MANAGE_GIFT_CARDS, PROCESS_SALES, VIEW_REPORTS, has_permission
from ..services.mutation_service import MutationError, NotFoundError
from ..services.sales_service import SaleError
from ..services.tenant_service import TenantAccessError


sales_bp = Blueprint("sales", __name__, url_prefix="/api")


@sales_bp.get("/sales")
@require_login
@require_permission(VIEW_REPORTS)
def list_sales():
    """
    List sales, newest last.

    Query params:
    - customer_id: str (optional)
    - cashier_id: str (optional)
    """
    sales = g.runtime.state.list("sales")
    customer_id = request.args.get("customer_id")
    cashier_id = request.args.get("cashier_id")
    if customer_id:
        sales = [s for s in sales if s.get("customer_id") == customer_id]
    if cashier_id:
        sales = [s for s in sales if s.get("cashier_id") == cashier_id]
    return jsonify(sales), 200


@sales_bp.get("/sales/<sale_id>")
@require_login
def get_sale(sale_id: str):
    sale = g.runtime.state.get("sales", sale_id)
    if sale is None:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify(sale), 200


@sales_bp.post("/sales")
@require_login
@require_permission(PROCESS_SALES)
def create_sale_route():
    """
    Record a completed sale.

    Body: items [{product_id, quantity, quantity_type}], payment_method,
    total (optional, computed from prices when omitted), customer_id,
    is_credit, due_date, gift_card_code, gift_card_amount

    Credit sales additionally require approve_credit.
    """
    payload = request.get_json(silent=True) or {}

    if payload.get("is_credit") and not has_permission(g.current_user, APPROVE_CREDIT):
        return jsonify({
            "error": "Permission denied",
            "required_permission": APPROVE_CREDIT,
        }), 403

    try:
        sale = g.runtime.mutations.record_sale(payload)
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Recording sale failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(sale), 201


# ---------------------------------------------------------------------------
# Gift cards
# ---------------------------------------------------------------------------

@sales_bp.get("/gift-cards")
@require_login
@require_permission(MANAGE_GIFT_CARDS)
def list_gift_cards():
    return jsonify(g.runtime.state.list("gift_cards")), 200


@sales_bp.get("/gift-cards/lookup/<code>")
@require_login
@require_permission(PROCESS_SALES)
def lookup_gift_card(code: str):
    """Active card by code (what the till checks before redeeming)."""
    card = g.runtime.mutations.get_gift_card(code)
    if card is None:
        return jsonify({"error": "Gift card not found or empty"}), 404
    return jsonify(card), 200


@sales_bp.post("/gift-cards")
@require_login
@require_permission(MANAGE_GIFT_CARDS)
def create_gift_card_route():
    payload = request.get_json(silent=True) or {}

    try:
        card = g.runtime.mutations.add_gift_card(payload)
    except MutationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Creating gift card failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(card), 201


@sales_bp.delete("/gift-cards/<card_id>")
@require_login
@require_permission(MANAGE_GIFT_CARDS)
def delete_gift_card_route(card_id: str):
    try:
        g.runtime.mutations.delete_gift_card(card_id)
    except NotFoundError:
        return jsonify({"error": "Gift card not found"}), 404
    except Exception:
        current_app.logger.exception("Deleting gift card failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200
