# Overview: Flask API routes for products, stock, categories and suppliers.

# backend/shopos/routes/inventory.py
"""
Inventory routes.

MULTI-TENANT: Everything reads from and writes to the active shop's local
snapshot; the mutation layer refuses records of other shops.

SECURITY: All routes require a signed-in user.
- Read operations require login only (the till needs the catalog)
- Write operations require manage_stock
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_login, require_permission
from ..permissions import MANAGE_STOCK
from ..services.mutation_service import MutationError, NotFoundError
from ..services.sales_service import QUANTITY_TYPES, SaleError
from ..services.tenant_service import TenantAccessError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")


def _include_archived() -> bool:
    return request.args.get("include_archived", "").lower() in {"1", "true", "yes"}


def _mutate(fn, *args, success_status: int = 200):
    """Run one mutation and map domain errors onto HTTP answers."""
    try:
        result = fn(*args)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 403
    except (MutationError, SaleError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Inventory mutation failed")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), success_status


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@inventory_bp.get("/products")
@require_login
def list_products():
    return jsonify(g.runtime.state.list("products", include_archived=_include_archived())), 200


@inventory_bp.get("/products/<product_id>")
@require_login
def get_product(product_id: str):
    product = g.runtime.state.get("products", product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product), 200


@inventory_bp.post("/products")
@require_login
@require_permission(MANAGE_STOCK)
def create_product_route():
    payload = request.get_json(silent=True) or {}
    if not payload.get("name"):
        return jsonify({"error": "name is required"}), 400
    return _mutate(g.runtime.mutations.add_product, payload, success_status=201)


@inventory_bp.put("/products/<product_id>")
@require_login
@require_permission(MANAGE_STOCK)
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    return _mutate(g.runtime.mutations.edit_product, product_id, payload)


@inventory_bp.delete("/products/<product_id>")
@require_login
@require_permission(MANAGE_STOCK)
def delete_product_route(product_id: str):
    """Archive a product (products are never deleted)."""
    return _mutate(g.runtime.mutations.delete_product, product_id)


@inventory_bp.post("/products/<product_id>/stock")
@require_login
@require_permission(MANAGE_STOCK)
def update_stock_route(product_id: str):
    """
    Restock (or adjust) a product.

    Body: quantity (int, negative to remove), quantity_type ("carton"|"unit"),
    batch_number, expiry_date (optional)
    """
    payload = request.get_json(silent=True) or {}
    quantity = payload.get("quantity")
    quantity_type = payload.get("quantity_type", "unit")

    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity == 0:
        return jsonify({"error": "quantity must be a non-zero integer"}), 400
    if quantity_type not in QUANTITY_TYPES:
        return jsonify({"error": "quantity_type must be 'carton' or 'unit'"}), 400

    return _mutate(
        g.runtime.mutations.update_stock,
        product_id, quantity, quantity_type,
        payload.get("batch_number"), payload.get("expiry_date"),
    )


@inventory_bp.get("/products/<product_id>/movements")
@require_login
def product_movements(product_id: str):
    movements = [m for m in g.runtime.state.list("stock_movements") if m.get("product_id") == product_id]
    return jsonify(movements), 200


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@inventory_bp.get("/categories")
@require_login
def list_categories():
    return jsonify(g.runtime.state.list("categories", include_archived=_include_archived())), 200


@inventory_bp.post("/categories")
@require_login
@require_permission(MANAGE_STOCK)
def create_category_route():
    payload = request.get_json(silent=True) or {}
    if not payload.get("name"):
        return jsonify({"error": "name is required"}), 400
    return _mutate(g.runtime.mutations.add_category, payload, success_status=201)


@inventory_bp.put("/categories/<category_id>")
@require_login
@require_permission(MANAGE_STOCK)
def update_category_route(category_id: str):
    payload = request.get_json(silent=True) or {}
    return _mutate(g.runtime.mutations.edit_category, category_id, payload)


@inventory_bp.delete("/categories/<category_id>")
@require_login
@require_permission(MANAGE_STOCK)
def delete_category_route(category_id: str):
    return _mutate(g.runtime.mutations.delete_category, category_id)


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------

@inventory_bp.get("/suppliers")
@require_login
def list_suppliers():
    return jsonify(g.runtime.state.list("suppliers", include_archived=_include_archived())), 200


@inventory_bp.post("/suppliers")
@require_login
@require_permission(MANAGE_STOCK)
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    if not payload.get("name"):
        return jsonify({"error": "name is required"}), 400
    return _mutate(g.runtime.mutations.add_supplier, payload, success_status=201)


@inventory_bp.put("/suppliers/<supplier_id>")
@require_login
@require_permission(MANAGE_STOCK)
def update_supplier_route(supplier_id: str):
    payload = request.get_json(silent=True) or {}
    return _mutate(g.runtime.mutations.edit_supplier, supplier_id, payload)


@inventory_bp.delete("/suppliers/<supplier_id>")
@require_login
@require_permission(MANAGE_STOCK)
def delete_supplier_route(supplier_id: str):
    return _mutate(g.runtime.mutations.delete_supplier, supplier_id)
