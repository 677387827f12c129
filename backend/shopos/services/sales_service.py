# Overview: Pure computation of everything a completed sale changes.

"""
Sales Service: Sale Effects

WHY: A sale fans out into several dependent records (the sale itself, product
stock, stock movements, customer debt, gift-card balance). Computing them in
one pure function, from a snapshot read taken before any remote call, keeps
the local commit consistent and lets the mutation layer write each dependent
record independently.

STOCK MATH:
- units sold = quantity * units_per_carton for cartons, quantity for units
- total_units is the source of truth; stock_cartons / stock_units are derived
  with floor division so a negative balance still splits consistently
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from .identifier_service import generate_id
from shopos.time_utils import now_iso


QUANTITY_CARTON = "carton"
QUANTITY_UNIT = "unit"
QUANTITY_TYPES = (QUANTITY_CARTON, QUANTITY_UNIT)


class SaleError(Exception):
    """Raised when a sale cannot be recorded."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class SaleEffects:
    sale: dict
    products: list[dict] = field(default_factory=list)
    stock_movements: list[dict] = field(default_factory=list)
    customer: dict | None = None
    debt_transaction: dict | None = None
    gift_card: dict | None = None


def units_per_carton(product: dict) -> int:
    return max(1, int(product.get("units_per_carton") or 1))


def split_stock(total_units: int, per_carton: int) -> tuple[int, int]:
    """(stock_cartons, stock_units) for a unit total."""
    return total_units // per_carton, total_units % per_carton


def apply_stock_total(product: dict, total_units: int) -> dict:
    """Return a copy of product with total_units and the derived carton/unit split."""
    updated = dict(product)
    cartons, units = split_stock(total_units, units_per_carton(product))
    updated["total_units"] = total_units
    updated["stock_cartons"] = cartons
    updated["stock_units"] = units
    return updated


def units_for(product: dict, quantity, quantity_type: str) -> int:
    if quantity_type not in QUANTITY_TYPES:
        raise SaleError(f"Unknown quantity type {quantity_type!r}")
    if quantity_type == QUANTITY_CARTON:
        return int(quantity) * units_per_carton(product)
    return int(quantity)


def line_profit(product: dict, quantity, quantity_type: str):
    if quantity_type == QUANTITY_CARTON:
        revenue = product.get("carton_price") or 0
        cost = product.get("cost_price_carton") or 0
    else:
        revenue = product.get("unit_price") or 0
        cost = product.get("cost_price_unit") or 0
    return (revenue - cost) * quantity


def line_subtotal(product: dict, quantity, quantity_type: str):
    price = product.get("carton_price") if quantity_type == QUANTITY_CARTON else product.get("unit_price")
    return (price or 0) * quantity


def compute_sale_effects(
    sale: dict,
    products: dict[str, dict],
    customer: dict | None = None,
    gift_card: dict | None = None,
    now: str | None = None,
) -> SaleEffects:
    """
    Compute the completed sale and every dependent record it changes.

    Args:
        sale: sale as submitted by the till; items carry product_id (or id),
              quantity and quantity_type
        products: current products by id (snapshot read)
        customer: the sale's customer, required for credit sales
        gift_card: the card matching sale["gift_card_code"], if any

    Raises:
        SaleError on an empty cart, unknown product or missing customer
    """
    items = sale.get("items") or []
    if not items:
        raise SaleError("Sale has no items")

    now = now or now_iso()
    completed = copy.deepcopy(sale)
    completed.setdefault("id", generate_id())
    completed.setdefault("date", now)
    completed.setdefault("payment_method", "cash")
    completed["is_credit"] = bool(completed.get("is_credit"))

    working: dict[str, dict] = {}
    movements: list[dict] = []
    profit = 0
    total = 0

    for item in completed["items"]:
        product_id = item.get("product_id") or item.get("id")
        base = working.get(product_id) or products.get(product_id)
        if base is None:
            raise SaleError("Unknown product in sale", {"product_id": product_id})

        quantity = item.get("quantity") or 0
        if quantity <= 0:
            raise SaleError("Quantity must be positive", {"product_id": product_id})
        quantity_type = item.get("quantity_type") or QUANTITY_UNIT

        units_sold = units_for(base, quantity, quantity_type)
        profit += line_profit(base, quantity, quantity_type)
        subtotal = item.get("subtotal")
        if subtotal is None:
            subtotal = line_subtotal(base, quantity, quantity_type)
            item["subtotal"] = subtotal
        total += subtotal
        item["product_id"] = product_id

        new_total = int(base.get("total_units") or 0) - units_sold
        updated = apply_stock_total(base, new_total)
        updated["updated_at"] = now
        working[product_id] = updated

        movements.append({
            "id": generate_id(),
            "shop_id": completed.get("shop_id"),
            "product_id": product_id,
            "type": "sale",
            "quantity_change": -units_sold,
            "quantity_type": quantity_type,
            "balance_after": new_total,
            "user_id": completed.get("cashier_id"),
            "note": f"Sale ID: {completed['id']}",
            "created_at": now,
        })

    completed.setdefault("total", total)
    completed["profit"] = profit
    completed.setdefault("created_at", now)
    completed["updated_at"] = now

    effects = SaleEffects(sale=completed, products=list(working.values()), stock_movements=movements)

    if completed["is_credit"]:
        if customer is None:
            raise SaleError("Credit sale needs a known customer", {"customer_id": completed.get("customer_id")})
        updated_customer = dict(customer)
        updated_customer["total_debt"] = (customer.get("total_debt") or 0) + completed["total"]
        updated_customer["last_purchase_date"] = completed["date"]
        updated_customer["updated_at"] = now
        effects.customer = updated_customer
        effects.debt_transaction = {
            "id": generate_id(),
            "shop_id": completed.get("shop_id"),
            "customer_id": customer["id"],
            "date": completed["date"],
            "type": "credit",
            "amount": completed["total"],
            "sale_id": completed["id"],
            "note": f"Credit Sale (Due: {completed.get('due_date') or 'N/A'})",
            "created_at": now,
        }

    amount = completed.get("gift_card_amount")
    if gift_card is not None and completed.get("gift_card_code") and amount:
        balance = max(0, (gift_card.get("balance") or 0) - amount)
        updated_card = dict(gift_card)
        updated_card["balance"] = balance
        updated_card["status"] = "empty" if balance <= 0 else "active"
        updated_card["updated_at"] = now
        effects.gift_card = updated_card

    return effects
