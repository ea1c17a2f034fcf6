# Overview: Supplier purchases; receiving goods posts 'purchase' ledger entries.

from __future__ import annotations

import re
from decimal import Decimal

from flask import current_app

from ..identity import identifier_json, parse_identifier
from ..storage import Range, get_storage
from ..time_utils import day_bounds_ms, now_ms
from ..validation import ValidationError
from .concurrency import run_with_retry
from .ledger_service import LedgerEntry, TransactionType, append_entry, current_stock
from .order_service import round_half_up

PURCHASE_NUMBER_RE = re.compile(r"^PUR-(\d{8})-(\d{3,})$")


class PurchaseError(ValidationError):
    """Raised when a purchase breaks a business rule."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def create_supplier(values: dict) -> dict:
    store = get_storage()
    new_id = store.insert("suppliers", values)
    return store.get("suppliers", new_id)


def list_suppliers(*, active_only: bool = True) -> list[dict]:
    filt = {"is_active": True} if active_only else {}
    return get_storage().query("suppliers", filt, order_by=["name", "id"])


def next_purchase_number(at_ms: int | None = None) -> str:
    """PUR-yyyymmdd-NNN, per business day."""
    at_ms = now_ms() if at_ms is None else at_ms
    start, end, local = day_bounds_ms(at_ms, current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    day_code = local.strftime("%Y%m%d")
    highest = 0
    for row in get_storage().query("purchases", {"created_at": Range(gte=start, lte=end)}):
        match = PURCHASE_NUMBER_RE.match(row.get("purchase_number") or "")
        if match and match.group(1) == day_code:
            highest = max(highest, int(match.group(2)))
    return f"PUR-{day_code}-{highest + 1:03d}"


def moving_average_cost(stock_before: float, cost_before: int, quantity: float, unit_cost: int) -> int:
    """
    Weighted average of what is on hand and what just arrived. With no
    positive stock on hand the new unit cost is taken as is.
    """
    if stock_before <= 0:
        return unit_cost
    value = Decimal(str(stock_before)) * cost_before + Decimal(str(quantity)) * unit_cost
    return round_half_up(value / (Decimal(str(stock_before)) + Decimal(str(quantity))))


def _payment_status(total: int, paid: int) -> str:
    if paid <= 0:
        return "unpaid"
    if paid >= total:
        return "paid"
    return "partial"


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise PurchaseError("a purchase needs at least one item")
    parsed = []
    for n, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise PurchaseError(f"item {n} must be an object")
        qty = raw.get("quantity")
        cost = raw.get("unit_cost_cents", 0)
        if isinstance(qty, bool) or not isinstance(qty, (int, float)) or qty <= 0:
            raise PurchaseError(f"item {n}: quantity must be > 0")
        if isinstance(cost, bool) or not isinstance(cost, int) or cost < 0:
            raise PurchaseError(f"item {n}: unit_cost_cents must be an integer >= 0")
        parsed.append({
            "product_id": parse_identifier(raw.get("product_id")),
            "quantity": float(qty),
            "unit_cost_cents": cost,
        })
    return parsed


def create_purchase(
    supplier_id,
    items: list[dict],
    *,
    discount_cents: int = 0,
    tax_cents: int = 0,
    paid_cents: int = 0,
    notes: str | None = None,
    created_by: str | None = None,
) -> dict:
    """
    Record goods received. Writes the purchase, its items, one 'purchase'
    ledger entry per item and the refreshed product costs atomically.
    """
    supplier_ref = parse_identifier(supplier_id)
    lines = _parse_items(items)
    for name, value in (("discount_cents", discount_cents), ("tax_cents", tax_cents), ("paid_cents", paid_cents)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise PurchaseError(f"{name} must be an integer >= 0")
    store = get_storage()

    def _op():
        with store.transaction():
            supplier = store.get("suppliers", supplier_ref)
            if not supplier.get("is_active", True):
                raise PurchaseError(f"supplier {supplier['name']} is inactive")

            products = {}
            for line in lines:
                product = store.lock_row("products", line["product_id"])
                if not product.get("is_active") or not product.get("is_purchasable"):
                    raise PurchaseError(
                        f"product {product['name']} cannot be purchased",
                        {"product_id": identifier_json(product["id"])},
                    )
                products[line["product_id"]] = product
                line["line_total_cents"] = round_half_up(Decimal(str(line["quantity"])) * line["unit_cost_cents"])

            subtotal = sum(line["line_total_cents"] for line in lines)
            if discount_cents > subtotal:
                raise PurchaseError("discount cannot exceed subtotal")
            total = subtotal - discount_cents + tax_cents
            if paid_cents > total:
                raise PurchaseError("paid amount cannot exceed total")

            purchase_id = store.insert("purchases", {
                "purchase_number": next_purchase_number(),
                "supplier_id": supplier["id"],
                "status": "received",
                "subtotal_cents": subtotal,
                "discount_cents": discount_cents,
                "tax_cents": tax_cents,
                "total_cents": total,
                "paid_cents": paid_cents,
                "outstanding_cents": total - paid_cents,
                "payment_status": _payment_status(total, paid_cents),
                "notes": notes,
                "created_by": created_by,
            })

            for line in lines:
                product = products[line["product_id"]]
                stock_before = current_stock(product["id"])
                store.insert("purchase_items", {
                    "purchase_id": purchase_id,
                    "product_id": product["id"],
                    "product_name": product["name"],
                    "quantity": line["quantity"],
                    "unit_cost_cents": line["unit_cost_cents"],
                    "line_total_cents": line["line_total_cents"],
                })
                append_entry(LedgerEntry(
                    product_id=product["id"],
                    transaction_type=TransactionType.PURCHASE,
                    quantity_in=line["quantity"],
                    unit_price_cents=line["unit_cost_cents"],
                    reference_type="purchase",
                    reference_id=purchase_id,
                    created_by=created_by,
                ))
                new_cost = moving_average_cost(
                    stock_before, product["cost_cents"], line["quantity"], line["unit_cost_cents"]
                )
                store.update("products", {"cost_cents": new_cost}, {"id": product["id"]})
                product["cost_cents"] = new_cost

            return get_purchase(purchase_id)

    return run_with_retry(_op)


def get_purchase(purchase_id) -> dict:
    store = get_storage()
    purchase = store.get("purchases", parse_identifier(purchase_id))
    purchase["items"] = store.query("purchase_items", {"purchase_id": purchase["id"]}, order_by=["id"])
    return purchase


def list_purchases(*, supplier_id=None, limit: int | None = 100, offset: int = 0) -> list[dict]:
    filt = {}
    if supplier_id is not None:
        filt["supplier_id"] = parse_identifier(supplier_id)
    return get_storage().query("purchases", filt, order_by=["-created_at", "-id"], limit=limit, offset=offset)


def record_purchase_payment(purchase_id, amount_cents: int) -> dict:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be an integer > 0")
    store = get_storage()

    def _op():
        with store.transaction():
            purchase = store.lock_row("purchases", parse_identifier(purchase_id))
            if amount_cents > purchase["outstanding_cents"]:
                raise PurchaseError(
                    f"payment {amount_cents} exceeds outstanding {purchase['outstanding_cents']}",
                    {"purchase_id": identifier_json(purchase["id"])},
                )
            paid = purchase["paid_cents"] + amount_cents
            store.update("purchases", {
                "paid_cents": paid,
                "outstanding_cents": purchase["total_cents"] - paid,
                "payment_status": _payment_status(purchase["total_cents"], paid),
            }, {"id": purchase["id"]})
            return get_purchase(purchase["id"])

    return run_with_retry(_op)
