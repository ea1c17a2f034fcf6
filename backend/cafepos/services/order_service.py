# Overview: Order entry; totals are always recomputed from the items.

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app

from ..identity import identifier_json, parse_identifier, parse_optional_identifier
from ..storage import Range, get_storage
from ..time_utils import day_bounds_ms, now_ms
from ..validation import ConflictError, NotFoundError, ValidationError
from . import table_service
from .concurrency import run_with_retry

ORDER_TYPES = ("dine_in", "takeaway")

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"

PAYMENT_UNPAID = "unpaid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"

ORDER_NUMBER_RE = re.compile(r"^ORD (\d{6})/(\d{3,})$")


class OrderError(ValidationError):
    """Raised when an order operation breaks a business rule."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_line_total(quantity: float, unit_price_cents: int) -> int:
    return round_half_up(Decimal(str(quantity)) * Decimal(unit_price_cents))


def compute_totals(items: list[dict], discount_percent: float, tax_rate_bps: int) -> dict:
    """Pure: subtotal, discount, tax and total in cents."""
    subtotal = sum(int(i["line_total_cents"]) for i in items)
    discount = round_half_up(Decimal(subtotal) * Decimal(str(discount_percent or 0)) / Decimal(100))
    taxable = subtotal - discount
    tax = round_half_up(Decimal(taxable) * Decimal(tax_rate_bps or 0) / Decimal(10_000))
    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "tax_cents": tax,
        "total_cents": taxable + tax,
    }


def amount_due(order: dict) -> int:
    return order["total_cents"] - order["paid_cents"] - order["credit_cents"]


def _business_timezone() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def next_order_number(at_ms: int | None = None) -> str:
    """ORD yymmdd/NNN, NNN restarting at 001 each business day."""
    at_ms = now_ms() if at_ms is None else at_ms
    start, end, local = day_bounds_ms(at_ms, _business_timezone())
    day_code = local.strftime("%y%m%d")
    rows = get_storage().query("orders", {"created_at": Range(gte=start, lte=end)})
    highest = 0
    for row in rows:
        match = ORDER_NUMBER_RE.match(row.get("order_number") or "")
        if match and match.group(1) == day_code:
            highest = max(highest, int(match.group(2)))
    return f"ORD {day_code}/{highest + 1:03d}"


def _items(order_id) -> list[dict]:
    return get_storage().query("order_items", {"order_id": order_id}, order_by=["created_at", "id"])


def _recalculate(order: dict) -> dict:
    store = get_storage()
    totals = compute_totals(_items(order["id"]), order["discount_percent"], order["tax_rate_bps"])
    store.update("orders", totals, {"id": order["id"]})
    return store.get("orders", order["id"])


def _lock_editable(order_id) -> dict:
    order = get_storage().lock_row("orders", parse_identifier(order_id))
    if order["status"] == STATUS_COMPLETED:
        raise OrderError("order is completed", {"order_id": identifier_json(order["id"])})
    if order["payment_status"] != PAYMENT_UNPAID:
        # Sale entries were posted with the first payment
        raise OrderError("items cannot change after a payment", {"order_id": identifier_json(order["id"])})
    return order


def create_order(
    *,
    order_type: str = "dine_in",
    table_id=None,
    customer_id=None,
    notes: str | None = None,
    created_by: str | None = None,
) -> dict:
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"order_type must be one of {', '.join(ORDER_TYPES)}")
    table_ref = parse_optional_identifier(table_id)
    if order_type == "dine_in" and table_ref is None:
        raise ValidationError("table_id is required for dine_in orders")
    if order_type == "takeaway" and table_ref is not None:
        raise ValidationError("takeaway orders cannot have a table")
    customer_ref = parse_optional_identifier(customer_id)
    store = get_storage()

    def _op():
        with store.transaction():
            customer = store.get("customers", customer_ref) if customer_ref is not None else None
            table = table_service.check_available(table_ref) if table_ref is not None else None
            new_id = store.insert("orders", {
                "order_number": next_order_number(),
                "order_type": order_type,
                "table_id": table["id"] if table else None,
                "customer_id": customer["id"] if customer else None,
                "status": STATUS_PENDING,
                "payment_status": PAYMENT_UNPAID,
                "tax_rate_bps": current_app.config.get("DEFAULT_TAX_RATE_BPS", 0),
                "notes": notes,
                "created_by": created_by,
            })
            if table is not None:
                try:
                    table_service.occupy_table(table["id"], new_id)
                except (ConflictError, ValidationError):
                    # lost the table between the check and the claim
                    store.delete("orders", {"id": new_id})
                    raise
            return store.get("orders", new_id)

    return run_with_retry(_op)


def get_order(order_id) -> dict:
    store = get_storage()
    order = store.get("orders", parse_identifier(order_id))
    order["items"] = _items(order["id"])
    order["payments"] = store.query("payments", {"order_id": order["id"]}, order_by=["created_at", "id"])
    return order


def list_orders(
    *,
    status: str | None = None,
    start_ms: int | None = None,
    end_ms: int | None = None,
    limit: int | None = 100,
    offset: int = 0,
) -> list[dict]:
    filt: dict = {}
    if status is not None:
        filt["status"] = status
    if start_ms is not None or end_ms is not None:
        filt["created_at"] = Range(gte=start_ms, lte=end_ms)
    return get_storage().query("orders", filt, order_by=["-created_at", "-id"], limit=limit, offset=offset)


def _check_quantity(quantity) -> float:
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
        raise ValidationError("quantity must be a number")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return float(quantity)


def add_item(order_id, product_id, quantity: float = 1, *, notes: str | None = None) -> dict:
    """Add a sellable product; the same product twice merges into one line."""
    qty = _check_quantity(quantity)
    store = get_storage()

    def _op():
        with store.transaction():
            order = _lock_editable(order_id)
            product = store.get("products", parse_identifier(product_id))
            if not product.get("is_active") or not product.get("is_sellable"):
                raise OrderError(f"product {product['name']} is not available for sale")

            existing = store.query("order_items", {"order_id": order["id"], "product_id": product["id"]}, limit=1)
            if existing:
                item = existing[0]
                new_qty = round(item["quantity"] + qty, 3)
                store.update("order_items", {
                    "quantity": new_qty,
                    "line_total_cents": compute_line_total(new_qty, item["unit_price_cents"]),
                }, {"id": item["id"]})
            else:
                store.insert("order_items", {
                    "order_id": order["id"],
                    "product_id": product["id"],
                    "product_name": product["name"],
                    "quantity": qty,
                    "unit_price_cents": product["price_cents"],
                    "line_total_cents": compute_line_total(qty, product["price_cents"]),
                    "notes": notes,
                })
            return _recalculate(order)

    return run_with_retry(_op)


def _order_item(order: dict, item_id) -> dict:
    store = get_storage()
    rows = store.query("order_items", {"id": parse_identifier(item_id), "order_id": order["id"]}, limit=1)
    if not rows:
        raise NotFoundError(f"item {item_id} not found on order {order['order_number']}")
    return rows[0]


def update_item_quantity(order_id, item_id, quantity: float) -> dict:
    """Quantity 0 removes the line."""
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)) or quantity < 0:
        raise ValidationError("quantity must be >= 0")
    store = get_storage()

    def _op():
        with store.transaction():
            order = _lock_editable(order_id)
            item = _order_item(order, item_id)
            if quantity == 0:
                store.delete("order_items", {"id": item["id"]})
            else:
                store.update("order_items", {
                    "quantity": float(quantity),
                    "line_total_cents": compute_line_total(quantity, item["unit_price_cents"]),
                }, {"id": item["id"]})
            return _recalculate(order)

    return run_with_retry(_op)


def remove_item(order_id, item_id) -> dict:
    return update_item_quantity(order_id, item_id, 0)


def apply_discount(order_id, discount_percent: float) -> dict:
    if isinstance(discount_percent, bool) or not isinstance(discount_percent, (int, float)):
        raise ValidationError("discount_percent must be a number")
    max_percent = current_app.config.get("MAX_DISCOUNT_PERCENT", 100)
    if discount_percent < 0 or discount_percent > max_percent:
        raise ValidationError(f"discount_percent must be between 0 and {max_percent}")
    store = get_storage()

    def _op():
        with store.transaction():
            order = _lock_editable(order_id)
            store.update("orders", {"discount_percent": float(discount_percent)}, {"id": order["id"]})
            return _recalculate(store.get("orders", order["id"]))

    return run_with_retry(_op)


def confirm_order(order_id) -> dict:
    """Send to the kitchen: pending -> confirmed."""
    store = get_storage()
    with store.transaction():
        order = store.lock_row("orders", parse_identifier(order_id))
        if order["status"] != STATUS_PENDING:
            raise OrderError(f"cannot confirm a {order['status']} order")
        if not _items(order["id"]):
            raise OrderError("cannot confirm an order without items")
        store.update("orders", {"status": STATUS_CONFIRMED}, {"id": order["id"]})
        return store.get("orders", order["id"])


def cancel_order(order_id) -> None:
    """
    Delete a pending order that has taken no payment, with its items.

    The final delete re-checks status and payment state in its own filter,
    so a payment that lands first makes the cancel fail instead of erasing
    a paid order.
    """
    store = get_storage()

    def _op():
        with store.transaction():
            order = store.lock_row("orders", parse_identifier(order_id))
            details = {"order_id": identifier_json(order["id"]), "status": order["status"]}
            if order["status"] != STATUS_PENDING:
                raise OrderError("only pending orders can be cancelled", details)
            if order["paid_cents"] or order["credit_cents"] or store.count("payments", {"order_id": order["id"]}):
                raise OrderError("orders with payments cannot be cancelled", details)

            deleted = store.delete("orders", {
                "id": order["id"],
                "status": STATUS_PENDING,
                "payment_status": PAYMENT_UNPAID,
                "paid_cents": 0,
                "credit_cents": 0,
            })
            if deleted == 0:
                raise OrderError("order changed while cancelling", details)
            store.delete("order_items", {"order_id": order["id"]})
            if order.get("table_id") is not None:
                table_service.release_table(order["table_id"], order["id"])

    run_with_retry(_op)
