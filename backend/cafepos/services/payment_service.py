# Overview: Taking payment for orders; posts sale ledger entries and credit in the same transaction.

from __future__ import annotations

from ..identity import identifier_json, parse_identifier, parse_optional_identifier
from ..storage import get_storage
from ..time_utils import now_ms
from ..validation import ValidationError
from . import table_service
from .concurrency import run_with_retry
from .credit_service import CreditType, post_credit_transaction
from .ledger_service import LedgerEntry, TransactionType, append_entry, tracked_products
from .order_service import (
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    OrderError,
    amount_due,
)

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_DIGITAL = "digital"
METHOD_CREDIT = "credit"
PAYMENT_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_DIGITAL, METHOD_CREDIT)
SETTLEMENT_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_DIGITAL)


def _check_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")
    return amount_cents


def _post_sale_entries(order: dict, items: list[dict], created_by: str | None) -> int:
    """
    One 'sale' entry per item whose product is stock-tracked (has ledger
    history). Skipped when the order already has sale entries.
    """
    store = get_storage()
    already = store.count("inventory_ledger", {
        "reference_type": "order",
        "reference_id": order["id"],
        "transaction_type": TransactionType.SALE.value,
    })
    if already:
        return 0
    tracked = tracked_products(i["product_id"] for i in items)
    posted = 0
    for item in items:
        if item["product_id"] not in tracked:
            continue
        append_entry(LedgerEntry(
            product_id=item["product_id"],
            transaction_type=TransactionType.SALE,
            quantity_out=item["quantity"],
            unit_price_cents=item["unit_price_cents"],
            reference_type="order",
            reference_id=order["id"],
            note=order["order_number"],
            created_by=created_by,
        ))
        posted += 1
    return posted


def _status_after(order: dict, paid: int, credit: int) -> dict:
    due = order["total_cents"] - paid - credit
    patch = {
        "paid_cents": paid,
        "credit_cents": credit,
        "payment_status": PAYMENT_PAID if due == 0 and credit == 0 else PAYMENT_PARTIAL,
        "status": STATUS_COMPLETED if due == 0 else STATUS_CONFIRMED,
    }
    if due == 0 and order.get("completed_at") is None:
        patch["completed_at"] = now_ms()
    return patch


def complete_payment(
    order_id,
    method: str,
    amount_cents: int,
    *,
    customer_id=None,
    transaction_ref: str | None = None,
    created_by: str | None = None,
) -> dict:
    """
    Take one payment against what is still due on an order.

    cash            amount may exceed due; the difference is recorded as change
    card / digital  amount must not exceed due
    credit          amount (<= due) is booked to the customer's credit account

    The payment row, order totals/status, sale ledger entries (first payment
    only) and any credit transaction are written in one transaction. An
    order with nothing left due is completed and frees its table.
    """
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"method must be one of {', '.join(PAYMENT_METHODS)}")
    amount = _check_amount(amount_cents)
    customer_ref = parse_optional_identifier(customer_id)
    store = get_storage()

    def _op():
        with store.transaction():
            order = store.lock_row("orders", parse_identifier(order_id))
            details = {"order_id": identifier_json(order["id"]), "status": order["status"]}
            if order["status"] == STATUS_COMPLETED:
                raise OrderError("order is already completed", details)
            items = store.query("order_items", {"order_id": order["id"]})
            if not items:
                raise OrderError("order has no items", details)

            due = amount_due(order)
            if due <= 0:
                raise OrderError("nothing due on this order", details)

            change = 0
            applied = amount
            if amount > due:
                if method != METHOD_CASH:
                    raise ValidationError(f"{method} payment {amount} exceeds amount due {due}")
                change = amount - due
                applied = due

            first_payment = order["paid_cents"] == 0 and order["credit_cents"] == 0
            paid = order["paid_cents"]
            credit = order["credit_cents"]
            customer_row = None

            if method == METHOD_CREDIT:
                customer = customer_ref if customer_ref is not None else order.get("customer_id")
                if customer is None:
                    raise ValidationError("credit payments require a customer")
                customer_row = store.get("customers", customer)
                post_credit_transaction(
                    customer_row["id"],
                    CreditType.CREDIT,
                    applied,
                    note=f"order {order['order_number']}",
                    order_id=order["id"],
                    created_by=created_by,
                )
                credit += applied
            else:
                paid += applied

            store.insert("payments", {
                "order_id": order["id"],
                "method": method,
                "amount_cents": applied,
                "change_cents": change,
                "transaction_ref": transaction_ref,
                "created_by": created_by,
            })

            if first_payment:
                _post_sale_entries(order, items, created_by)

            patch = _status_after(order, paid, credit)
            if customer_row is not None and order.get("customer_id") is None:
                patch["customer_id"] = customer_row["id"]
            store.update("orders", patch, {"id": order["id"]})
            if patch["status"] == STATUS_COMPLETED and order.get("table_id") is not None:
                table_service.release_table(order["table_id"], order["id"])

            result = store.get("orders", order["id"])
            result["change_cents"] = change
            return result

    return run_with_retry(_op)


def pay_order_credit(
    order_id,
    amount_cents: int,
    *,
    method: str = METHOD_CASH,
    transaction_ref: str | None = None,
    created_by: str | None = None,
) -> dict:
    """Settle (part of) the amount an order left on the customer's credit."""
    if method not in SETTLEMENT_METHODS:
        raise ValidationError(f"method must be one of {', '.join(SETTLEMENT_METHODS)}")
    amount = _check_amount(amount_cents)
    store = get_storage()

    def _op():
        with store.transaction():
            order = store.lock_row("orders", parse_identifier(order_id))
            if amount > order["credit_cents"]:
                raise ValidationError(
                    f"amount {amount} exceeds credit outstanding on order ({order['credit_cents']})"
                )
            if order.get("customer_id") is None:
                raise OrderError("order has no customer", {"order_id": identifier_json(order["id"])})

            post_credit_transaction(
                order["customer_id"],
                CreditType.PAYMENT,
                amount,
                note=f"settlement for order {order['order_number']}",
                order_id=order["id"],
                created_by=created_by,
            )
            store.insert("payments", {
                "order_id": order["id"],
                "method": method,
                "amount_cents": amount,
                "change_cents": 0,
                "is_settlement": True,
                "transaction_ref": transaction_ref,
                "created_by": created_by,
            })
            patch = _status_after(order, order["paid_cents"] + amount, order["credit_cents"] - amount)
            store.update("orders", patch, {"id": order["id"]})
            return store.get("orders", order["id"])

    return run_with_retry(_op)
