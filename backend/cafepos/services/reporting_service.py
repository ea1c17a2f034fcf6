# Overview: Read-only reports over orders, payments, stock and credit.

from __future__ import annotations

from flask import current_app

from ..storage import Range, get_storage
from .credit_service import credit_statement
from .day_session_service import session_totals
from .expense_service import total_expenses
from ..validation import ValidationError
from .ledger_service import stock_by_product
from .order_service import STATUS_COMPLETED


def sales_summary(start_ms: int, end_ms: int) -> dict:
    """
    Completed orders created in [start_ms, end_ms], payments taken and
    expenses booked in the window. net_profit = net sales - expenses.
    """
    if start_ms > end_ms:
        raise ValidationError("start must be before end")
    orders = get_storage().query("orders", {
        "status": STATUS_COMPLETED,
        "created_at": Range(gte=start_ms, lte=end_ms),
    })
    gross = sum(o["subtotal_cents"] for o in orders)
    discount = sum(o["discount_cents"] for o in orders)
    tax = sum(o["tax_cents"] for o in orders)
    payments = session_totals(start_ms, end_ms)
    expenses = total_expenses(start_ms, end_ms)
    return {
        "order_count": len(orders),
        "gross_cents": gross,
        "discount_cents": discount,
        "tax_cents": tax,
        "net_cents": gross - discount + tax,
        "expenses_cents": expenses,
        "net_profit_cents": gross - discount + tax - expenses,
        "credit_outstanding_cents": sum(o["credit_cents"] for o in orders),
        "payments": {
            "cash": payments["cash_total_cents"],
            "card": payments["card_total_cents"],
            "digital": payments["digital_total_cents"],
            "credit": payments["credit_total_cents"],
        },
    }


def low_stock_report(threshold: float | None = None) -> list[dict]:
    """
    Active products that are purchasable or stock-tracked with derived stock
    at or below threshold. Negative stock is included and flagged.
    """
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    products = get_storage().query("products", {"is_active": True}, order_by=["name", "id"])
    if not products:
        return []
    ids = [p["id"] for p in products]
    stock = stock_by_product(ids)

    report = []
    for p in products:
        if not p.get("is_purchasable") and p["id"] not in stock:
            continue
        qty = stock.get(p["id"], 0.0)
        if qty <= threshold:
            report.append({
                "product_id": p["id"],
                "name": p["name"],
                "stock": qty,
                "negative": qty < 0,
                "cost_cents": p.get("cost_cents"),
            })
    report.sort(key=lambda r: r["stock"])
    return report


def customer_credit_statement(customer_id) -> dict:
    return credit_statement(customer_id)
