# Overview: Operating expenses; money out that never touches stock.

from __future__ import annotations

import re

from flask import current_app

from ..identity import parse_identifier
from ..storage import Range, get_storage
from ..time_utils import day_bounds_ms, now_ms
from ..validation import ValidationError
from .concurrency import run_with_retry

EXPENSE_NUMBER_RE = re.compile(r"^EXP (\d{6})/(\d{3,})$")

PAYMENT_METHODS = ("cash", "card", "bank_transfer", "other")

EDITABLE_FIELDS = frozenset({"title", "category", "amount_cents", "payment_method", "notes"})


def next_expense_number(at_ms: int | None = None) -> str:
    """EXP yymmdd/NNN, NNN restarting at 001 each business day."""
    at_ms = now_ms() if at_ms is None else at_ms
    start, end, local = day_bounds_ms(at_ms, current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    day_code = local.strftime("%y%m%d")
    highest = 0
    for row in get_storage().query("expenses", {"created_at": Range(gte=start, lte=end)}):
        match = EXPENSE_NUMBER_RE.match(row.get("expense_number") or "")
        if match and match.group(1) == day_code:
            highest = max(highest, int(match.group(2)))
    return f"EXP {day_code}/{highest + 1:03d}"


def _check_values(values: dict, *, partial: bool) -> dict:
    unknown = sorted(k for k in values if k not in EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")
    clean = dict(values)
    if not partial or "title" in values:
        clean["title"] = (values.get("title") or "").strip()
        if not clean["title"]:
            raise ValidationError("title is required")
    if not partial or "amount_cents" in values:
        amount = values.get("amount_cents")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount_cents must be an integer > 0")
    if not partial or "payment_method" in values:
        clean["payment_method"] = values.get("payment_method") or "cash"
        if clean["payment_method"] not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    return clean


def create_expense(values: dict, *, created_by: str | None = None) -> dict:
    clean = _check_values(values, partial=False)
    store = get_storage()

    def _op():
        with store.transaction():
            new_id = store.insert("expenses", {
                **clean,
                "expense_number": next_expense_number(),
                "created_by": created_by,
            })
            return store.get("expenses", new_id)

    return run_with_retry(_op)


def update_expense(expense_id, values: dict) -> dict:
    clean = _check_values(values, partial=True)
    store = get_storage()
    expense = store.get("expenses", parse_identifier(expense_id))
    if clean:
        store.update("expenses", clean, {"id": expense["id"]})
    return store.get("expenses", expense["id"])


def delete_expense(expense_id) -> None:
    store = get_storage()
    expense = store.get("expenses", parse_identifier(expense_id))
    store.delete("expenses", {"id": expense["id"]})


def get_expense(expense_id) -> dict:
    return get_storage().get("expenses", parse_identifier(expense_id))


def list_expenses(
    *,
    start_ms: int | None = None,
    end_ms: int | None = None,
    category: str | None = None,
    limit: int | None = 100,
    offset: int = 0,
) -> list[dict]:
    """Newest first; both bounds inclusive."""
    filt: dict = {}
    if start_ms is not None or end_ms is not None:
        if start_ms is not None and end_ms is not None and start_ms > end_ms:
            raise ValidationError("start must be before end")
        filt["created_at"] = Range(gte=start_ms, lte=end_ms)
    if category is not None:
        filt["category"] = category
    return get_storage().query("expenses", filt, order_by=["-created_at", "-id"], limit=limit, offset=offset)


def total_expenses(start_ms: int, end_ms: int) -> int:
    rows = get_storage().query("expenses", {"created_at": Range(gte=start_ms, lte=end_ms)})
    return sum(r["amount_cents"] for r in rows)
