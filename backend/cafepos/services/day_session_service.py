# Overview: Business-day open/close with totals taken from the payments in the session window.

from __future__ import annotations

from ..identity import parse_identifier
from ..storage import Range, get_storage
from ..time_utils import now_ms
from ..validation import ConflictError, ValidationError
from .concurrency import run_with_retry

OPEN = "open"
CLOSED = "closed"


def _check_cash(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be an integer >= 0")
    return value


def current_day() -> dict | None:
    rows = get_storage().query("day_sessions", {"status": OPEN}, order_by=["-opened_at"], limit=1)
    return rows[0] if rows else None


def open_day(opening_cash_cents: int = 0, *, notes: str | None = None, opened_by: str | None = None) -> dict:
    opening = _check_cash(opening_cash_cents, "opening_cash_cents")
    store = get_storage()

    def _op():
        with store.transaction():
            if store.count("day_sessions", {"status": OPEN}):
                raise ConflictError("a day session is already open")
            new_id = store.insert("day_sessions", {
                "status": OPEN,
                "opened_at": now_ms(),
                "opening_cash_cents": opening,
                "opened_by": opened_by,
                "notes": notes,
            })
            return store.get("day_sessions", new_id)

    return run_with_retry(_op)


def session_totals(start_ms: int, end_ms: int) -> dict:
    """Per-method payment totals and order count for [start_ms, end_ms]."""
    payments = get_storage().query("payments", {"created_at": Range(gte=start_ms, lte=end_ms)})
    totals = {"cash": 0, "card": 0, "digital": 0, "credit": 0}
    sales = 0
    orders = set()
    for p in payments:
        totals[p["method"]] = totals.get(p["method"], 0) + p["amount_cents"]
        if not p.get("is_settlement"):
            sales += p["amount_cents"]
            orders.add(p["order_id"])
    return {
        "total_sales_cents": sales,
        "cash_total_cents": totals["cash"],
        "card_total_cents": totals["card"],
        "digital_total_cents": totals["digital"],
        "credit_total_cents": totals["credit"],
        "order_count": len(orders),
    }


def close_day(
    session_id=None,
    *,
    closing_cash_cents: int,
    notes: str | None = None,
    closed_by: str | None = None,
) -> dict:
    closing = _check_cash(closing_cash_cents, "closing_cash_cents")
    store = get_storage()

    def _op():
        with store.transaction():
            if session_id is None:
                session = current_day()
                if session is None:
                    raise ValidationError("no open day session")
                session = store.lock_row("day_sessions", session["id"])
            else:
                session = store.lock_row("day_sessions", parse_identifier(session_id))
            if session["status"] != OPEN:
                raise ValidationError("day session is already closed")

            closed_at = now_ms()
            patch = session_totals(session["opened_at"], closed_at)
            patch.update({
                "status": CLOSED,
                "closed_at": closed_at,
                "closing_cash_cents": closing,
                "closed_by": closed_by,
            })
            if notes is not None:
                patch["notes"] = notes
            store.update("day_sessions", patch, {"id": session["id"]})
            result = store.get("day_sessions", session["id"])
            result["expected_cash_cents"] = session["opening_cash_cents"] + patch["cash_total_cents"]
            return result

    return run_with_retry(_op)
