# Overview: Customer records. The credit balance column is owned by credit_service.

from __future__ import annotations

from ..identity import parse_identifier
from ..storage import get_storage
from ..validation import ValidationError

_SERVICE_OWNED = frozenset({"credit_balance_cents"})


def create_customer(values: dict) -> dict:
    if _SERVICE_OWNED & values.keys():
        raise ValidationError("credit_balance_cents is maintained by credit transactions")
    if values.get("credit_limit_cents") is not None and values["credit_limit_cents"] < 0:
        raise ValidationError("credit_limit_cents must be >= 0")
    store = get_storage()
    new_id = store.insert("customers", {**values, "credit_balance_cents": 0})
    return store.get("customers", new_id)


def get_customer(customer_id) -> dict:
    """Raises NotFoundError; there is no fallback to some other customer."""
    return get_storage().get("customers", parse_identifier(customer_id))


def list_customers(*, active_only: bool = True, search: str | None = None) -> list[dict]:
    filt = {"is_active": True} if active_only else {}
    rows = get_storage().query("customers", filt, order_by=["name", "id"])
    if search:
        needle = search.strip().lower()
        rows = [
            r for r in rows
            if needle in (r.get("name") or "").lower() or needle in (r.get("phone") or "")
        ]
    return rows


def update_customer(customer_id, values: dict) -> dict:
    if _SERVICE_OWNED & values.keys():
        raise ValidationError("credit_balance_cents is maintained by credit transactions")
    if values.get("credit_limit_cents") is not None and values["credit_limit_cents"] < 0:
        raise ValidationError("credit_limit_cents must be >= 0")
    store = get_storage()
    customer = store.get("customers", parse_identifier(customer_id))
    if values:
        store.update("customers", values, {"id": customer["id"]})
    return store.get("customers", customer["id"])
