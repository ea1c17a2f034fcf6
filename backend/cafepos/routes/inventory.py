# backend/cafepos/routes/inventory.py
"""
Inventory routes.

Stock is never written directly: every route here either reads the ledger
or appends to it through ledger_service.
"""
from flask import Blueprint, request

from ..identity import identifier_json
from ..models import InventoryLedgerEntry
from ..services import ledger_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import actor_id, json_errors, with_actor

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "transaction_type",
        "quantity_in",
        "quantity_out",
        "unit_price_cents",
        "reference_type",
        "reference_id",
        "note",
    },
    required_on_create={"product_id", "transaction_type"},
)


def _number(payload: dict, key: str):
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    return value


@inventory_bp.get("/<product_id>/stock")
@json_errors("load stock")
def stock_route(product_id: str):
    return {"product_id": product_id, "stock": ledger_service.current_stock(product_id)}


@inventory_bp.get("/stock")
@json_errors("load stock levels")
def stock_batch_route():
    raw = request.args.get("product_ids", "")
    ids = [part for part in raw.split(",") if part.strip()]
    if not ids:
        raise ValidationError("product_ids is required")
    levels = ledger_service.current_stock_batch(ids)
    return {"stock": [{"product_id": identifier_json(pid), "stock": qty} for pid, qty in levels.items()]}


@inventory_bp.get("/<product_id>/history")
@json_errors("load ledger history")
def history_route(product_id: str):
    limit = request.args.get("limit", default=50, type=int)
    offset = request.args.get("offset", default=0, type=int)
    entries = ledger_service.history(product_id, limit=limit, offset=offset)
    return {"entries": [e.to_dict() for e in entries], "limit": limit, "offset": offset}


@inventory_bp.post("/entries")
@with_actor
@json_errors("append ledger entry")
def append_entry_route():
    """Append one movement (purchase, sale, adjustment, return, correction)."""
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(
        model=InventoryLedgerEntry,
        payload=payload,
        policy=MOVEMENT_POLICY,
        partial=False,
    )
    entry = ledger_service.append_entry(ledger_service.LedgerEntry(
        product_id=patch["product_id"],
        transaction_type=ledger_service.parse_transaction_type(patch["transaction_type"]),
        quantity_in=patch.get("quantity_in") or 0.0,
        quantity_out=patch.get("quantity_out") or 0.0,
        unit_price_cents=patch.get("unit_price_cents"),
        reference_type=patch.get("reference_type"),
        reference_id=patch.get("reference_id"),
        note=patch.get("note"),
        created_by=actor_id(),
    ))
    return {"entry": entry.to_dict(), "stock": ledger_service.current_stock(entry.product_id)}, 201


@inventory_bp.post("/<product_id>/adjust")
@with_actor
@json_errors("adjust stock")
def adjust_route(product_id: str):
    """Set stock to a counted quantity. A matching count writes nothing."""
    payload = request.get_json(silent=True) or {}
    entry = ledger_service.adjust_to_quantity(
        product_id,
        _number(payload, "quantity"),
        note=payload.get("note"),
        created_by=actor_id(),
    )
    body = {
        "entry": entry.to_dict() if entry else None,
        "stock": ledger_service.current_stock(product_id),
    }
    return body, 201 if entry else 200


@inventory_bp.post("/entries/<entry_id>/reverse")
@with_actor
@json_errors("reverse ledger entry")
def reverse_route(entry_id: str):
    payload = request.get_json(silent=True) or {}
    entry = ledger_service.reverse_entry(entry_id, reason=payload.get("reason"), created_by=actor_id())
    return {"entry": entry.to_dict(), "stock": ledger_service.current_stock(entry.product_id)}, 201
