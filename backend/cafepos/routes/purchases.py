# Overview: Flask API routes for suppliers and purchases.

from flask import Blueprint, request

from ..identity import row_to_json
from ..models import Supplier
from ..services import purchase_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import actor_id, json_errors, with_actor

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api")

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "is_active"},
    required_on_create={"name"},
)


def _purchase_json(purchase: dict) -> dict:
    out = row_to_json({k: v for k, v in purchase.items() if k != "items"})
    if "items" in purchase:
        out["items"] = [row_to_json(i) for i in purchase["items"]]
    return out


@purchases_bp.get("/suppliers")
@json_errors("list suppliers")
def list_suppliers_route():
    return {"suppliers": [row_to_json(r) for r in purchase_service.list_suppliers()]}


@purchases_bp.post("/suppliers")
@json_errors("create supplier")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    return {"supplier": row_to_json(purchase_service.create_supplier(patch))}, 201


@purchases_bp.get("/purchases")
@json_errors("list purchases")
def list_purchases_route():
    rows = purchase_service.list_purchases(
        supplier_id=request.args.get("supplier_id") or None,
        limit=request.args.get("limit", default=100, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return {"purchases": [_purchase_json(r) for r in rows]}


@purchases_bp.post("/purchases")
@with_actor
@json_errors("create purchase")
def create_purchase_route():
    payload = request.get_json(silent=True) or {}
    if payload.get("supplier_id") is None:
        raise ValidationError("supplier_id is required")
    purchase = purchase_service.create_purchase(
        payload["supplier_id"],
        payload.get("items"),
        discount_cents=payload.get("discount_cents", 0),
        tax_cents=payload.get("tax_cents", 0),
        paid_cents=payload.get("paid_cents", 0),
        notes=payload.get("notes"),
        created_by=actor_id(),
    )
    return {"purchase": _purchase_json(purchase)}, 201


@purchases_bp.get("/purchases/<purchase_id>")
@json_errors("load purchase")
def get_purchase_route(purchase_id: str):
    return {"purchase": _purchase_json(purchase_service.get_purchase(purchase_id))}


@purchases_bp.post("/purchases/<purchase_id>/payments")
@json_errors("record purchase payment")
def purchase_payment_route(purchase_id: str):
    payload = request.get_json(silent=True) or {}
    purchase = purchase_service.record_purchase_payment(purchase_id, payload.get("amount_cents"))
    return {"purchase": _purchase_json(purchase)}, 201
