# Overview: Flask API routes for orders, items and payments; parses input and returns JSON responses.

from flask import Blueprint, request

from ..identity import row_to_json
from ..services import order_service, payment_service
from ..validation import ValidationError
from ..decorators import actor_id, json_errors, with_actor

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_json(order: dict) -> dict:
    out = row_to_json({k: v for k, v in order.items() if k not in ("items", "payments")})
    out["amount_due_cents"] = order_service.amount_due(order)
    if "items" in order:
        out["items"] = [row_to_json(i) for i in order["items"]]
    if "payments" in order:
        out["payments"] = [row_to_json(p) for p in order["payments"]]
    return out


def _required(payload: dict, key: str):
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    return payload[key]


@orders_bp.post("")
@with_actor
@json_errors("create order")
def create_order_route():
    payload = request.get_json(silent=True) or {}
    order = order_service.create_order(
        order_type=payload.get("order_type", "dine_in"),
        table_id=payload.get("table_id"),
        customer_id=payload.get("customer_id"),
        notes=payload.get("notes"),
        created_by=actor_id(),
    )
    return {"order": _order_json(order)}, 201


@orders_bp.get("")
@json_errors("list orders")
def list_orders_route():
    orders = order_service.list_orders(
        status=request.args.get("status") or None,
        limit=request.args.get("limit", default=100, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return {"orders": [_order_json(o) for o in orders]}


@orders_bp.get("/<order_id>")
@json_errors("load order")
def get_order_route(order_id: str):
    return {"order": _order_json(order_service.get_order(order_id))}


@orders_bp.post("/<order_id>/items")
@json_errors("add order item")
def add_item_route(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = order_service.add_item(
        order_id,
        _required(payload, "product_id"),
        payload.get("quantity", 1),
        notes=payload.get("notes"),
    )
    return {"order": _order_json(order_service.get_order(order["id"]))}, 201


@orders_bp.patch("/<order_id>/items/<item_id>")
@json_errors("update order item")
def update_item_route(order_id: str, item_id: str):
    payload = request.get_json(silent=True) or {}
    order = order_service.update_item_quantity(order_id, item_id, _required(payload, "quantity"))
    return {"order": _order_json(order_service.get_order(order["id"]))}


@orders_bp.delete("/<order_id>/items/<item_id>")
@json_errors("remove order item")
def remove_item_route(order_id: str, item_id: str):
    order = order_service.remove_item(order_id, item_id)
    return {"order": _order_json(order_service.get_order(order["id"]))}


@orders_bp.post("/<order_id>/discount")
@json_errors("apply discount")
def discount_route(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = order_service.apply_discount(order_id, _required(payload, "discount_percent"))
    return {"order": _order_json(order)}


@orders_bp.post("/<order_id>/confirm")
@json_errors("confirm order")
def confirm_route(order_id: str):
    return {"order": _order_json(order_service.confirm_order(order_id))}


@orders_bp.post("/<order_id>/cancel")
@json_errors("cancel order")
def cancel_route(order_id: str):
    order_service.cancel_order(order_id)
    return {"cancelled": True}


@orders_bp.post("/<order_id>/payments")
@with_actor
@json_errors("record payment")
def payment_route(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = payment_service.complete_payment(
        order_id,
        _required(payload, "method"),
        _required(payload, "amount_cents"),
        customer_id=payload.get("customer_id"),
        transaction_ref=payload.get("transaction_ref"),
        created_by=actor_id(),
    )
    change = order.pop("change_cents", 0)
    return {"order": _order_json(order), "change_cents": change}, 201


@orders_bp.post("/<order_id>/credit-payments")
@with_actor
@json_errors("settle order credit")
def credit_payment_route(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = payment_service.pay_order_credit(
        order_id,
        _required(payload, "amount_cents"),
        method=payload.get("method", payment_service.METHOD_CASH),
        transaction_ref=payload.get("transaction_ref"),
        created_by=actor_id(),
    )
    return {"order": _order_json(order)}, 201
