# Overview: Flask API routes for operating expenses.

from flask import Blueprint, request

from ..identity import row_to_json
from ..services import expense_service
from ..time_utils import parse_iso_to_ms
from ..validation import ValidationError
from ..decorators import actor_id, json_errors, with_actor

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@json_errors("list expenses")
def list_expenses_route():
    try:
        start = parse_iso_to_ms(request.args.get("start"))
        end = parse_iso_to_ms(request.args.get("end"))
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    rows = expense_service.list_expenses(
        start_ms=start,
        end_ms=end,
        category=request.args.get("category") or None,
        limit=request.args.get("limit", default=100, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return {"expenses": [row_to_json(r) for r in rows]}


@expenses_bp.post("")
@with_actor
@json_errors("create expense")
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    expense = expense_service.create_expense(payload, created_by=actor_id())
    return {"expense": row_to_json(expense)}, 201


@expenses_bp.get("/<expense_id>")
@json_errors("load expense")
def get_expense_route(expense_id: str):
    return {"expense": row_to_json(expense_service.get_expense(expense_id))}


@expenses_bp.patch("/<expense_id>")
@json_errors("update expense")
def update_expense_route(expense_id: str):
    payload = request.get_json(silent=True) or {}
    return {"expense": row_to_json(expense_service.update_expense(expense_id, payload))}


@expenses_bp.delete("/<expense_id>")
@json_errors("delete expense")
def delete_expense_route(expense_id: str):
    expense_service.delete_expense(expense_id)
    return {"deleted": True}
