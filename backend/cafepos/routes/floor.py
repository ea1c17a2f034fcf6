# Overview: Flask API routes for dining tables and business-day sessions.

from flask import Blueprint, request

from ..identity import row_to_json
from ..models import DiningTable
from ..services import day_session_service, table_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import actor_id, json_errors, with_actor

floor_bp = Blueprint("floor", __name__, url_prefix="/api")

TABLE_POLICY = ModelValidationPolicy(
    writable_fields={"table_number", "capacity", "is_active"},
    required_on_create={"table_number"},
)


@floor_bp.get("/tables")
@json_errors("list tables")
def list_tables_route():
    rows = table_service.list_tables(status=request.args.get("status") or None)
    return {"tables": [row_to_json(r) for r in rows]}


@floor_bp.post("/tables")
@json_errors("create table")
def create_table_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=DiningTable, payload=payload, policy=TABLE_POLICY, partial=False)
    return {"table": row_to_json(table_service.create_table(patch))}, 201


@floor_bp.get("/day-sessions/current")
@json_errors("load day session")
def current_day_route():
    session = day_session_service.current_day()
    return {"session": row_to_json(session) if session else None}


@floor_bp.post("/day-sessions/open")
@with_actor
@json_errors("open day")
def open_day_route():
    payload = request.get_json(silent=True) or {}
    session = day_session_service.open_day(
        payload.get("opening_cash_cents", 0),
        notes=payload.get("notes"),
        opened_by=actor_id(),
    )
    return {"session": row_to_json(session)}, 201


@floor_bp.post("/day-sessions/close")
@with_actor
@json_errors("close day")
def close_day_route():
    payload = request.get_json(silent=True) or {}
    session = day_session_service.close_day(
        payload.get("session_id"),
        closing_cash_cents=payload.get("closing_cash_cents"),
        notes=payload.get("notes"),
        closed_by=actor_id(),
    )
    return {"session": row_to_json(session)}
