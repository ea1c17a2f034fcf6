# Overview: Flask API routes for customers and their credit accounts.

from flask import Blueprint, request

from ..identity import row_to_json
from ..models import Customer
from ..services import credit_service, customer_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import actor_id, json_errors, with_actor

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

# No credit_balance_cents: only credit transactions move it
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "notes", "credit_limit_cents", "is_active"},
    required_on_create={"name"},
)


@customers_bp.get("")
@json_errors("list customers")
def list_customers_route():
    rows = customer_service.list_customers(
        active_only=request.args.get("include_inactive") is None,
        search=request.args.get("q") or None,
    )
    return {"customers": [row_to_json(r) for r in rows]}


@customers_bp.post("")
@json_errors("create customer")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    return {"customer": row_to_json(customer_service.create_customer(patch))}, 201


@customers_bp.get("/<customer_id>")
@json_errors("load customer")
def get_customer_route(customer_id: str):
    return {"customer": row_to_json(customer_service.get_customer(customer_id))}


@customers_bp.patch("/<customer_id>")
@json_errors("update customer")
def update_customer_route(customer_id: str):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    return {"customer": row_to_json(customer_service.update_customer(customer_id, patch))}


@customers_bp.get("/<customer_id>/credit")
@json_errors("load credit statement")
def credit_statement_route(customer_id: str):
    return credit_service.credit_statement(customer_id)


@customers_bp.post("/<customer_id>/credit")
@with_actor
@json_errors("append credit transaction")
def append_credit_route(customer_id: str):
    """Body: {"transaction_type": "credit"|"payment", "amount_cents": int, "note": str}"""
    payload = request.get_json(silent=True) or {}
    if payload.get("transaction_type") is None:
        raise ValidationError("transaction_type is required")
    tx = credit_service.append_transaction(
        customer_id,
        payload["transaction_type"],
        payload.get("amount_cents"),
        note=payload.get("note"),
        order_id=payload.get("order_id"),
        created_by=actor_id(),
    )
    return {"transaction": tx.to_dict()}, 201


@customers_bp.post("/<customer_id>/credit/rebuild")
@json_errors("rebuild credit balance")
def rebuild_credit_route(customer_id: str):
    return {"credit_balance_cents": credit_service.rebuild_credit_balance(customer_id)}


@customers_bp.get("/<customer_id>/credit/verify")
@json_errors("verify credit chain")
def verify_credit_route(customer_id: str):
    problems = credit_service.verify_credit_chain(customer_id)
    return {"consistent": not problems, "problems": problems}
