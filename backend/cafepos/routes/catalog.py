# Overview: Flask API routes for categories and products.

from flask import Blueprint, request

from ..identity import row_to_json
from ..models import Category, Product
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import json_errors

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "display_order", "is_active"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "category_id",
        "name",
        "description",
        "price_cents",
        "cost_cents",
        "is_veg",
        "is_active",
        "is_purchasable",
        "is_sellable",
    },
    required_on_create={"name", "price_cents"},
)


def _flag(name: str):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes"}


@catalog_bp.get("/categories")
@json_errors("list categories")
def list_categories_route():
    active_only = _flag("active_only")
    rows = catalog_service.list_categories(active_only=True if active_only is None else active_only)
    return {"categories": [row_to_json(r) for r in rows]}


@catalog_bp.post("/categories")
@json_errors("create category")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    return {"category": row_to_json(catalog_service.create_category(patch))}, 201


@catalog_bp.get("/products")
@json_errors("list products")
def list_products_route():
    active_only = _flag("active_only")
    rows = catalog_service.list_products(
        category_id=request.args.get("category_id") or None,
        active_only=True if active_only is None else active_only,
        sellable=_flag("sellable"),
        purchasable=_flag("purchasable"),
        with_stock=bool(_flag("with_stock")),
    )
    return {"products": [row_to_json(r) for r in rows]}


@catalog_bp.post("/products")
@json_errors("create product")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    return {"product": row_to_json(catalog_service.create_product(patch))}, 201


@catalog_bp.get("/products/<product_id>")
@json_errors("load product")
def get_product_route(product_id: str):
    return {"product": row_to_json(catalog_service.get_product(product_id))}


@catalog_bp.patch("/products/<product_id>")
@json_errors("update product")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    return {"product": row_to_json(catalog_service.update_product(product_id, patch))}
