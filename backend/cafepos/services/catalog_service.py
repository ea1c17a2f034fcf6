# Overview: Categories and products.

from __future__ import annotations

from ..identity import parse_identifier
from ..storage import get_storage
from ..validation import ValidationError, enforce_rules_product
from .ledger_service import current_stock_batch


def create_category(values: dict) -> dict:
    store = get_storage()
    new_id = store.insert("categories", values)
    return store.get("categories", new_id)


def list_categories(*, active_only: bool = True) -> list[dict]:
    filt = {"is_active": True} if active_only else {}
    return get_storage().query("categories", filt, order_by=["display_order", "name"])


def _check_flags(product: dict) -> None:
    # Purchasable and sellable are independent, but a product must be at least one.
    if not product.get("is_purchasable", False) and not product.get("is_sellable", True):
        raise ValidationError("product must be purchasable, sellable, or both")


def create_product(values: dict) -> dict:
    enforce_rules_product(values)
    _check_flags(values)
    store = get_storage()
    if values.get("category_id") is not None:
        values = {**values, "category_id": store.get("categories", parse_identifier(values["category_id"]))["id"]}
    new_id = store.insert("products", values)
    return store.get("products", new_id)


def get_product(product_id) -> dict:
    return get_storage().get("products", parse_identifier(product_id))


def update_product(product_id, values: dict) -> dict:
    enforce_rules_product(values)
    store = get_storage()
    product = store.get("products", parse_identifier(product_id))
    _check_flags({**product, **values})
    if values.get("category_id") is not None:
        values = {**values, "category_id": store.get("categories", parse_identifier(values["category_id"]))["id"]}
    if values:
        store.update("products", values, {"id": product["id"]})
    return store.get("products", product["id"])


def list_products(
    *,
    category_id=None,
    active_only: bool = True,
    sellable: bool | None = None,
    purchasable: bool | None = None,
    with_stock: bool = False,
) -> list[dict]:
    filt: dict = {}
    if category_id is not None:
        filt["category_id"] = parse_identifier(category_id)
    if active_only:
        filt["is_active"] = True
    if sellable is not None:
        filt["is_sellable"] = sellable
    if purchasable is not None:
        filt["is_purchasable"] = purchasable

    rows = get_storage().query("products", filt, order_by=["name", "id"])
    if with_stock and rows:
        stock = current_stock_batch(r["id"] for r in rows)
        for r in rows:
            r["stock"] = stock.get(r["id"], 0.0)
    return rows
