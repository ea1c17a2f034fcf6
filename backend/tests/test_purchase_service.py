import re

import pytest

from cafepos.services import ledger_service, purchase_service
from cafepos.services.purchase_service import PurchaseError, moving_average_cost
from cafepos.storage import get_storage
from cafepos.validation import NotFoundError, ValidationError


@pytest.fixture
def supplier(any_app):
    return purchase_service.create_supplier({"name": "Hill Dairy", "phone": "555-0101"})


def test_purchase_updates_stock_and_average_cost(any_app, supplier, make_product):
    milk = make_product("Milk", 0, cost_cents=100, is_purchasable=True, is_sellable=False)

    purchase_service.create_purchase(supplier["id"], [
        {"product_id": milk["id"], "quantity": 10, "unit_cost_cents": 100},
    ])
    purchase = purchase_service.create_purchase(supplier["id"], [
        {"product_id": milk["id"], "quantity": 10, "unit_cost_cents": 200},
    ], paid_cents=500)

    assert ledger_service.current_stock(milk["id"]) == 20
    assert get_storage().get("products", milk["id"])["cost_cents"] == 150
    assert purchase["total_cents"] == 2000
    assert purchase["outstanding_cents"] == 1500
    assert purchase["payment_status"] == "partial"
    assert len(purchase["items"]) == 1

    entries = ledger_service.history(milk["id"])
    assert {e.transaction_type.value for e in entries} == {"purchase"}
    assert entries[0].reference_type == "purchase"
    assert entries[0].reference_id == purchase["id"]


def test_moving_average_with_no_stock_on_hand():
    assert moving_average_cost(0, 500, 4, 120) == 120
    assert moving_average_cost(-3, 500, 4, 120) == 120
    assert moving_average_cost(3, 100, 1, 200) == 125


def test_non_purchasable_product_rejects_whole_purchase(any_app, supplier, make_product):
    beans = make_product("Beans", 0, is_purchasable=True, is_sellable=False)
    latte = make_product("Latte", 300)

    with pytest.raises(PurchaseError):
        purchase_service.create_purchase(supplier["id"], [
            {"product_id": beans["id"], "quantity": 5, "unit_cost_cents": 900},
            {"product_id": latte["id"], "quantity": 1, "unit_cost_cents": 100},
        ])

    store = get_storage()
    assert store.count("inventory_ledger") == 0
    assert store.count("purchases") == 0


@pytest.mark.parametrize("items", [
    [],
    [{"quantity": 0, "unit_cost_cents": 10}],
    [{"quantity": 1, "unit_cost_cents": -10}],
    [{"quantity": 1, "unit_cost_cents": 1.5}],
])
def test_malformed_items_rejected(any_app, supplier, make_product, items):
    flour = make_product("Flour", 0, is_purchasable=True, is_sellable=False)
    items = [{**item, "product_id": flour["id"]} for item in items]
    with pytest.raises(ValidationError):
        purchase_service.create_purchase(supplier["id"], items)


def test_unknown_supplier(store, make_product, missing_identifier):
    flour = make_product("Flour", 0, is_purchasable=True, is_sellable=False)
    with pytest.raises(NotFoundError):
        purchase_service.create_purchase(missing_identifier, [
            {"product_id": flour["id"], "quantity": 1, "unit_cost_cents": 10},
        ])


def test_purchase_numbers_and_payments(any_app, supplier, make_product):
    sugar = make_product("Sugar", 0, is_purchasable=True, is_sellable=False)
    first = purchase_service.create_purchase(supplier["id"], [
        {"product_id": sugar["id"], "quantity": 2, "unit_cost_cents": 250},
    ], tax_cents=25)
    second = purchase_service.create_purchase(supplier["id"], [
        {"product_id": sugar["id"], "quantity": 1, "unit_cost_cents": 250},
    ])

    assert re.match(r"^PUR-\d{8}-001$", first["purchase_number"])
    assert second["purchase_number"].endswith("-002")
    assert first["total_cents"] == 525
    assert first["payment_status"] == "unpaid"

    with pytest.raises(PurchaseError):
        purchase_service.record_purchase_payment(first["id"], 600)
    partial = purchase_service.record_purchase_payment(first["id"], 25)
    assert partial["payment_status"] == "partial"
    paid = purchase_service.record_purchase_payment(first["id"], 500)
    assert paid["payment_status"] == "paid"
    assert paid["outstanding_cents"] == 0

    listed = purchase_service.list_purchases(supplier_id=supplier["id"])
    assert {p["id"] for p in listed} == {first["id"], second["id"]}
