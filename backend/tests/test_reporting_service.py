import pytest

from cafepos.services import day_session_service, ledger_service, order_service, payment_service, reporting_service
from cafepos.services.ledger_service import LedgerEntry, TransactionType
from cafepos.time_utils import now_ms
from cafepos.validation import ConflictError, ValidationError


def _move(product, tx_type, qty_in=0, qty_out=0):
    ledger_service.append_entry(LedgerEntry(
        product_id=product["id"],
        transaction_type=tx_type,
        quantity_in=qty_in,
        quantity_out=qty_out,
    ))


def _paid_order(product, method="cash", amount=None, **kwargs):
    order = order_service.create_order(order_type="takeaway", **kwargs)
    order = order_service.add_item(order["id"], product["id"])
    return payment_service.complete_payment(order["id"], method, amount or order["total_cents"])


def test_low_stock_includes_negative_and_untouched_purchasables(any_app, make_product):
    milk = make_product("Milk", 0, is_purchasable=True, is_sellable=False)
    beans = make_product("Beans", 0, is_purchasable=True, is_sellable=False)
    croissant = make_product("Croissant", 150)
    syrup = make_product("Syrup", 0, is_purchasable=True, is_sellable=False)
    make_product("Tap water", 0)
    _move(milk, TransactionType.PURCHASE, qty_in=3)
    _move(beans, TransactionType.PURCHASE, qty_in=50)
    _move(croissant, TransactionType.SALE, qty_out=2)

    report = reporting_service.low_stock_report(threshold=5)

    assert [r["name"] for r in report] == ["Croissant", "Syrup", "Milk"]
    assert [r["stock"] for r in report] == [-2, 0, 3]
    assert [r["negative"] for r in report] == [True, False, False]
    assert report[0]["product_id"] == croissant["id"]
    assert syrup["id"] in {r["product_id"] for r in report}


def test_low_stock_uses_configured_threshold(any_app, make_product):
    any_app.config["LOW_STOCK_THRESHOLD"] = 10
    milk = make_product("Milk", 0, is_purchasable=True, is_sellable=False)
    _move(milk, TransactionType.PURCHASE, qty_in=8)
    assert [r["name"] for r in reporting_service.low_stock_report()] == ["Milk"]


def test_sales_summary_counts_completed_orders(any_app, make_product):
    start = now_ms()
    latte = make_product("Latte", 450)
    _paid_order(latte, "cash", 500)
    _paid_order(latte, "card")
    open_order = order_service.create_order(order_type="takeaway")
    order_service.add_item(open_order["id"], latte["id"])

    summary = reporting_service.sales_summary(start, now_ms() + 1000)

    assert summary["order_count"] == 2
    assert summary["gross_cents"] == 900
    assert summary["net_cents"] == 900
    assert summary["payments"] == {"cash": 450, "card": 450, "digital": 0, "credit": 0}

    with pytest.raises(ValidationError):
        reporting_service.sales_summary(now_ms(), start - 1)


def test_day_session_open_and_close(any_app, make_product, make_customer):
    session = day_session_service.open_day(1000, opened_by="till-1")
    assert day_session_service.current_day()["id"] == session["id"]
    with pytest.raises(ConflictError):
        day_session_service.open_day(0)

    latte = make_product("Latte", 450)
    customer = make_customer()
    _paid_order(latte, "cash", 500)
    on_credit = _paid_order(make_product("Toast", 300), "credit", customer_id=customer["id"])
    payment_service.pay_order_credit(on_credit["id"], 300)

    closed = day_session_service.close_day(closing_cash_cents=1700, closed_by="till-1")

    assert closed["status"] == "closed"
    assert closed["cash_total_cents"] == 750
    assert closed["credit_total_cents"] == 300
    assert closed["total_sales_cents"] == 750
    assert closed["order_count"] == 2
    assert closed["expected_cash_cents"] == 1750
    assert day_session_service.current_day() is None

    with pytest.raises(ValidationError):
        day_session_service.close_day(session["id"], closing_cash_cents=0)


def test_close_without_open_day(any_app):
    with pytest.raises(ValidationError):
        day_session_service.close_day(closing_cash_cents=0)


def test_customer_credit_statement(any_app, make_product, make_customer):
    customer = make_customer("Meera")
    _paid_order(make_product("Thali", 800), "credit", customer_id=customer["id"])

    statement = reporting_service.customer_credit_statement(customer["id"])
    assert statement["customer_name"] == "Meera"
    assert statement["balance_cents"] == 800
    assert [t["transaction_type"] for t in statement["transactions"]] == ["credit"]
