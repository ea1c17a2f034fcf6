import pytest

from cafepos.services import credit_service, customer_service
from cafepos.services.credit_service import CreditType
from cafepos.storage import get_storage
from cafepos.validation import ImmutableRecordError, NotFoundError, ValidationError


def test_credit_then_payments_with_overpayment_rejected(any_app, make_customer):
    customer = make_customer()
    assert customer["credit_balance_cents"] == 0

    first = credit_service.append_transaction(customer["id"], "credit", 500)
    assert (first.balance_before_cents, first.balance_after_cents) == (0, 500)

    second = credit_service.append_transaction(customer["id"], "payment", 200)
    assert (second.balance_before_cents, second.balance_after_cents) == (500, 300)

    with pytest.raises(ValidationError):
        credit_service.append_transaction(customer["id"], "payment", 400)

    assert credit_service.current_balance(customer["id"]) == 300
    assert customer_service.get_customer(customer["id"])["credit_balance_cents"] == 300
    assert len(credit_service.transactions_for(customer["id"])) == 2


def test_chain_links_and_cached_balance(any_app, make_customer):
    customer = make_customer()
    steps = [("credit", 1000), ("payment", 250), ("credit", 75), ("payment", 825), ("credit", 40)]
    for tx_type, amount in steps:
        credit_service.append_transaction(customer["id"], tx_type, amount, note=f"{tx_type} {amount}")

    txs = credit_service.transactions_for(customer["id"])
    previous_after = 0
    for tx in txs:
        assert tx.balance_before_cents == previous_after
        previous_after = tx.balance_after_cents
    assert previous_after == 40
    assert customer_service.get_customer(customer["id"])["credit_balance_cents"] == 40
    assert credit_service.verify_credit_chain(customer["id"]) == []


def test_exact_payoff_reaches_zero(any_app, make_customer):
    customer = make_customer()
    credit_service.append_transaction(customer["id"], CreditType.CREDIT, 300)
    tx = credit_service.append_transaction(customer["id"], CreditType.PAYMENT, 300)
    assert tx.balance_after_cents == 0


@pytest.mark.parametrize("amount", [0, -5, 1.5, "100", True])
def test_amount_must_be_positive_integer(any_app, make_customer, amount):
    customer = make_customer()
    with pytest.raises(ValidationError):
        credit_service.append_transaction(customer["id"], "credit", amount)


def test_unknown_type_rejected(any_app, make_customer):
    customer = make_customer()
    with pytest.raises(ValidationError):
        credit_service.append_transaction(customer["id"], "refund", 10)


def test_credit_limit(any_app, make_customer):
    customer = make_customer(credit_limit_cents=1000)
    credit_service.append_transaction(customer["id"], "credit", 900)
    with pytest.raises(ValidationError):
        credit_service.append_transaction(customer["id"], "credit", 200)
    assert credit_service.current_balance(customer["id"]) == 900


def test_rebuild_repairs_drifted_projection(any_app, make_customer):
    customer = make_customer()
    credit_service.append_transaction(customer["id"], "credit", 700)
    get_storage().update("customers", {"credit_balance_cents": 5}, {"id": customer["id"]})

    problems = credit_service.verify_credit_chain(customer["id"])
    assert len(problems) == 1
    assert "cached" in problems[0]

    assert credit_service.rebuild_credit_balance(customer["id"]) == 700
    assert customer_service.get_customer(customer["id"])["credit_balance_cents"] == 700
    assert credit_service.verify_credit_chain(customer["id"]) == []


def test_credit_log_is_append_only(any_app, make_customer):
    customer = make_customer()
    tx = credit_service.append_transaction(customer["id"], "credit", 100)
    with pytest.raises(ImmutableRecordError):
        get_storage().update("credit_transactions", {"amount_cents": 1}, {"id": tx.id})


def test_customer_lookup_never_falls_back(store, make_customer, missing_identifier):
    make_customer("First customer")
    with pytest.raises(NotFoundError):
        customer_service.get_customer(missing_identifier)
    with pytest.raises(NotFoundError):
        credit_service.append_transaction(missing_identifier, "credit", 100)


def test_balance_is_not_client_writable(any_app, make_customer):
    customer = make_customer()
    with pytest.raises(ValidationError):
        customer_service.update_customer(customer["id"], {"credit_balance_cents": 10})
    with pytest.raises(ValidationError):
        customer_service.create_customer({"name": "X", "credit_balance_cents": 10})


def test_statement_lists_running_balances(any_app, make_customer):
    customer = make_customer("Ravi")
    credit_service.append_transaction(customer["id"], "credit", 500)
    credit_service.append_transaction(customer["id"], "payment", 120)

    statement = credit_service.credit_statement(customer["id"])
    assert statement["customer_name"] == "Ravi"
    assert statement["balance_cents"] == 380
    assert [t["balance_after_cents"] for t in statement["transactions"]] == [500, 380]
