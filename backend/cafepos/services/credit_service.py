# Overview: Customer credit log; the balance is a fold over credit_transactions.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from ..identity import Identifier, identifier_json, parse_identifier, parse_optional_identifier
from ..storage import get_storage
from ..time_utils import ms_to_iso
from ..validation import ValidationError
from .concurrency import run_with_retry

CREDIT_TABLE = "credit_transactions"


class CreditType(str, Enum):
    CREDIT = "credit"     # customer owes more
    PAYMENT = "payment"   # customer paid some back


@dataclass(frozen=True)
class CreditTransaction:
    id: Identifier
    customer_id: Identifier
    transaction_type: CreditType
    amount_cents: int
    balance_before_cents: int
    balance_after_cents: int
    order_id: Optional[Identifier] = None
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "CreditTransaction":
        return cls(
            id=row["id"],
            customer_id=row["customer_id"],
            transaction_type=CreditType(row["transaction_type"]),
            amount_cents=row["amount_cents"],
            balance_before_cents=row["balance_before_cents"],
            balance_after_cents=row["balance_after_cents"],
            order_id=row.get("order_id"),
            note=row.get("note"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": identifier_json(self.id),
            "customer_id": identifier_json(self.customer_id),
            "transaction_type": self.transaction_type.value,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "order_id": identifier_json(self.order_id),
            "note": self.note,
            "created_by": self.created_by,
            "created_at": ms_to_iso(self.created_at),
        }


def apply_amount(balance_before: int, tx_type: CreditType, amount_cents: int) -> int:
    """One step of the fold. Payments clamp at zero."""
    if tx_type == CreditType.CREDIT:
        return balance_before + amount_cents
    return max(0, balance_before - amount_cents)


def fold_balance(transactions: Iterable[CreditTransaction]) -> int:
    balance = 0
    for tx in transactions:
        balance = apply_amount(balance, tx.transaction_type, tx.amount_cents)
    return balance


def transactions_for(customer_id) -> list[CreditTransaction]:
    """Oldest first."""
    rows = get_storage().query(
        CREDIT_TABLE,
        {"customer_id": parse_identifier(customer_id)},
        order_by=["created_at", "id"],
    )
    return [CreditTransaction.from_row(r) for r in rows]


def current_balance(customer_id) -> int:
    """Computed from the log, not from customers.credit_balance_cents."""
    return fold_balance(transactions_for(customer_id))


def _parse_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")
    return amount_cents


def post_credit_transaction(
    customer_id,
    transaction_type,
    amount_cents: int,
    *,
    note: str | None = None,
    order_id=None,
    created_by: str | None = None,
) -> CreditTransaction:
    """
    Append one credit/payment and refresh the cached balance on the customer.

    A payment larger than the outstanding balance is rejected, not clamped.
    Joins the caller's store.transaction() when there is one; no retry.
    """
    try:
        tx_type = CreditType(transaction_type)
    except ValueError:
        raise ValidationError(f"invalid transaction_type: {transaction_type!r}")
    amount = _parse_amount(amount_cents)
    cid = parse_identifier(customer_id)
    oid = parse_optional_identifier(order_id)
    store = get_storage()

    with store.transaction():
        customer = store.lock_row("customers", cid)
        before = current_balance(customer["id"])
        if tx_type == CreditType.PAYMENT and amount > before:
            raise ValidationError(
                f"payment {amount} exceeds outstanding balance {before}"
            )
        after = apply_amount(before, tx_type, amount)
        limit = customer.get("credit_limit_cents")
        if tx_type == CreditType.CREDIT and limit is not None and after > limit:
            raise ValidationError(f"credit limit {limit} exceeded (balance would be {after})")
        new_id = store.insert(CREDIT_TABLE, {
            "customer_id": customer["id"],
            "order_id": oid,
            "transaction_type": tx_type.value,
            "amount_cents": amount,
            "balance_before_cents": before,
            "balance_after_cents": after,
            "note": note,
            "created_by": created_by,
        })
        store.update("customers", {"credit_balance_cents": after}, {"id": customer["id"]})
        return CreditTransaction.from_row(store.get(CREDIT_TABLE, new_id))


def append_transaction(
    customer_id,
    transaction_type,
    amount_cents: int,
    *,
    note: str | None = None,
    order_id=None,
    created_by: str | None = None,
) -> CreditTransaction:
    """post_credit_transaction as a standalone operation, retried on lock contention."""
    return run_with_retry(lambda: post_credit_transaction(
        customer_id,
        transaction_type,
        amount_cents,
        note=note,
        order_id=order_id,
        created_by=created_by,
    ))


def rebuild_credit_balance(customer_id) -> int:
    """Recompute the cached projection from the log. Returns the balance."""
    cid = parse_identifier(customer_id)
    store = get_storage()

    def _op():
        with store.transaction():
            customer = store.lock_row("customers", cid)
            txs = transactions_for(customer["id"])
            balance = txs[-1].balance_after_cents if txs else 0
            if customer.get("credit_balance_cents") != balance:
                store.update("customers", {"credit_balance_cents": balance}, {"id": customer["id"]})
            return balance

    return run_with_retry(_op)


def verify_credit_chain(customer_id) -> list[str]:
    """
    Check balance_before/balance_after links and the cached balance.
    Returns a list of problems; empty when consistent.
    """
    store = get_storage()
    customer = store.get("customers", parse_identifier(customer_id))
    problems: list[str] = []
    previous_after = 0
    for n, tx in enumerate(transactions_for(customer["id"]), start=1):
        if tx.balance_before_cents != previous_after:
            problems.append(
                f"#{n} ({tx.id}): balance_before {tx.balance_before_cents} != previous balance_after {previous_after}"
            )
        expected = apply_amount(tx.balance_before_cents, tx.transaction_type, tx.amount_cents)
        if tx.balance_after_cents != expected:
            problems.append(f"#{n} ({tx.id}): balance_after {tx.balance_after_cents} != expected {expected}")
        previous_after = tx.balance_after_cents
    if customer.get("credit_balance_cents") != previous_after:
        problems.append(
            f"cached credit_balance_cents {customer.get('credit_balance_cents')} != latest balance_after {previous_after}"
        )
    return problems


def credit_statement(customer_id) -> dict:
    store = get_storage()
    customer = store.get("customers", parse_identifier(customer_id))
    txs = transactions_for(customer["id"])
    return {
        "customer_id": identifier_json(customer["id"]),
        "customer_name": customer.get("name"),
        "balance_cents": fold_balance(txs),
        "credit_limit_cents": customer.get("credit_limit_cents"),
        "transactions": [t.to_dict() for t in txs],
    }
