from __future__ import annotations

from ..extensions import db
from .base import SyncedRecordMixin


class Customer(SyncedRecordMixin, db.Model):
    """
    Customer with an optional credit (tab) account.

    credit_balance_cents is a cached projection of the latest
    credit_transactions.balance_after_cents for this customer. It is written
    only by the credit service, never by clients.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=True)
    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"


class CreditTransaction(SyncedRecordMixin, db.Model):
    """
    Append-only credit log.

    CHAIN:
    balance_before(n) == balance_after(n-1), 0 for the first entry
    balance_after(n)  == balance_before(n) + amount  (credit)
                      == max(0, balance_before(n) - amount)  (payment)
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.Index("ix_credit_transactions_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    customer_id = db.Column(db.String(64), nullable=False)
    order_id = db.Column(db.String(64), nullable=True)
    # credit | payment
    transaction_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
