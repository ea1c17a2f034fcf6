from __future__ import annotations

from ..extensions import db
from .base import SyncedRecordMixin


class Expense(SyncedRecordMixin, db.Model):
    """
    Money paid out that is not a supplier purchase (rent, repairs, wages).

    expense_number is "EXP yymmdd/NNN", NNN restarting each business day.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    expense_number = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    # cash | card | bank_transfer | other
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
