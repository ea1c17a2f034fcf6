from __future__ import annotations

from ..extensions import db
from .base import SyncedRecordMixin


class DiningTable(SyncedRecordMixin, db.Model):
    __tablename__ = "tables"
    __table_args__ = (
        db.UniqueConstraint("table_number", name="uq_tables_table_number"),
        {"sqlite_autoincrement": True},
    )

    table_number = db.Column(db.String(32), nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=4)
    # available | occupied
    status = db.Column(db.String(16), nullable=False, default="available")
    current_order_id = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class Order(SyncedRecordMixin, db.Model):
    """
    Customer order.

    LIFECYCLE:
    pending -> confirmed (partially paid) -> completed (nothing due at the counter)
    A pending order with no payments may be cancelled, which deletes it.

    TOTALS (recomputed from items on every change):
    discount = round(subtotal * discount_percent / 100)
    tax      = round((subtotal - discount) * tax_rate_bps / 10000)
    total    = subtotal - discount + tax
    due      = total - paid - credit
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    order_number = db.Column(db.String(32), nullable=False)
    # dine_in | takeaway
    order_type = db.Column(db.String(16), nullable=False, default="dine_in")
    table_id = db.Column(db.String(64), nullable=True)
    customer_id = db.Column(db.String(64), nullable=True)

    # pending | confirmed | completed
    status = db.Column(db.String(16), nullable=False, default="pending")
    # unpaid | partial | paid
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_percent = db.Column(db.Float, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    completed_at = db.Column(db.BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"


class OrderItem(SyncedRecordMixin, db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order", "order_id"),
        {"sqlite_autoincrement": True},
    )

    order_id = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    # Snapshot at time of sale
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)


class Payment(SyncedRecordMixin, db.Model):
    """Money received against an order (or against its credit later)."""
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order", "order_id"),
        db.Index("ix_payments_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    order_id = db.Column(db.String(64), nullable=False)
    # cash | card | digital | credit
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    # True for money received later against an order's credit balance
    is_settlement = db.Column(db.Boolean, nullable=False, default=False)
    transaction_ref = db.Column(db.String(128), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)


class DaySession(SyncedRecordMixin, db.Model):
    """Business day. At most one open at a time."""
    __tablename__ = "day_sessions"
    __table_args__ = (
        db.Index("ix_day_sessions_status", "status"),
        {"sqlite_autoincrement": True},
    )

    # open | closed
    status = db.Column(db.String(16), nullable=False, default="open")
    opened_at = db.Column(db.BigInteger, nullable=False)
    closed_at = db.Column(db.BigInteger, nullable=True)
    opening_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_cash_cents = db.Column(db.Integer, nullable=True)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_total_cents = db.Column(db.Integer, nullable=False, default=0)
    card_total_cents = db.Column(db.Integer, nullable=False, default=0)
    digital_total_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_total_cents = db.Column(db.Integer, nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)

    opened_by = db.Column(db.String(64), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
