from __future__ import annotations

from ..extensions import db
from .base import SyncedRecordMixin


class InventoryLedgerEntry(SyncedRecordMixin, db.Model):
    """
    One stock movement. Append-only.

    INVARIANTS:
    - quantity_in >= 0, quantity_out >= 0, never both > 0
    - stock(product) = SUM(quantity_in) - SUM(quantity_out)
    - corrections are new rows (transaction_type='correction'), never edits

    reference_type/reference_id point at the order, purchase or entry that
    caused the movement.
    """
    __tablename__ = "inventory_ledger"
    __table_args__ = (
        db.Index("ix_inventory_ledger_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_ledger_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    product_id = db.Column(db.String(64), nullable=False)
    quantity_in = db.Column(db.Float, nullable=False, default=0)
    quantity_out = db.Column(db.Float, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=True)

    # purchase | sale | adjustment | return | correction
    transaction_type = db.Column(db.String(16), nullable=False)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryLedgerEntry id={self.id} product_id={self.product_id} "
            f"in={self.quantity_in} out={self.quantity_out} type={self.transaction_type}>"
        )


class Supplier(SyncedRecordMixin, db.Model):
    __tablename__ = "suppliers"
    __table_args__ = ({"sqlite_autoincrement": True},)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class Purchase(SyncedRecordMixin, db.Model):
    """
    Goods received from a supplier.

    total = subtotal - discount + tax; outstanding = total - paid.
    Each item posts one 'purchase' ledger entry when the purchase is created.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    purchase_number = db.Column(db.String(32), nullable=False, index=True)
    supplier_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="received")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_cents = db.Column(db.Integer, nullable=False, default=0)
    # unpaid | partial | paid
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)


class PurchaseItem(SyncedRecordMixin, db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.Index("ix_purchase_items_purchase", "purchase_id"),
        {"sqlite_autoincrement": True},
    )

    purchase_id = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Float, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
