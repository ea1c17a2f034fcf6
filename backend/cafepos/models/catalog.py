from __future__ import annotations

from ..extensions import db
from .base import SyncedRecordMixin


class Category(SyncedRecordMixin, db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_active_order", "is_active", "display_order"),
        {"sqlite_autoincrement": True},
    )

    name = db.Column(db.String(120), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"


class Product(SyncedRecordMixin, db.Model):
    """
    Catalog item.

    FLAGS:
    is_purchasable and is_sellable are independent. A raw ingredient is
    purchasable-only, a plated dish sellable-only, bottled drinks are both.

    STOCK:
    There is no quantity column. Stock is derived from inventory_ledger.
    cost_cents is the moving-average purchase cost, refreshed on receipt.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    # Reference to categories (LocalId or RemoteId text)
    category_id = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    is_veg = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_purchasable = db.Column(db.Boolean, nullable=False, default=False)
    is_sellable = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"
