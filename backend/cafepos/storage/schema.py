"""Table registry shared by both Storage backends and the replication driver."""
from __future__ import annotations

from ..extensions import db
from ..validation import ValidationError


# Push order matters only for readability of the replica; references are
# textual and resolve lazily, so parents need not land first.
SYNCABLE_TABLES: tuple[str, ...] = (
    "categories",
    "products",
    "customers",
    "suppliers",
    "tables",
    "day_sessions",
    "orders",
    "order_items",
    "payments",
    "credit_transactions",
    "purchases",
    "purchase_items",
    "inventory_ledger",
    "expenses",
)

# Rows are inserted once and never updated or deleted through the Storage API.
APPEND_ONLY_TABLES = frozenset({"inventory_ledger", "credit_transactions"})

# Columns holding a reference to another record. Stored as text, decoded to
# LocalId/RemoteId independently per field.
REFERENCE_COLUMNS: dict[str, frozenset[str]] = {
    "products": frozenset({"category_id"}),
    "orders": frozenset({"table_id", "customer_id"}),
    "tables": frozenset({"current_order_id"}),
    "order_items": frozenset({"order_id", "product_id"}),
    "payments": frozenset({"order_id"}),
    "credit_transactions": frozenset({"customer_id", "order_id"}),
    "inventory_ledger": frozenset({"product_id", "reference_id"}),
    "purchases": frozenset({"supplier_id"}),
    "purchase_items": frozenset({"purchase_id", "product_id"}),
}

# Bookkeeping columns owned by the storage layer.
SYSTEM_COLUMNS = frozenset({"id", "remote_id", "synced", "version", "created_at", "updated_at"})


def table_for(name: str):
    table = db.metadata.tables.get(name)
    if table is None or name not in SYNCABLE_TABLES:
        raise ValidationError(f"Unknown table: {name}")
    return table


def column_names(name: str) -> set[str]:
    return {c.name for c in table_for(name).columns}


def check_columns(name: str, keys) -> None:
    known = column_names(name)
    for key in keys:
        if key not in known:
            raise ValidationError(f"Unknown column {name}.{key}")


def reference_columns(name: str) -> frozenset[str]:
    return REFERENCE_COLUMNS.get(name, frozenset())


def scalar_defaults(name: str) -> dict:
    """Python-side scalar column defaults, applied by backends that lack DDL."""
    out = {}
    for col in table_for(name).columns:
        if col.name in SYSTEM_COLUMNS:
            continue
        default = col.default
        if default is not None and default.is_scalar:
            out[col.name] = default.arg
        elif col.nullable:
            out[col.name] = None
    return out
