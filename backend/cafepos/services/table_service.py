# Overview: Dining tables and their occupancy.

from __future__ import annotations

from ..identity import parse_identifier
from ..storage import get_storage
from ..validation import ConflictError, ValidationError

AVAILABLE = "available"
OCCUPIED = "occupied"


def create_table(values: dict) -> dict:
    store = get_storage()
    number = values.get("table_number")
    if not number:
        raise ValidationError("table_number is required")
    if values.get("capacity") is not None and values["capacity"] <= 0:
        raise ValidationError("capacity must be > 0")
    if store.count("tables", {"table_number": number}):
        raise ConflictError(f"table {number} already exists")
    new_id = store.insert("tables", {**values, "status": AVAILABLE, "current_order_id": None})
    return store.get("tables", new_id)


def list_tables(*, status: str | None = None) -> list[dict]:
    filt = {"is_active": True}
    if status is not None:
        if status not in (AVAILABLE, OCCUPIED):
            raise ValidationError(f"invalid table status: {status!r}")
        filt["status"] = status
    return get_storage().query("tables", filt, order_by=["table_number"])


def check_available(table_id, order_id=None) -> dict:
    """The active table, unless another order holds it."""
    store = get_storage()
    table = store.lock_row("tables", parse_identifier(table_id))
    if not table.get("is_active", True):
        raise ValidationError(f"table {table['table_number']} is not active")
    if table["status"] == OCCUPIED and table.get("current_order_id") != order_id:
        raise ConflictError(f"table {table['table_number']} is occupied")
    return table


def occupy_table(table_id, order_id) -> dict:
    """Seat an order. A table holds one open order at a time."""
    store = get_storage()
    with store.transaction():
        table = check_available(table_id, order_id)
        claimed = store.update(
            "tables",
            {"status": OCCUPIED, "current_order_id": order_id},
            {"id": table["id"], "status": AVAILABLE},
        )
        if not claimed and table.get("current_order_id") != order_id:
            raise ConflictError(f"table {table['table_number']} is occupied")
        return store.get("tables", table["id"])


def release_table(table_id, order_id=None) -> bool:
    """
    Mark a table available again. With order_id, only when that order is the
    one seated there. Returns whether anything changed.
    """
    store = get_storage()
    filt = {"id": parse_identifier(table_id), "status": OCCUPIED}
    if order_id is not None:
        filt["current_order_id"] = order_id
    return store.update("tables", {"status": AVAILABLE, "current_order_id": None}, filt) > 0
