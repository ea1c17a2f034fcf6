# Overview: Inventory ledger engine; stock is derived from append-only entries, never stored.

"""
Inventory invariants (authoritative)

- Stock is SUM(quantity_in) - SUM(quantity_out) over inventory_ledger rows for
  a product. There is no mutable on-hand column anywhere.
- Each entry moves stock in one direction only.
- Entries are never updated or deleted. Mistakes are fixed with a new
  'correction' entry (reverse_entry) and counts with an 'adjustment'.
- Negative stock is allowed at write time and reported, not blocked.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional

from ..identity import Identifier, LocalId, RemoteId, identifier_json, parse_identifier, parse_optional_identifier
from ..storage import In, get_storage
from ..time_utils import ms_to_iso
from ..validation import ValidationError, enforce_rules_ledger_entry
from .concurrency import run_with_retry

LEDGER_TABLE = "inventory_ledger"

# Float quantities are rounded to this many places after folding.
QUANTITY_PLACES = 3


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    CORRECTION = "correction"


def parse_transaction_type(value) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"invalid transaction_type: {value!r}")


@dataclass(frozen=True)
class LedgerEntry:
    product_id: Identifier
    transaction_type: TransactionType
    quantity_in: float = 0.0
    quantity_out: float = 0.0
    unit_price_cents: Optional[int] = None
    reference_type: Optional[str] = None
    reference_id: Optional[Identifier] = None
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[int] = None
    id: Optional[Identifier] = field(default=None, compare=False)

    @property
    def delta(self) -> float:
        return self.quantity_in - self.quantity_out

    @classmethod
    def from_row(cls, row: dict) -> "LedgerEntry":
        return cls(
            id=row["id"],
            product_id=row["product_id"],
            transaction_type=TransactionType(row["transaction_type"]),
            quantity_in=row.get("quantity_in") or 0.0,
            quantity_out=row.get("quantity_out") or 0.0,
            unit_price_cents=row.get("unit_price_cents"),
            reference_type=row.get("reference_type"),
            reference_id=row.get("reference_id"),
            note=row.get("note"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
        )

    def to_values(self) -> dict:
        values = {
            "product_id": self.product_id,
            "transaction_type": self.transaction_type.value,
            "quantity_in": float(self.quantity_in),
            "quantity_out": float(self.quantity_out),
            "unit_price_cents": self.unit_price_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "created_by": self.created_by,
        }
        if self.created_at is not None:
            values["created_at"] = self.created_at
        return values

    def to_dict(self) -> dict:
        return {
            "id": identifier_json(self.id),
            "product_id": identifier_json(self.product_id),
            "transaction_type": self.transaction_type.value,
            "quantity_in": self.quantity_in,
            "quantity_out": self.quantity_out,
            "unit_price_cents": self.unit_price_cents,
            "reference_type": self.reference_type,
            "reference_id": identifier_json(self.reference_id),
            "note": self.note,
            "created_by": self.created_by,
            "created_at": ms_to_iso(self.created_at),
        }


# ----------------------------------------------------------------------
# pure folds
# ----------------------------------------------------------------------

def _round_qty(value: float) -> float:
    out = round(value, QUANTITY_PLACES)
    return 0.0 if out == 0 else out


def fold_stock(entries: Iterable[LedgerEntry]) -> float:
    """Current stock from a sequence of entries for ONE product."""
    return _round_qty(sum(e.quantity_in for e in entries) - sum(e.quantity_out for e in entries))


def fold_stock_by_product(entries: Iterable[LedgerEntry]) -> dict[Identifier, float]:
    totals: dict[Identifier, float] = {}
    for e in entries:
        totals[e.product_id] = totals.get(e.product_id, 0.0) + e.delta
    return {pid: _round_qty(qty) for pid, qty in totals.items()}


# ----------------------------------------------------------------------
# engine operations
# ----------------------------------------------------------------------

def _validate_quantity(value, name: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite")
    return float(value)


def append_entry(entry: LedgerEntry) -> LedgerEntry:
    """
    Validate and write one immutable ledger row.

    Raises ValidationError for a malformed movement and NotFoundError when the
    product does not exist. Never rejects because the resulting stock would
    be negative.
    """
    qty_in = _validate_quantity(entry.quantity_in, "quantity_in")
    qty_out = _validate_quantity(entry.quantity_out, "quantity_out")
    enforce_rules_ledger_entry({
        "quantity_in": qty_in,
        "quantity_out": qty_out,
        "unit_price_cents": entry.unit_price_cents,
    })
    tx_type = parse_transaction_type(entry.transaction_type)

    store = get_storage()
    product = store.get("products", parse_identifier(entry.product_id))

    normalized = LedgerEntry(
        product_id=product["id"],
        transaction_type=tx_type,
        quantity_in=qty_in,
        quantity_out=qty_out,
        unit_price_cents=entry.unit_price_cents,
        reference_type=entry.reference_type,
        reference_id=parse_optional_identifier(entry.reference_id),
        note=entry.note,
        created_by=entry.created_by,
        created_at=entry.created_at,
    )
    new_id = store.insert(LEDGER_TABLE, normalized.to_values())
    return LedgerEntry.from_row(store.get(LEDGER_TABLE, new_id))


def product_aliases(product: dict) -> list[Identifier]:
    """
    Every identifier a ledger row may hold for this product: the backend's
    own id plus the other side's id once the row has been replicated.
    """
    aliases = [product["id"]]
    if product.get("remote_id"):
        aliases.append(RemoteId(product["remote_id"]))
    if product.get("local_id") is not None:
        aliases.append(LocalId(product["local_id"]))
    return list(dict.fromkeys(aliases))


def _product_filter(product: dict) -> dict:
    return {"product_id": In(product_aliases(product))}


def entries_for(product_id) -> list[LedgerEntry]:
    store = get_storage()
    product = store.get("products", parse_identifier(product_id))
    rows = store.query(LEDGER_TABLE, _product_filter(product))
    return [LedgerEntry.from_row(r) for r in rows]


def current_stock(product_id) -> float:
    """Sum over every entry for the product, read in one query."""
    return fold_stock(entries_for(product_id))


def stock_by_product(product_ids: Iterable) -> dict[Identifier, float]:
    """
    Stock for many products from one membership query (chunked by the
    backend), not one scan per product. Keyed by the identifiers passed in;
    only products that have ledger entries appear in the result.
    """
    ids = list(dict.fromkeys(parse_identifier(p) for p in product_ids))
    if not ids:
        return {}
    store = get_storage()
    owner: dict[Identifier, Identifier] = {}
    for product in store.query("products", {"id": In(ids)}):
        for alias in product_aliases(product):
            owner[alias] = product["id"]
    if not owner:
        return {}

    rows = store.query(LEDGER_TABLE, {"product_id": In(list(owner))})
    totals = fold_stock_by_product(
        replace(entry, product_id=owner.get(entry.product_id, entry.product_id))
        for entry in (LedgerEntry.from_row(r) for r in rows)
    )
    return {pid: totals[owner[pid]] for pid in ids if owner.get(pid) in totals}


def current_stock_batch(product_ids: Iterable) -> dict[Identifier, float]:
    """Like stock_by_product, with 0 for products that have no entries."""
    ids = list(dict.fromkeys(parse_identifier(p) for p in product_ids))
    result: dict[Identifier, float] = {pid: 0.0 for pid in ids}
    result.update(stock_by_product(ids))
    return result


def tracked_products(product_ids: Iterable) -> set[Identifier]:
    """Products that have at least one ledger entry."""
    return set(stock_by_product(product_ids))


def history(product_id, limit: int = 50, offset: int = 0) -> list[LedgerEntry]:
    """Most recent first."""
    if limit is not None and limit < 0:
        raise ValidationError("limit must be >= 0")
    store = get_storage()
    product = store.get("products", parse_identifier(product_id))
    rows = store.query(
        LEDGER_TABLE,
        _product_filter(product),
        order_by=["-created_at", "-id"],
        limit=limit,
        offset=offset,
    )
    return [LedgerEntry.from_row(r) for r in rows]


def adjust_to_quantity(
    product_id,
    desired_quantity,
    *,
    note: str | None = None,
    created_by: str | None = None,
) -> Optional[LedgerEntry]:
    """
    Manual stock count: append one adjustment for (desired - current).

    Returns None (and writes nothing) when the count already matches.
    """
    desired = _validate_quantity(desired_quantity, "desired_quantity")
    pid = parse_identifier(product_id)
    store = get_storage()

    def _op():
        with store.transaction():
            product = store.lock_row("products", pid)
            on_hand = fold_stock(
                [LedgerEntry.from_row(r) for r in store.query(LEDGER_TABLE, _product_filter(product))]
            )
            difference = _round_qty(desired - on_hand)
            if difference == 0:
                return None
            return append_entry(LedgerEntry(
                product_id=product["id"],
                transaction_type=TransactionType.ADJUSTMENT,
                quantity_in=difference if difference > 0 else 0.0,
                quantity_out=-difference if difference < 0 else 0.0,
                reference_type="adjustment",
                note=note,
                created_by=created_by,
            ))

    return run_with_retry(_op)


def reverse_entry(entry_id, *, reason: str | None = None, created_by: str | None = None) -> LedgerEntry:
    """
    Cancel the effect of an entry by appending a 'correction' with the
    quantities mirrored. An entry can be reversed once.
    """
    eid = parse_identifier(entry_id)
    store = get_storage()

    def _op():
        with store.transaction():
            original = LedgerEntry.from_row(store.get(LEDGER_TABLE, eid))
            already = store.count(LEDGER_TABLE, {
                "reference_type": "ledger_entry",
                "reference_id": original.id,
                "transaction_type": TransactionType.CORRECTION.value,
            })
            if already:
                raise ValidationError(f"ledger entry {eid} was already reversed")
            return append_entry(LedgerEntry(
                product_id=original.product_id,
                transaction_type=TransactionType.CORRECTION,
                quantity_in=original.quantity_out,
                quantity_out=original.quantity_in,
                unit_price_cents=original.unit_price_cents,
                reference_type="ledger_entry",
                reference_id=original.id,
                note=reason or f"reversal of entry {original.id}",
                created_by=created_by,
            ))

    return run_with_retry(_op)
