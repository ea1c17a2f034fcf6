"""
Storage Abstraction.

Business code talks to one Storage instance, chosen once at startup in
init_storage(), and never branches on which backend is behind it.

Filters are dicts combined with AND:
    {"status": "pending"}                      equality
    {"product_id": In([LocalId(1), ...])}       membership
    {"created_at": Range(gte=a, lte=b)}         numeric range
The key "id" takes an Identifier (or In of Identifiers) and resolves to the
backend's native key.

order_by is a list of column names, "-" prefix for descending.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from flask import current_app

from ..validation import NotFoundError, ValidationError


class In:
    """Membership predicate."""

    __slots__ = ("values",)

    def __init__(self, values: Iterable[Any]):
        self.values = tuple(values)

    def __repr__(self) -> str:
        return f"In({list(self.values)!r})"


@dataclass(frozen=True)
class Range:
    gt: Any = None
    gte: Any = None
    lt: Any = None
    lte: Any = None

    def bounds(self) -> list[tuple[str, Any]]:
        return [(op, v) for op, v in (("gt", self.gt), ("gte", self.gte), ("lt", self.lt), ("lte", self.lte)) if v is not None]


class Storage(ABC):
    """Uniform record access over a relational or document backend."""

    kind: str = ""

    @abstractmethod
    def query(
        self,
        table: str,
        filter: Optional[dict] = None,
        order_by: Optional[list[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict]:
        ...

    @abstractmethod
    def count(self, table: str, filter: Optional[dict] = None) -> int:
        ...

    @abstractmethod
    def insert(self, table: str, values: dict):
        """Insert one row; returns its Identifier."""

    @abstractmethod
    def update(self, table: str, values: dict, filter: dict) -> int:
        """Returns the number of matched rows."""

    @abstractmethod
    def delete(self, table: str, filter: dict) -> int:
        ...

    @abstractmethod
    def transaction(self):
        """Context manager grouping writes into one atomic unit where supported."""

    @abstractmethod
    def lock_row(self, table: str, identifier) -> dict:
        """Fetch a row for update inside transaction(); NotFoundError when absent."""

    def get(self, table: str, identifier) -> dict:
        rows = self.query(table, {"id": identifier}, limit=1)
        if not rows:
            raise NotFoundError(f"{table} {identifier} not found")
        return rows[0]

    def find(self, table: str, identifier) -> Optional[dict]:
        rows = self.query(table, {"id": identifier}, limit=1)
        return rows[0] if rows else None


def parse_order_by(order_by: Optional[list[str]]) -> list[tuple[str, bool]]:
    out = []
    for key in order_by or []:
        if not isinstance(key, str) or not key.strip("-"):
            raise ValidationError(f"Invalid order_by: {key!r}")
        out.append((key[1:], True) if key.startswith("-") else (key, False))
    return out


def sort_rows(rows: list[dict], order_by: Optional[list[str]]) -> list[dict]:
    """In-memory sort used after merging chunked membership queries. None sorts first."""
    for key, desc in reversed(parse_order_by(order_by)):
        rows.sort(key=lambda r: (r.get(key) is not None, _sort_value(r.get(key))), reverse=desc)
    return rows


def _sort_value(value):
    if value is None:
        return 0
    # Identifiers compare by their raw value
    return getattr(value, "value", value)


def split_membership(filter: Optional[dict], batch_size: int):
    """
    Find the first In(...) larger than batch_size.

    Returns (key, chunks) or (None, None) when no chunking is needed.
    """
    for key, value in (filter or {}).items():
        if isinstance(value, In) and len(value.values) > batch_size:
            vals = list(dict.fromkeys(value.values))
            return key, [vals[i:i + batch_size] for i in range(0, len(vals), batch_size)]
    return None, None


def page(rows: list[dict], limit: Optional[int], offset: Optional[int]) -> list[dict]:
    start = offset or 0
    if limit is None:
        return rows[start:]
    return rows[start:start + limit]


def init_storage(app, mongo_client=None) -> None:
    """
    Build the active Storage (and the replica + sync queue when the primary
    is relational) and stash them on app.extensions["cafepos"].
    """
    from .document import DocumentStore
    from .relational import RelationalStore

    backend = app.config.get("STORAGE_BACKEND", "relational")
    state: dict[str, Any] = {"storage": None, "replica": None, "sync": None, "worker": None}

    def _document_store() -> DocumentStore:
        client = mongo_client
        if client is None:
            from pymongo import MongoClient

            client = MongoClient(
                app.config["MONGO_URI"],
                serverSelectionTimeoutMS=app.config.get("MONGO_SERVER_SELECTION_TIMEOUT_MS", 3000),
                connect=False,
            )
        return DocumentStore(
            client[app.config["MONGO_DATABASE"]],
            in_batch_size=app.config.get("DOCUMENT_IN_BATCH_SIZE", 30),
        )

    if backend == "document":
        state["storage"] = _document_store()
    elif backend == "relational":
        from ..services.sync_service import SyncQueue

        primary = RelationalStore(in_batch_size=app.config.get("RELATIONAL_IN_BATCH_SIZE", 500))
        replica = _document_store()
        state["storage"] = primary
        state["replica"] = replica
        state["sync"] = SyncQueue(
            primary,
            replica,
            batch_size=app.config.get("SYNC_BATCH_SIZE", 100),
        )
    else:
        raise ValueError(f"Unsupported STORAGE_BACKEND: {backend!r}")

    app.extensions["cafepos"] = state
    app.logger.info("Storage backend: %s", backend)


def get_storage() -> Storage:
    return current_app.extensions["cafepos"]["storage"]


def get_sync_queue():
    return current_app.extensions["cafepos"]["sync"]
