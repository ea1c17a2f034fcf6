"""
Relational Storage backend (primary store).

Runs SQLAlchemy Core statements on the Flask-SQLAlchemy session against the
tables declared in cafepos.models. LocalId resolves to the integer primary
key, RemoteId to the remote_id column filled in once a row is replicated.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import and_, false, func, or_, select, true
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..identity import LocalId, RemoteId, encode_reference, parse_identifier, parse_optional_identifier
from ..time_utils import now_ms
from ..validation import ConflictError, ImmutableRecordError, NotFoundError, ValidationError
from . import In, Range, Storage, page, parse_order_by, sort_rows, split_membership
from .schema import APPEND_ONLY_TABLES, check_columns, reference_columns, table_for

_RANGE_OPS = {
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
}

# Columns callers may never write directly
_PROTECTED_ON_INSERT = frozenset({"id", "remote_id", "synced", "version", "updated_at"})
_PROTECTED_ON_UPDATE = frozenset({"id", "remote_id", "synced", "version", "created_at", "updated_at"})


class RelationalStore(Storage):
    kind = "relational"

    def __init__(self, *, in_batch_size: int = 500):
        self.in_batch_size = in_batch_size
        self._local = threading.local()

    # ------------------------------------------------------------------
    # encoding
    # ------------------------------------------------------------------

    def _encode(self, table: str, key: str, value):
        if value is None:
            return None
        if key in reference_columns(table):
            return encode_reference(parse_identifier(value))
        return value

    def _encode_values(self, table: str, values: dict, protected: frozenset) -> dict:
        if not isinstance(values, dict):
            raise ValidationError("values must be a mapping")
        blocked = sorted(k for k in values if k in protected)
        if blocked:
            raise ValidationError(f"Field not allowed: {', '.join(blocked)}")
        check_columns(table, values.keys())
        return {k: self._encode(table, k, v) for k, v in values.items()}

    def _decode(self, table: str, mapping) -> dict:
        row = dict(mapping)
        row["id"] = LocalId(row["id"])
        for key in reference_columns(table):
            row[key] = parse_optional_identifier(row.get(key))
        return row

    # ------------------------------------------------------------------
    # filters
    # ------------------------------------------------------------------

    def _id_clause(self, t, value):
        if isinstance(value, In):
            idents = [parse_identifier(v) for v in value.values]
            local_ids = [i.value for i in idents if isinstance(i, LocalId)]
            remote_ids = [i.value for i in idents if isinstance(i, RemoteId)]
            parts = []
            if local_ids:
                parts.append(t.c.id.in_(local_ids))
            if remote_ids:
                parts.append(t.c.remote_id.in_(remote_ids))
            return or_(*parts) if parts else false()
        if isinstance(value, Range):
            return and_(*[
                _RANGE_OPS[op](t.c.id, v.value if isinstance(v, LocalId) else v)
                for op, v in value.bounds()
            ])
        ident = parse_identifier(value)
        if isinstance(ident, LocalId):
            return t.c.id == ident.value
        return t.c.remote_id == ident.value

    def _where(self, table: str, filter: Optional[dict]):
        t = table_for(table)
        if filter is not None and not isinstance(filter, dict):
            raise ValidationError("filter must be a mapping")
        clauses = []
        for key, value in (filter or {}).items():
            if key == "id":
                clauses.append(self._id_clause(t, value))
                continue
            check_columns(table, [key])
            col = t.c[key]
            if isinstance(value, In):
                encoded = [self._encode(table, key, v) for v in value.values]
                clauses.append(col.in_(encoded) if encoded else false())
            elif isinstance(value, Range):
                clauses.extend(_RANGE_OPS[op](col, v) for op, v in value.bounds())
            elif value is None:
                clauses.append(col.is_(None))
            else:
                clauses.append(col == self._encode(table, key, value))
        return and_(*clauses) if clauses else true()

    def _chunked_filters(self, filter: Optional[dict]) -> list[Optional[dict]]:
        key, chunks = split_membership(filter, self.in_batch_size)
        if key is None:
            return [filter]
        return [{**filter, key: In(chunk)} for chunk in chunks]

    # ------------------------------------------------------------------
    # Storage API
    # ------------------------------------------------------------------

    def query(self, table, filter=None, order_by=None, limit=None, offset=None):
        t = table_for(table)
        order = parse_order_by(order_by)
        check_columns(table, [k for k, _ in order])
        filters = self._chunked_filters(filter)

        if len(filters) == 1:
            stmt = select(t).where(self._where(table, filter))
            for key, desc in order:
                stmt = stmt.order_by(t.c[key].desc() if desc else t.c[key].asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            if offset:
                stmt = stmt.offset(offset)
            return [self._decode(table, r) for r in db.session.execute(stmt).mappings()]

        merged: dict[int, dict] = {}
        for chunk_filter in filters:
            stmt = select(t).where(self._where(table, chunk_filter))
            for r in db.session.execute(stmt).mappings():
                merged[r["id"]] = self._decode(table, r)
        rows = sort_rows(list(merged.values()), order_by)
        return page(rows, limit, offset)

    def count(self, table, filter=None):
        t = table_for(table)
        total = 0
        for chunk_filter in self._chunked_filters(filter):
            stmt = select(func.count()).select_from(t).where(self._where(table, chunk_filter))
            total += db.session.execute(stmt).scalar_one()
        return total

    def insert(self, table, values):
        t = table_for(table)
        data = self._encode_values(table, values, _PROTECTED_ON_INSERT)
        ts = now_ms()
        if data.get("created_at") is None:
            data["created_at"] = ts
        data["updated_at"] = ts
        data["synced"] = 0
        data["version"] = 0

        with self.transaction():
            result = self._execute(t.insert().values(**data))
            return LocalId(result.inserted_primary_key[0])

    def update(self, table, values, filter):
        t = table_for(table)
        if table in APPEND_ONLY_TABLES:
            raise ImmutableRecordError(f"{table} is append-only")
        if not filter:
            raise ValidationError("update requires a filter")
        data = self._encode_values(table, values, _PROTECTED_ON_UPDATE)
        data["updated_at"] = now_ms()
        data["synced"] = 0
        data["version"] = t.c.version + 1

        matched = 0
        with self.transaction():
            for chunk_filter in self._chunked_filters(filter):
                stmt = t.update().where(self._where(table, chunk_filter)).values(**data)
                matched += self._execute(stmt).rowcount
        return matched

    def delete(self, table, filter):
        t = table_for(table)
        if table in APPEND_ONLY_TABLES:
            raise ImmutableRecordError(f"{table} is append-only")
        if not filter:
            raise ValidationError("delete requires a filter")

        deleted = 0
        with self.transaction():
            for chunk_filter in self._chunked_filters(filter):
                deleted += self._execute(t.delete().where(self._where(table, chunk_filter))).rowcount
        return deleted

    @contextmanager
    def transaction(self):
        """
        Nested calls join the outermost transaction; only the outermost
        commits, and any exception escaping it rolls everything back.
        """
        depth = getattr(self._local, "depth", 0)
        self._local.depth = depth + 1
        try:
            yield self
        except BaseException:
            self._local.depth = depth
            if depth == 0:
                db.session.rollback()
            raise
        self._local.depth = depth
        if depth == 0:
            db.session.commit()

    def lock_row(self, table, identifier):
        t = table_for(table)
        stmt = select(t).where(self._id_clause(t, identifier)).with_for_update()
        row = db.session.execute(stmt).mappings().first()
        if row is None:
            raise NotFoundError(f"{table} {identifier} not found")
        return self._decode(table, row)

    def _execute(self, stmt):
        try:
            return db.session.execute(stmt)
        except IntegrityError as exc:
            raise ConflictError(str(exc.orig)) from exc

    # ------------------------------------------------------------------
    # replication support
    # ------------------------------------------------------------------

    def pending_rows(self, table: str, *, after_id: int = 0, limit: int = 100) -> list[dict]:
        """Raw (undecoded) rows with synced=0, ascending id, for pushing to the replica."""
        t = table_for(table)
        stmt = (
            select(t)
            .where(and_(t.c.synced == 0, t.c.id > after_id))
            .order_by(t.c.id.asc())
            .limit(limit)
        )
        return [dict(r) for r in db.session.execute(stmt).mappings()]

    def raw_row(self, table: str, local_id: int) -> Optional[dict]:
        t = table_for(table)
        row = db.session.execute(select(t).where(t.c.id == local_id)).mappings().first()
        return dict(row) if row is not None else None

    def mark_synced(self, table: str, acks: dict[int, tuple[str, int]]) -> int:
        """
        Flip synced=1 for rows the replica accepted.

        acks maps local id -> (remote id, version that was pushed). A row
        written after it was read for the push has a higher version, keeps
        synced=0 and goes again.
        Bypasses the append-only guard: only bookkeeping columns change.
        """
        if not acks:
            return 0
        t = table_for(table)
        marked = 0
        with self.transaction():
            for local_id, (remote_id, version) in acks.items():
                stmt = (
                    t.update()
                    .where(and_(t.c.id == local_id, t.c.version == version, t.c.synced == 0))
                    .values(synced=1, remote_id=remote_id)
                )
                marked += self._execute(stmt).rowcount
        return marked
