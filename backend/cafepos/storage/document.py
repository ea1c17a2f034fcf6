"""
Document Storage backend (pymongo).

Used two ways: as the primary store when STORAGE_BACKEND=document, and as
the replica the sync queue pushes into. One collection per table.

RemoteId resolves to _id (an ObjectId when the text is one), LocalId to the
local_id field written by replication. Relational filter semantics are
emulated with native operators ($in, $gt/$gte/$lt/$lte); membership lists
longer than in_batch_size are split into several queries and merged.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, UpdateOne
from pymongo.errors import ConnectionFailure, ExecutionTimeout, PyMongoError, WTimeoutError

from ..identity import LocalId, RemoteId, encode_reference, parse_identifier, parse_optional_identifier
from ..time_utils import now_ms
from ..validation import ConflictError, ImmutableRecordError, NotFoundError, TransientStorageError, ValidationError
from . import In, Range, Storage, page, parse_order_by, sort_rows, split_membership
from .schema import APPEND_ONLY_TABLES, check_columns, reference_columns, scalar_defaults, table_for

_PROTECTED_ON_INSERT = frozenset({"id", "remote_id", "synced", "version", "updated_at"})
_PROTECTED_ON_UPDATE = frozenset({"id", "remote_id", "synced", "version", "created_at", "updated_at"})

# Fields not copied from a relational row into its replica document
_REPLICA_SKIP = frozenset({"id", "remote_id", "synced"})


def _object_id(value: str):
    return ObjectId(value) if ObjectId.is_valid(value) else value


@contextmanager
def _driver_errors():
    """Translate pymongo failures into the storage error taxonomy."""
    try:
        yield
    except (ConnectionFailure, ExecutionTimeout, WTimeoutError) as exc:
        raise TransientStorageError(str(exc)) from exc
    except PyMongoError as exc:
        raise ConflictError(str(exc)) from exc


class DocumentStore(Storage):
    kind = "document"

    def __init__(self, database, *, in_batch_size: int = 30):
        self.database = database
        self.in_batch_size = in_batch_size

    def collection(self, table: str):
        table_for(table)
        return self.database[table]

    # ------------------------------------------------------------------
    # encoding
    # ------------------------------------------------------------------

    def _encode(self, table: str, key: str, value):
        if value is None:
            return None
        if key in reference_columns(table):
            return encode_reference(parse_identifier(value))
        return value

    def _decode(self, table: str, doc: dict) -> dict:
        row = {k: v for k, v in doc.items() if k != "_id"}
        row["id"] = RemoteId(str(doc["_id"]))
        row["remote_id"] = str(doc["_id"])
        for key in reference_columns(table):
            row[key] = parse_optional_identifier(row.get(key))
        return row

    def _id_condition(self, value) -> dict:
        if isinstance(value, In):
            idents = [parse_identifier(v) for v in value.values]
            local_ids = [i.value for i in idents if isinstance(i, LocalId)]
            remote_ids = [_object_id(i.value) for i in idents if isinstance(i, RemoteId)]
            parts = []
            if local_ids:
                parts.append({"local_id": {"$in": local_ids}})
            if remote_ids:
                parts.append({"_id": {"$in": remote_ids}})
            if not parts:
                return {"_id": {"$in": []}}
            return parts[0] if len(parts) == 1 else {"$or": parts}
        if isinstance(value, Range):
            return {"local_id": {
                f"${op}": v.value if isinstance(v, LocalId) else v for op, v in value.bounds()
            }}
        ident = parse_identifier(value)
        if isinstance(ident, LocalId):
            return {"local_id": ident.value}
        return {"_id": _object_id(ident.value)}

    def _where(self, table: str, filter: Optional[dict]) -> dict:
        if filter is not None and not isinstance(filter, dict):
            raise ValidationError("filter must be a mapping")
        clauses = []
        for key, value in (filter or {}).items():
            if key == "id":
                clauses.append(self._id_condition(value))
                continue
            check_columns(table, [key])
            if key == "remote_id":
                clauses.append({"_id": _object_id(value) if value is not None else None})
                continue
            if isinstance(value, In):
                clauses.append({key: {"$in": [self._encode(table, key, v) for v in value.values]}})
            elif isinstance(value, Range):
                clauses.append({key: {f"${op}": v for op, v in value.bounds()}})
            else:
                clauses.append({key: self._encode(table, key, value)})
        if not clauses:
            return {}
        return clauses[0] if len(clauses) == 1 else {"$and": clauses}

    def _chunked_filters(self, filter: Optional[dict]) -> list[Optional[dict]]:
        key, chunks = split_membership(filter, self.in_batch_size)
        if key is None:
            return [filter]
        return [{**filter, key: In(chunk)} for chunk in chunks]

    def _sort_spec(self, order_by) -> list[tuple[str, int]]:
        spec = []
        for key, desc in parse_order_by(order_by):
            field = "_id" if key == "id" else key
            spec.append((field, DESCENDING if desc else ASCENDING))
        return spec

    # ------------------------------------------------------------------
    # Storage API
    # ------------------------------------------------------------------

    def query(self, table, filter=None, order_by=None, limit=None, offset=None):
        coll = self.collection(table)
        order = parse_order_by(order_by)
        check_columns(table, [k for k, _ in order])
        filters = self._chunked_filters(filter)

        with _driver_errors():
            if len(filters) == 1:
                cursor = coll.find(self._where(table, filter))
                spec = self._sort_spec(order_by)
                if spec:
                    cursor = cursor.sort(spec)
                if offset:
                    cursor = cursor.skip(offset)
                if limit is not None:
                    if limit <= 0:
                        return []
                    cursor = cursor.limit(limit)
                return [self._decode(table, d) for d in cursor]

            merged: dict = {}
            for chunk_filter in filters:
                for d in coll.find(self._where(table, chunk_filter)):
                    merged[d["_id"]] = self._decode(table, d)
        rows = sort_rows(list(merged.values()), order_by)
        return page(rows, limit, offset)

    def count(self, table, filter=None):
        coll = self.collection(table)
        total = 0
        with _driver_errors():
            for chunk_filter in self._chunked_filters(filter):
                total += coll.count_documents(self._where(table, chunk_filter))
        return total

    def insert(self, table, values):
        coll = self.collection(table)
        if not isinstance(values, dict):
            raise ValidationError("values must be a mapping")
        blocked = sorted(k for k in values if k in _PROTECTED_ON_INSERT)
        if blocked:
            raise ValidationError(f"Field not allowed: {', '.join(blocked)}")
        check_columns(table, values.keys())

        doc = scalar_defaults(table)
        doc.update({k: self._encode(table, k, v) for k, v in values.items()})
        ts = now_ms()
        if doc.get("created_at") is None:
            doc["created_at"] = ts
        doc["updated_at"] = ts
        doc["version"] = 0
        # Written straight to the remote store: nothing left to replicate.
        doc["synced"] = 1
        doc["_id"] = ObjectId()

        with _driver_errors():
            coll.insert_one(doc)
        return RemoteId(str(doc["_id"]))

    def update(self, table, values, filter):
        coll = self.collection(table)
        if table in APPEND_ONLY_TABLES:
            raise ImmutableRecordError(f"{table} is append-only")
        if not filter:
            raise ValidationError("update requires a filter")
        blocked = sorted(k for k in values if k in _PROTECTED_ON_UPDATE)
        if blocked:
            raise ValidationError(f"Field not allowed: {', '.join(blocked)}")
        check_columns(table, values.keys())
        patch = {k: self._encode(table, k, v) for k, v in values.items()}
        patch["updated_at"] = now_ms()

        matched = 0
        with _driver_errors():
            for chunk_filter in self._chunked_filters(filter):
                matched += coll.update_many(
                    self._where(table, chunk_filter), {"$set": patch, "$inc": {"version": 1}}
                ).matched_count
        return matched

    def delete(self, table, filter):
        coll = self.collection(table)
        if table in APPEND_ONLY_TABLES:
            raise ImmutableRecordError(f"{table} is append-only")
        if not filter:
            raise ValidationError("delete requires a filter")

        deleted = 0
        with _driver_errors():
            for chunk_filter in self._chunked_filters(filter):
                deleted += coll.delete_many(self._where(table, chunk_filter)).deleted_count
        return deleted

    @contextmanager
    def transaction(self):
        # Standalone servers have no multi-document transactions; writes
        # apply one at a time and each is individually atomic.
        yield self

    def lock_row(self, table, identifier):
        rows = self.query(table, {"id": identifier}, limit=1)
        if not rows:
            raise NotFoundError(f"{table} {identifier} not found")
        return rows[0]

    # ------------------------------------------------------------------
    # replica side
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        with _driver_errors():
            self.database.command("ping")
        return True

    def upsert_replicas(self, table: str, rows: list[dict]) -> dict[int, str]:
        """
        Write relational rows (raw, as returned by RelationalStore.pending_rows)
        into the replica collection keyed by local_id.

        Existing documents are overwritten field by field (the local copy
        wins) in one bulk_write; new ones are inserted in one insert_many.
        Nothing is ever deleted. Returns {local_id: remote_id} for every row written.
        """
        if not rows:
            return {}
        coll = self.collection(table)
        local_ids = [r["id"] for r in rows]

        existing: dict[int, object] = {}
        with _driver_errors():
            for i in range(0, len(local_ids), self.in_batch_size):
                chunk = local_ids[i:i + self.in_batch_size]
                for d in coll.find({"local_id": {"$in": chunk}}, {"_id": 1, "local_id": 1}):
                    existing[d["local_id"]] = d["_id"]

            written: dict[int, str] = {}
            new_docs = []
            updates = []
            for row in rows:
                doc = {k: v for k, v in row.items() if k not in _REPLICA_SKIP}
                doc["local_id"] = row["id"]
                doc["synced"] = 1
                if row["id"] in existing:
                    doc_id = existing[row["id"]]
                    updates.append(UpdateOne({"_id": doc_id}, {"$set": doc}))
                else:
                    doc_id = _object_id(row["remote_id"]) if row.get("remote_id") else ObjectId()
                    new_docs.append({"_id": doc_id, **doc})
                written[row["id"]] = str(doc_id)

            if updates:
                coll.bulk_write(updates, ordered=True)
            if new_docs:
                coll.insert_many(new_docs, ordered=True)
        return written
