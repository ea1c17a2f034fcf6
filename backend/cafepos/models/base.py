from __future__ import annotations

from ..extensions import db


class SyncedRecordMixin:
    """
    Bookkeeping columns carried by every replicated table.

    id        - sequential id assigned by the local store (LocalId)
    remote_id - document id assigned by the replica once pushed (RemoteId)
    synced    - 0 until the current version of the row reaches the replica
    version   - bumped on every local write; a push is acknowledged against it
    created_at / updated_at - epoch milliseconds
    """
    id = db.Column(db.Integer, primary_key=True)
    remote_id = db.Column(db.String(64), nullable=True, unique=True)
    synced = db.Column(db.Integer, nullable=False, default=0, index=True)
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.BigInteger, nullable=False)
    updated_at = db.Column(db.BigInteger, nullable=False)
