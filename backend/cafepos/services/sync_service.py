# Overview: One-way replication of unsynced local rows into the document replica.

"""
Replication rules

- Only rows with synced=0 are read; they are pushed in batches per table
  and flipped to synced=1 once the replica acknowledged the exact version
  that was read (the row version must still match).
- The local row always wins: replica documents are overwritten, never
  merged, and nothing is pulled back. Replica documents are never deleted.
- TransientStorageError ends the pass; rows stay synced=0 and the worker
  backs off exponentially. Retries are unbounded, nothing is dead-lettered.
- ConflictError on a batch falls back to row-by-row pushes; rows the
  replica still rejects are logged and stay synced=0.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from flask import current_app

from ..identity import LocalId, parse_identifier
from ..storage.schema import SYNCABLE_TABLES
from ..time_utils import ms_to_iso, now_ms
from ..validation import ConflictError, TransientStorageError, ValidationError
from .concurrency import backoff_delay


def next_backoff_delay(consecutive_failures: int, *, base: float, cap: float) -> float:
    """0 after a success, then base, 2*base, 4*base ... up to cap."""
    if consecutive_failures <= 0:
        return 0.0
    return backoff_delay(consecutive_failures - 1, base=base, cap=cap)


@dataclass
class SyncResult:
    started_at: int
    finished_at: Optional[int] = None
    ok: bool = True
    error: Optional[str] = None
    pushed: dict = field(default_factory=dict)
    rejected: dict = field(default_factory=dict)

    @property
    def pushed_total(self) -> int:
        return sum(self.pushed.values())

    def to_dict(self) -> dict:
        return {
            "started_at": ms_to_iso(self.started_at),
            "finished_at": ms_to_iso(self.finished_at),
            "ok": self.ok,
            "error": self.error,
            "pushed": dict(self.pushed),
            "rejected": {t: list(ids) for t, ids in self.rejected.items()},
        }


class SyncQueue:
    """Pushes synced=0 rows from the relational primary to the document replica."""

    def __init__(self, source, replica, *, tables=SYNCABLE_TABLES, batch_size: int = 100):
        self.source = source
        self.replica = replica
        self.tables = tuple(tables)
        self.batch_size = batch_size
        self.last_result: Optional[SyncResult] = None
        self.consecutive_failures = 0
        self.online: Optional[bool] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------

    def run_once(self) -> SyncResult:
        """One pass over every syncable table."""
        logger = current_app.logger
        with self._lock:
            result = SyncResult(started_at=now_ms())
            try:
                for table in self.tables:
                    pushed, rejected = self._push_table(table)
                    if pushed:
                        result.pushed[table] = pushed
                    if rejected:
                        result.rejected[table] = rejected
            except TransientStorageError as exc:
                result.ok = False
                result.error = str(exc)
                self.mark_offline(exc)
            else:
                self.consecutive_failures = 0
                self.online = True
            result.finished_at = now_ms()
            self.last_result = result

        logger.info(
            "Sync pass %s: pushed=%d rejected=%d",
            "ok" if result.ok else "failed",
            result.pushed_total,
            sum(len(ids) for ids in result.rejected.values()),
        )
        return result

    def mark_offline(self, exc: Exception) -> None:
        self.consecutive_failures += 1
        self.online = False
        current_app.logger.warning(
            "Replica unavailable (%d consecutive failures): %s", self.consecutive_failures, exc
        )

    def _push_table(self, table: str) -> tuple[int, list[int]]:
        pushed = 0
        rejected: list[int] = []
        after_id = 0
        while True:
            rows = self.source.pending_rows(table, after_id=after_id, limit=self.batch_size)
            if not rows:
                break
            after_id = rows[-1]["id"]
            marked, failed = self._push_batch(table, rows)
            pushed += marked
            rejected.extend(failed)
            if len(rows) < self.batch_size:
                break
        return pushed, rejected

    def _push_batch(self, table: str, rows: list[dict]) -> tuple[int, list[int]]:
        rejected: list[int] = []
        try:
            written = self.replica.upsert_replicas(table, rows)
        except ConflictError as exc:
            current_app.logger.warning(
                "Replica rejected a batch of %d %s rows, retrying one by one: %s", len(rows), table, exc
            )
            written = {}
            for row in rows:
                try:
                    written.update(self.replica.upsert_replicas(table, [row]))
                except ConflictError as row_exc:
                    current_app.logger.error("Replica rejected %s id=%s: %s", table, row["id"], row_exc)
                    rejected.append(row["id"])

        acks = {
            row["id"]: (written[row["id"]], row["version"])
            for row in rows
            if row["id"] in written
        }
        return self.source.mark_synced(table, acks), rejected

    # ------------------------------------------------------------------

    def push_rows(self, table: str, rows: list[dict]) -> int:
        """Push specific raw rows now. Rows already synced are skipped."""
        pending = [r for r in rows if not r.get("synced")]
        if not pending:
            return 0
        marked, _ = self._push_batch(table, pending)
        return marked

    def push_record(self, table: str, identifier) -> bool:
        """
        Push one record immediately. A record already at synced=1 is left
        alone (no replica write). Returns whether it was pushed.
        """
        ident = parse_identifier(identifier)
        row = self.source.get(table, ident)
        if not isinstance(row["id"], LocalId):
            raise ValidationError("only locally stored records can be pushed")
        raw = self.source.raw_row(table, row["id"].value)
        return self.push_rows(table, [raw]) == 1

    def pending_counts(self) -> dict[str, int]:
        return {table: self.source.count(table, {"synced": 0}) for table in self.tables}

    def status(self) -> dict:
        pending = self.pending_counts()
        return {
            "online": self.online,
            "consecutive_failures": self.consecutive_failures,
            "pending": pending,
            "pending_total": sum(pending.values()),
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }


class SyncWorker(threading.Thread):
    """
    Background loop: ping the replica, run a pass, sleep. Sleeps the normal
    interval after a good pass and an exponential backoff after failures.
    Never touches request handling; foreground writes do not wait on it.
    """

    def __init__(
        self,
        app,
        *,
        interval: float,
        backoff_base: float,
        backoff_max: float,
        health_check: Callable[[], object] | None = None,
    ):
        super().__init__(name="cafepos-sync", daemon=True)
        self.app = app
        self.interval = interval
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.health_check = health_check
        self._stop_event = threading.Event()

    def tick(self) -> float:
        """Run one iteration; returns how long to wait before the next."""
        with self.app.app_context():
            queue = current_app.extensions["cafepos"]["sync"]
            health_check = self.health_check or queue.replica.ping
            try:
                health_check()
            except (TransientStorageError, ConflictError) as exc:
                queue.mark_offline(exc)
                return next_backoff_delay(queue.consecutive_failures, base=self.backoff_base, cap=self.backoff_max)

            result = queue.run_once()
            if result.ok:
                return self.interval
            return next_backoff_delay(queue.consecutive_failures, base=self.backoff_base, cap=self.backoff_max)

    def run(self) -> None:
        self.app.logger.info("Sync worker started (interval=%ss)", self.interval)
        while not self._stop_event.is_set():
            try:
                delay = self.tick()
            except Exception:
                self.app.logger.exception("Sync pass crashed")
                delay = self.backoff_max
            self._stop_event.wait(delay)
        self.app.logger.info("Sync worker stopped")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
