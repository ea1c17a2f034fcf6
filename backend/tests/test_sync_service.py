import pytest
from pymongo.errors import AutoReconnect

from cafepos.identity import LocalId, RemoteId
from cafepos.services import catalog_service, ledger_service
from cafepos.services.ledger_service import LedgerEntry, TransactionType
from cafepos.services.sync_service import SyncWorker, next_backoff_delay
from cafepos.storage import get_storage, get_sync_queue
from cafepos.validation import TransientStorageError


def _replica(app):
    return app.extensions["cafepos"]["replica"]


def test_local_rows_reach_replica_with_remote_ids(app, make_product):
    products = [make_product(name, 100 * n) for n, name in enumerate(["Latte", "Mocha", "Chai"], start=1)]
    store = get_storage()
    assert store.count("products", {"synced": 0}) == 3

    result = get_sync_queue().run_once()

    assert result.ok
    assert result.pushed == {"products": 3}
    assert store.count("products", {"synced": 0}) == 0
    replica = _replica(app)
    for product in products:
        local = store.get("products", product["id"])
        assert local["remote_id"]
        copy = replica.get("products", product["id"])
        assert copy["id"] == RemoteId(local["remote_id"])
        assert copy["name"] == local["name"]
        assert copy["price_cents"] == local["price_cents"]


def test_second_pass_pushes_nothing(app, flaky_replica, make_product):
    make_product()
    queue = get_sync_queue()
    queue.run_once()
    flaky_replica.calls.clear()

    result = queue.run_once()

    assert result.ok
    assert result.pushed == {}
    assert flaky_replica.calls == []
    assert _replica(app).count("products") == 1


def test_edited_row_overwrites_same_replica_document(app, make_product):
    product = make_product("Latte", 300)
    queue = get_sync_queue()
    queue.run_once()
    first_remote = get_storage().get("products", product["id"])["remote_id"]

    catalog_service.update_product(product["id"], {"price_cents": 350})
    assert get_storage().get("products", product["id"])["synced"] == 0
    queue.run_once()

    replica = _replica(app)
    assert replica.count("products") == 1
    copy = replica.get("products", product["id"])
    assert copy["price_cents"] == 350
    assert copy["remote_id"] == first_remote
    assert get_storage().get("products", product["id"])["synced"] == 1


def test_replica_outage_leaves_rows_pending(app, flaky_replica, make_product):
    make_product()
    queue = get_sync_queue()
    flaky_replica.error = AutoReconnect("connection refused")

    failed = queue.run_once()
    assert not failed.ok
    assert "connection refused" in failed.error
    assert queue.online is False
    assert queue.consecutive_failures == 1
    assert get_storage().count("products", {"synced": 0}) == 1

    queue.run_once()
    assert queue.consecutive_failures == 2

    flaky_replica.error = None
    recovered = queue.run_once()
    assert recovered.ok
    assert queue.online is True
    assert queue.consecutive_failures == 0
    assert get_storage().count("products", {"synced": 0}) == 0


def test_rejected_batch_retried_row_by_row(app, flaky_replica):
    store = get_storage()
    good = [store.insert("categories", {"name": name}) for name in ("Hot", "Cold")]
    bad = store.insert("categories", {"name": "Bad"})

    def _reject_bad(method, args):
        return method == "insert_many" and any(doc.get("name") == "Bad" for doc in args[0])

    flaky_replica.reject = _reject_bad
    result = get_sync_queue().run_once()

    assert result.ok
    assert result.pushed == {"categories": 2}
    assert result.rejected == {"categories": [bad.value]}
    for ident in good:
        assert store.get("categories", ident)["synced"] == 1
    assert store.get("categories", bad)["synced"] == 0


def test_pending_rows_pushed_in_batches(app, flaky_replica):
    store = get_storage()
    for n in range(5):
        store.insert("categories", {"name": f"Shelf {n}"})
    queue = get_sync_queue()
    queue.batch_size = 2

    result = queue.run_once()

    assert result.pushed == {"categories": 5}
    assert flaky_replica.calls.count("insert_many") == 3
    assert _replica(app).count("categories") == 5


def test_ledger_entries_replicate_with_references(app, make_product):
    product = make_product("Beans", is_purchasable=True)
    entry = ledger_service.append_entry(LedgerEntry(
        product_id=product["id"],
        transaction_type=TransactionType.PURCHASE,
        quantity_in=12,
    ))
    get_sync_queue().run_once()

    assert get_storage().get("inventory_ledger", entry.id)["synced"] == 1
    copy = _replica(app).get("inventory_ledger", entry.id)
    assert copy["product_id"] == LocalId(product["id"].value)
    assert copy["quantity_in"] == 12


def test_ack_for_stale_version_is_ignored(app):
    store = get_storage()
    new_id = store.insert("categories", {"name": "Bakery"})
    pushed = store.get("categories", new_id)["version"]
    store.update("categories", {"display_order": 3}, {"id": new_id})
    assert store.get("categories", new_id)["version"] == pushed + 1

    assert store.mark_synced("categories", {new_id.value: ("abc", pushed)}) == 0
    assert store.get("categories", new_id)["synced"] == 0


def test_write_during_push_in_same_millisecond_stays_pending(app, monkeypatch):
    monkeypatch.setattr("cafepos.storage.relational.now_ms", lambda: 1_700_000_000_000)
    store = get_storage()
    new_id = store.insert("categories", {"name": "Bakery"})
    replica = _replica(app)
    real_upsert = replica.upsert_replicas

    def _upsert_then_edit(table, rows):
        written = real_upsert(table, rows)
        store.update("categories", {"name": "Bakery and Bread"}, {"id": new_id})
        return written

    monkeypatch.setattr(replica, "upsert_replicas", _upsert_then_edit)
    queue = get_sync_queue()
    queue.run_once()
    row = store.get("categories", new_id)
    assert row["synced"] == 0
    assert row["version"] == 1

    monkeypatch.setattr(replica, "upsert_replicas", real_upsert)
    queue.run_once()
    assert store.get("categories", new_id)["synced"] == 1
    assert replica.get("categories", new_id)["name"] == "Bakery and Bread"


def test_edited_rows_rewritten_in_one_bulk_call(app, flaky_replica):
    store = get_storage()
    ids = [store.insert("categories", {"name": f"Shelf {n}"}) for n in range(3)]
    queue = get_sync_queue()
    queue.run_once()
    for ident in ids:
        store.update("categories", {"display_order": 5}, {"id": ident})
    flaky_replica.calls.clear()

    result = queue.run_once()

    assert result.pushed == {"categories": 3}
    assert flaky_replica.calls.count("bulk_write") == 1
    assert "update_one" not in flaky_replica.calls
    assert [c["display_order"] for c in _replica(app).query("categories")] == [5, 5, 5]


def test_push_record_skips_synced_rows(app, make_product):
    product = make_product()
    queue = get_sync_queue()
    assert queue.push_record("products", product["id"]) is True
    assert queue.push_record("products", product["id"]) is False
    assert _replica(app).count("products") == 1


def test_status_reports_pending_counts(app, make_product):
    make_product()
    make_product("Mocha")
    queue = get_sync_queue()

    status = queue.status()
    assert status["pending"]["products"] == 2
    assert status["pending_total"] == 2
    assert status["last_result"] is None

    queue.run_once()
    status = queue.status()
    assert status["pending_total"] == 0
    assert status["online"] is True
    assert status["last_result"]["pushed"] == {"products": 2}


@pytest.mark.parametrize("failures, expected", [(0, 0.0), (1, 2.0), (2, 4.0), (3, 8.0), (10, 60.0)])
def test_backoff_grows_and_caps(failures, expected):
    assert next_backoff_delay(failures, base=2.0, cap=60.0) == expected


def test_worker_tick_backs_off_then_recovers(app, make_product):
    make_product()
    state = {"down": True}

    def health_check():
        if state["down"]:
            raise TransientStorageError("replica unreachable")

    worker = SyncWorker(app, interval=30.0, backoff_base=1.0, backoff_max=4.0, health_check=health_check)
    assert [worker.tick() for _ in range(4)] == [1.0, 2.0, 4.0, 4.0]
    assert get_storage().count("products", {"synced": 0}) == 1

    state["down"] = False
    assert worker.tick() == 30.0
    assert get_storage().count("products", {"synced": 0}) == 0


def test_worker_stops(app):
    def health_check():
        raise TransientStorageError("replica unreachable")

    worker = SyncWorker(app, interval=30.0, backoff_base=1.0, backoff_max=4.0, health_check=health_check)
    worker.start()
    worker.stop(timeout=5)
    assert not worker.is_alive()
