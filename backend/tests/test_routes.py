"""HTTP surface: JSON shapes, actor header and error-to-status mapping."""

from pymongo.errors import AutoReconnect


def _create_product(client, **values):
    body = {"name": "Latte", "price_cents": 300, **values}
    resp = client.post("/api/products", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["product"]


def test_health_reports_primary_and_replica(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["primary"]["backend"] == "relational"
    assert body["replica"]["status"] == "reachable"


def test_health_stays_up_when_replica_is_down(client, flaky_replica):
    flaky_replica.error = AutoReconnect("down")
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["replica"]["status"] == "unreachable"


def test_product_crud_and_validation(client):
    product = _create_product(client, is_purchasable=True)
    assert isinstance(product["id"], int)
    assert product["synced"] == 0

    resp = client.patch(f"/api/products/{product['id']}", json={"price_cents": 350})
    assert resp.status_code == 200
    assert resp.get_json()["product"]["price_cents"] == 350

    assert client.post("/api/products", json={"name": "No price"}).status_code == 400
    assert client.post("/api/products", json={"name": "X", "price_cents": 1.5}).status_code == 400
    assert client.post("/api/products", json={"name": "X", "price_cents": 1, "synced": 1}).status_code == 400
    assert client.get("/api/products/424242").status_code == 404


def test_ledger_entry_records_actor(client):
    product = _create_product(client, is_purchasable=True)
    resp = client.post(
        "/api/inventory/entries",
        json={"product_id": product["id"], "transaction_type": "purchase", "quantity_in": 12},
        headers={"X-Actor-Id": "manager-7"},
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["entry"]["created_by"] == "manager-7"
    assert body["stock"] == 12

    resp = client.post(f"/api/inventory/{product['id']}/adjust", json={"quantity": 12})
    assert resp.status_code == 200
    assert resp.get_json()["entry"] is None

    bad = client.post(
        "/api/inventory/entries",
        json={"product_id": product["id"], "transaction_type": "purchase", "quantity_in": 1, "quantity_out": 1},
    )
    assert bad.status_code == 400

    history = client.get(f"/api/inventory/{product['id']}/history").get_json()
    assert len(history["entries"]) == 1

    levels = client.get(f"/api/inventory/stock?product_ids={product['id']}").get_json()
    assert levels["stock"] == [{"product_id": product["id"], "stock": 12}]


def test_order_flow_over_http(client):
    product = _create_product(client, price_cents=450)

    resp = client.post("/api/orders", json={"order_type": "takeaway"}, headers={"X-Actor-Id": "till-2"})
    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["created_by"] == "till-2"

    resp = client.post(f"/api/orders/{order['id']}/items", json={"product_id": product["id"], "quantity": 2})
    assert resp.status_code == 201
    assert resp.get_json()["order"]["total_cents"] == 900
    assert len(resp.get_json()["order"]["items"]) == 1

    resp = client.post(f"/api/orders/{order['id']}/payments", json={"method": "cash", "amount_cents": 1000})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["change_cents"] == 100
    assert body["order"]["status"] == "completed"
    assert body["order"]["amount_due_cents"] == 0

    resp = client.post(f"/api/orders/{order['id']}/cancel")
    assert resp.status_code == 400
    assert resp.get_json()["details"]["status"] == "completed"


def test_occupied_table_is_a_conflict(client):
    table = client.post("/api/tables", json={"table_number": "B4"}).get_json()["table"]
    first = client.post("/api/orders", json={"order_type": "dine_in", "table_id": table["id"]})
    assert first.status_code == 201
    second = client.post("/api/orders", json={"order_type": "dine_in", "table_id": table["id"]})
    assert second.status_code == 409


def test_credit_overpayment_rejected(client):
    customer = client.post("/api/customers", json={"name": "Anil"}).get_json()["customer"]
    url = f"/api/customers/{customer['id']}/credit"

    assert client.post(url, json={"transaction_type": "credit", "amount_cents": 400}).status_code == 201
    resp = client.post(url, json={"transaction_type": "payment", "amount_cents": 500})
    assert resp.status_code == 400

    statement = client.get(url).get_json()
    assert statement["balance_cents"] == 400
    assert len(statement["transactions"]) == 1

    verify = client.get(f"{url}/verify").get_json()
    assert verify == {"consistent": True, "problems": []}

    resp = client.post("/api/customers", json={"name": "Sneaky", "credit_balance_cents": 10})
    assert resp.status_code == 400


def test_low_stock_report_over_http(client):
    product = _create_product(client, name="Milk", price_cents=0, is_purchasable=True, is_sellable=False)
    client.post(
        "/api/inventory/entries",
        json={"product_id": product["id"], "transaction_type": "purchase", "quantity_in": 2},
    )
    resp = client.get("/api/reports/low-stock?threshold=5")
    assert resp.status_code == 200
    rows = resp.get_json()["products"]
    assert [(r["product_id"], r["stock"]) for r in rows] == [(product["id"], 2)]


def test_expenses_over_http(client):
    resp = client.post(
        "/api/expenses",
        json={"title": "Gas refill", "amount_cents": 1800, "payment_method": "card"},
        headers={"X-Actor-Id": "manager-7"},
    )
    assert resp.status_code == 201
    expense = resp.get_json()["expense"]
    assert expense["expense_number"].startswith("EXP ")
    assert expense["created_by"] == "manager-7"

    assert client.get(f"/api/expenses/{expense['id']}").get_json()["expense"]["title"] == "Gas refill"
    assert [e["id"] for e in client.get("/api/expenses").get_json()["expenses"]] == [expense["id"]]
    assert client.post("/api/expenses", json={"title": "No amount"}).status_code == 400
    assert client.get("/api/expenses?start=soon").status_code == 400

    resp = client.patch(f"/api/expenses/{expense['id']}", json={"category": "utilities"})
    assert resp.get_json()["expense"]["category"] == "utilities"

    summary = client.get("/api/reports/sales").get_json()
    assert summary["expenses_cents"] == 1800
    assert summary["net_profit_cents"] == -1800


def test_sales_report_rejects_bad_dates(client):
    assert client.get("/api/reports/sales?start=yesterday&end=today").status_code == 400
    assert client.get("/api/reports/sales").status_code == 200


def test_sync_status_and_manual_run(client):
    _create_product(client)
    status = client.get("/api/sync/status").get_json()
    assert status["enabled"] is True
    assert status["pending"]["products"] == 1

    resp = client.post("/api/sync/run")
    assert resp.status_code == 200
    assert resp.get_json()["result"]["pushed"] == {"products": 1}
    assert client.get("/api/sync/status").get_json()["pending_total"] == 0


def test_sync_run_reports_outage(client, flaky_replica):
    _create_product(client)
    flaky_replica.error = AutoReconnect("down")
    resp = client.post("/api/sync/run")
    assert resp.status_code == 503
    assert resp.get_json()["result"]["ok"] is False
