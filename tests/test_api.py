from datetime import date

CUSTOMER = {
    "name": "Lakshmi",
    "area_name": "Gandhi Nagar",
    "phone_number": "9876543210",
    "amount_given": 5000,
    "interest_amount": 500,
    "document_charge": 100,
    "start_date": "2024-01-01",
    "collection_line": "monday-morning",
}


def register(client, **overrides):
    res = client.post("/api/customers", json={**CUSTOMER, **overrides})
    assert res.status_code == 201, res.text
    return res.json()


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Collection Ledger API running"
    assert client.get("/test").json()["storage"] == "MemStorage"


def test_register_customer(client):
    customer = register(client)

    assert customer["customer_number"] == "C0001"
    assert customer["total_amount"] == "5500.00"
    assert customer["end_date"] == "2024-03-11"
    assert client.get(f"/api/customers/{customer['id']}").json() == customer
    assert len(client.get("/api/customers").json()) == 1


def test_register_customer_field_errors(client):
    res = client.post("/api/customers", json={**CUSTOMER, "phone_number": "12345"})
    assert res.status_code == 422
    assert any(err["loc"][-1] == "phone_number" for err in res.json()["detail"])

    register(client, customer_number="C0009")
    res = client.post("/api/customers", json={**CUSTOMER, "customer_number": "C0009"})
    assert res.status_code == 400
    assert res.json()["detail"][0]["loc"] == ["body", "customer_number"]


def test_customer_not_found(client):
    assert client.get("/api/customers/missing").status_code == 404
    assert client.put("/api/customers/missing", json={"status": "completed"}).status_code == 404


def test_customer_patch_and_line_listing(client):
    customer = register(client)
    register(client, collection_line="tuesday-morning")

    res = client.put(f"/api/customers/{customer['id']}", json={"status": "completed"})
    assert res.json()["status"] == "completed"
    assert client.get("/api/customers/line/monday-morning").json() == []
    assert len(client.get("/api/customers/line/tuesday-morning").json()) == 1
    assert client.get("/api/customers/line/saturday-night").status_code == 400


def test_schedule_preview(client):
    res = client.get("/api/schedule/preview", params={"amountGiven": 5000, "interestAmount": 500, "startDate": "2024-01-01"})
    assert res.json() == {"start_date": "2024-01-01", "end_date": "2024-03-11", "total_amount": 5500.0, "weekly_due": 550.0}


def test_payments_upsert_and_progress(client):
    customer = register(client)
    payment = {"customer_id": customer["id"], "collection_date": "2024-01-08", "amount_paid": 275}

    first = client.post("/api/payments", json=payment).json()
    second = client.post("/api/payments", json={**payment, "amount_paid": 550, "payment_mode": "gpay"}).json()

    assert first["id"] == second["id"]
    assert second["payment_status"] == "paid"
    rows = client.get("/api/collections", params={"date": "2024-01-08", "line": "monday-morning"}).json()
    assert len(rows) == 1

    progress = client.get(f"/api/customers/{customer['id']}/progress").json()
    assert progress["total_paid"] == 550
    assert progress["completed_weeks"] == 1
    assert progress["percent"] == 10


def test_collections_require_date_and_line(client):
    assert client.get("/api/collections", params={"date": "2024-01-08"}).status_code == 400


def test_collection_crud(client):
    customer = register(client)
    created = client.post("/api/collections", json={
        "customer_id": customer["id"],
        "collection_date": "2024-01-08",
        "collection_line": "monday-morning",
        "due_amount": 550,
        "amount_paid": 0,
        "payment_status": "paid",
    })
    assert created.status_code == 201
    row = created.json()
    assert row["payment_status"] == "pending"

    updated = client.put(f"/api/collections/{row['id']}", json={"amount_paid": 300}).json()
    assert updated["payment_status"] == "partial"
    assert len(client.get(f"/api/collections/customer/{customer['id']}").json()) == 1

    assert client.delete(f"/api/collections/{row['id']}").json() == {"success": True}
    assert client.delete(f"/api/collections/{row['id']}").status_code == 404
    assert client.put(f"/api/collections/{row['id']}", json={"amount_paid": 1}).status_code == 404


def test_payment_for_unknown_customer(client):
    res = client.post("/api/payments", json={"customer_id": "nobody", "collection_date": "2024-01-08", "amount_paid": 10})
    assert res.status_code == 404
    assert res.json() == {"detail": "Customer not found"}


def test_entries(client):
    entry = {"entry_date": "2024-01-08", "collection_line": "monday-morning", "target_amount": 550, "total_collected": 500, "expenses": 40}
    created = client.post("/api/entries", json=entry)
    assert created.status_code == 201
    entry_id = created.json()["id"]

    assert client.get("/api/entries/2024-01-08/monday-morning").json()["id"] == entry_id
    assert client.get("/api/entries/2024-01-09/monday-morning").status_code == 404

    updated = client.put(f"/api/entries/{entry_id}", json={"expenses": 60}).json()
    assert updated["expenses"] == "60.00"
    assert client.put("/api/entries/missing", json={"expenses": 1}).status_code == 404

    listed = client.get("/api/entries", params={"startDate": "2024-01-01", "endDate": "2024-01-31"}).json()
    assert [e["id"] for e in listed] == [entry_id]


def test_expenses(client):
    res = client.post("/api/expenses", json=[
        {"date": "2024-01-08", "collection_line": "monday-morning", "category": "fuel", "amount": 120, "description": "bike"},
        {"date": "2024-01-08", "collection_line": "monday-evening", "category": "food", "amount": 30},
    ])
    assert res.status_code == 201
    assert len(res.json()) == 2
    assert client.post("/api/expenses", json=[]).status_code == 400
    assert len(client.get("/api/expenses", params={"date": "2024-01-08", "line": "monday-morning"}).json()) == 1


def test_consolidated_stats(client):
    customer = register(client)
    client.post("/api/payments", json={"customer_id": customer["id"], "collection_date": "2024-01-08", "amount_paid": 1000})
    client.post("/api/entries", json={"entry_date": "2024-01-08", "collection_line": "monday-morning", "expenses": 200})

    stats = client.get("/api/dashboard/consolidated-stats", params={"startDate": "2024-01-01", "endDate": "2024-01-31"}).json()

    assert stats["amount_collected"] == 1000
    assert stats["target_amount"] == 550
    assert stats["collection_rate"] == 182
    assert stats["total_expenses"] == 200
    assert stats["collection_profit"] == 800
    assert stats["new_loans_profit"] == 600
    assert stats["total_profit"] == 1400
    assert stats["total_outstanding"] == 5500
    assert stats["line_amounts"]["monday-morning"] == 5000

    bad = client.get("/api/dashboard/consolidated-stats", params={"startDate": "2024-02-01", "endDate": "2024-01-01"})
    assert bad.status_code == 400
    assert bad.json()["detail"][0]["loc"] == ["query", "startDate"]


def test_today_dashboard(client):
    today = date.today().isoformat()
    register(client)
    client.post("/api/entries", json={"entry_date": today, "collection_line": "monday-morning", "target_amount": 550, "total_collected": 275, "expenses": 25})

    stats = client.get("/api/dashboard/stats").json()

    assert stats["active_loans"] == 1
    assert stats["collection_rate"] == 50
    assert stats["today_collection_profit"] == 250
    assert stats["total_profit"] == 850


def test_reports_filter_by_line(client):
    for line, collected in (("monday-morning", 500), ("tuesday-morning", 300)):
        client.post("/api/entries", json={"entry_date": "2024-01-08", "collection_line": line, "target_amount": 1000, "total_collected": collected})

    report = client.get("/api/reports", params={"startDate": "2024-01-01", "endDate": "2024-01-31", "line": "tuesday-morning"}).json()

    assert report["records"] == 1
    assert report["period_rate"] == 30
    assert report["rows"][0]["collection_rate"] == 30


def test_lines(client):
    customer = register(client)
    client.post("/api/payments", json={"customer_id": customer["id"], "collection_date": "2024-01-08", "amount_paid": 550})

    lines = client.get("/api/lines").json()
    assert [l["key"] for l in lines][:2] == ["monday-morning", "monday-evening"]
    assert lines[0]["target"] == 550

    current = client.get("/api/lines/current").json()
    assert current["line"] in {l["key"] for l in lines}

    sheet = client.get("/api/lines/monday-morning/sheet", params={"date": "2024-01-08"}).json()
    assert sheet["total_collected"] == 550
    assert sheet["rows"][0]["payment_status"] == "paid"


def test_money_with_more_than_two_places_is_rejected(client):
    res = client.post("/api/customers", json={**CUSTOMER, "amount_given": 0.005, "interest_amount": 0.005})
    assert res.status_code == 422
    assert {err["loc"][-1] for err in res.json()["detail"]} == {"amount_given", "interest_amount"}
    assert client.get("/api/customers").json() == []

    customer = register(client, amount_given=1000.5, interest_amount=99.75)
    assert customer["total_amount"] == "1100.25"
    res = client.post("/api/payments", json={"customer_id": customer["id"], "collection_date": "2024-01-08", "amount_paid": 110.025})
    assert res.status_code == 422
