"""
API tests - batches, ledger and alerts through the response envelope
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from pharmacy_stock.models import Product


@pytest.fixture
def product_id(db):
    p = Product(name="Omeprazol 20mg", price=Decimal("3.00"), stock=0)
    db.add(p)
    db.flush()
    pid = p.id
    db.commit()
    return pid


def _batch_payload(product_id, today, number="B1", days=400, qty=100):
    return {
        "product_id": product_id,
        "batch_number": number,
        "expiration_date": (today + timedelta(days=days)).isoformat(),
        "initial_quantity": qty,
        "purchase_price": "1.00",
        "sale_price": "2.00",
    }


class TestHealthAndAuth:
    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_missing_token(self, client):
        r = client.get("/api/alerts", headers={"Authorization": ""})
        assert r.status_code == 401
        body = r.json()
        assert body["status"] is False
        assert body["error"]["msg"] == "Missing token"

    def test_invalid_token(self, client):
        r = client.get("/api/alerts", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401


class TestBatchesAPI:
    def test_create_and_fetch(self, client, product_id, today):
        r = client.post("/api/batches", json=_batch_payload(product_id, today))
        assert r.status_code == 201
        batch = r.json()["data"]
        assert batch["status"] == "active"
        assert batch["current_quantity"] == 100

        r = client.get(f"/api/batches/{batch['id']}")
        assert r.status_code == 200
        assert r.json()["data"]["product"]["id"] == product_id

    def test_duplicate_is_conflict(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today))
        r = client.post("/api/batches", json=_batch_payload(product_id, today))
        assert r.status_code == 409
        assert r.json()["error"]["details"]["batch_number"] == "B1"

    def test_validation_error_envelope(self, client, product_id, today):
        payload = _batch_payload(product_id, today)
        payload["initial_quantity"] = -1
        r = client.post("/api/batches", json=payload)
        assert r.status_code == 422
        assert r.json()["error"]["msg"] == "Validation error"

    def test_unknown_batch(self, client):
        r = client.get("/api/batches/999")
        assert r.status_code == 404

    def test_toggle_block_and_delete_rules(self, client, product_id, today):
        bid = client.post("/api/batches", json=_batch_payload(product_id, today)).json()["data"]["id"]

        r = client.post(f"/api/batches/{bid}/toggle-block", json={"reason": "recall"})
        assert r.json()["data"]["status"] == "blocked"

        r = client.delete(f"/api/batches/{bid}")
        assert r.status_code == 400

    def test_available_by_product(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today, "LATE", days=300, qty=10))
        client.post("/api/batches", json=_batch_payload(product_id, today, "SOON", days=20, qty=5))
        r = client.get(f"/api/batches/product/{product_id}")
        data = r.json()["data"]
        assert data["total_quantity"] == 15
        assert [b["batch_number"] for b in data["batches"]] == ["SOON", "LATE"]

    def test_stats(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today))
        r = client.get("/api/batches/stats")
        assert r.json()["data"]["active"] == 1


class TestLedgerAPI:
    def test_sale_then_insufficient(self, client, product_id, today):
        bid = client.post("/api/batches", json=_batch_payload(product_id, today)).json()["data"]["id"]

        r = client.post("/api/inventory/movements", json={
            "product_id": product_id, "batch_id": bid, "movement_type": "sale", "quantity": 30,
        })
        assert r.status_code == 201
        mv = r.json()["data"]
        assert (mv["previous_stock"], mv["new_stock"], mv["quantity"]) == (100, 70, -30)
        assert mv["user_id"] == 7

        r = client.post("/api/inventory/movements", json={
            "product_id": product_id, "movement_type": "sale", "quantity": 1000,
        })
        assert r.status_code == 400
        details = r.json()["error"]["details"]
        assert details["available"] == 70
        assert details["requested"] == 1000

    def test_approve_then_delete_is_refused(self, client, product_id, today, auth_headers):
        client.post("/api/batches", json=_batch_payload(product_id, today))
        mv_id = client.post("/api/inventory/movements", json={
            "product_id": product_id, "movement_type": "damage", "quantity": 2,
        }).json()["data"]["id"]

        r = client.put(f"/api/inventory/movements/{mv_id}/approve",
                       headers=auth_headers(11, "supervisor"))
        assert r.status_code == 200
        assert r.json()["data"]["approved_by"] == 11

        r = client.put(f"/api/inventory/movements/{mv_id}/approve")
        assert r.status_code == 409
        r = client.delete(f"/api/inventory/movements/{mv_id}")
        assert r.status_code == 409

    def test_delete_unapproved_restores_stock(self, client, product_id, today, session_factory):
        bid = client.post("/api/batches", json=_batch_payload(product_id, today)).json()["data"]["id"]
        mv_id = client.post("/api/inventory/movements", json={
            "product_id": product_id, "batch_id": bid, "movement_type": "sale", "quantity": 25,
        }).json()["data"]["id"]

        assert client.delete(f"/api/inventory/movements/{mv_id}").status_code == 200

        with session_factory() as s:
            assert s.get(Product, product_id).stock == 100

    def test_list_and_stats(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today))
        client.post("/api/inventory/movements", json={
            "product_id": product_id, "movement_type": "sale", "quantity": 3, "unit_cost": "2.00",
        })
        r = client.get("/api/inventory/movements", params={"product_id": product_id})
        assert r.json()["data"]["total"] == 1
        r = client.get("/api/inventory/movements/stats")
        assert r.json()["data"]["pending_approval"] == 1
        r = client.get(f"/api/inventory/movements/product/{product_id}")
        assert len(r.json()["data"]) == 1

    def test_fifo_preview_and_consume(self, client, product_id, today):
        b2 = client.post("/api/batches", json=_batch_payload(product_id, today, "B2", days=200, qty=50)).json()["data"]["id"]
        b1 = client.post("/api/batches", json=_batch_payload(product_id, today, "B1", days=10, qty=5)).json()["data"]["id"]

        r = client.post("/api/inventory/allocations/preview", json={"product_id": product_id, "quantity": 20})
        plan = r.json()["data"]["allocations"]
        assert [(a["batch_id"], a["quantity"]) for a in plan] == [(b1, 5), (b2, 15)]

        r = client.post("/api/inventory/allocations/consume", json={"product_id": product_id, "quantity": 20})
        assert r.status_code == 201
        assert [m["quantity"] for m in r.json()["data"]] == [-5, -15]

        r = client.post("/api/inventory/allocations/preview", json={"product_id": product_id, "quantity": 100})
        assert r.status_code == 400
        assert r.json()["error"]["details"]["available"] == 35

    def test_reconcile(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today))
        client.post("/api/inventory/movements", json={
            "product_id": product_id, "movement_type": "sale", "quantity": 4,
        })
        r = client.post(f"/api/inventory/products/{product_id}/reconcile")
        data = r.json()["data"]
        assert data["drift"] == -4
        assert data["repaired"] is True


class TestAlertsAPI:
    def test_summary(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today, "SOON", days=5, qty=20))
        client.post("/api/batches", json=_batch_payload(product_id, today, "OLD", days=-2, qty=4))

        r = client.get("/api/alerts")
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["summary"] == {"total": 2, "critical": 1, "high": 1, "medium": 0}
        assert data["partial"] is False
        assert float(data["expired"]["total_loss"]) == 4.0

    def test_sections(self, client, product_id):
        assert client.get("/api/alerts/low-stock").json()["data"]["count"] == 1
        assert client.get("/api/alerts/expiring", params={"days": 60}).json()["data"]["count"] == 0
        assert client.get("/api/alerts/expired").json()["data"]["count"] == 0
        assert client.get("/api/alerts/pending-approvals").json()["data"]["count"] == 0

    def test_refresh_flag(self, client, product_id, today):
        client.post("/api/batches", json=_batch_payload(product_id, today, "B", days=40, qty=20))
        as_of = (today + timedelta(days=20)).isoformat()
        r = client.get("/api/alerts", params={"refresh": True, "as_of": as_of})
        assert r.json()["data"]["expiring"]["count"] == 1
        r = client.get("/api/batches", params={"status": "near_expiry"})
        assert r.json()["data"]["total"] == 1
