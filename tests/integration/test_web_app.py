from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from order_tracking_status.io.store import InMemoryStore, StoreError
from order_tracking_status.models import EnvCfg
from order_tracking_status.pipelines.tracking import TrackingAggregator
from order_tracking_status.web.app import create_app


def _store():
    s = InMemoryStore()
    s.add("orders", "doc100", {
        "orderNumber": "ORD-100",
        "businessId": "biz1",
        "status": "PENDING",
        "createdAt": "2025-03-01T10:00:00Z",
        "customer": {"name": "Maria"},
        "totalAmount": 120,
    })
    s.add("orders", "doc101", {
        "orderNumber": "ORD-101",
        "businessId": "biz1",
        "status": "DELIVERED",
        "createdAt": "2025-03-01T12:00:00Z",
        "activityLog": {
            "placementTime": "2025-03-01T12:00:00Z",
            "deliveryTime": "2025-03-01T12:40:00Z",
            "expectedDeliveryTime": "2025-03-01T12:45:00Z",
        },
        "feedback": 5,
        "totalAmount": 80,
    })
    s.add("businesses", "biz1", {"businessName": "Tacos Don Pepe", "availableCredits": 3})
    return s


@pytest.fixture
def client():
    store = _store()
    app = create_app(TrackingAggregator(store, provider=None), store=store, env_cfg=EnvCfg())
    return TestClient(app)


def test_tracking_endpoint_returns_snapshot(client):
    r = client.get("/api/tracking/ORD-100")
    assert r.status_code == 200
    body = r.json()
    assert body["orderNumber"] == "ORD-100"
    assert body["status"] == "PENDING"
    assert body["driver"] is None
    assert body["business"]["name"] == "Tacos Don Pepe"
    assert body["customer"]["address"] == "Dirección no disponible"
    assert [e["status"] for e in body["timeline"]] == ["CREATED"]


def test_tracking_endpoint_404_body(client):
    r = client.get("/api/tracking/ORD-404")
    assert r.status_code == 404
    assert r.json() == {"error": "Pedido no encontrado", "orderNumber": "ORD-404"}


def test_metrics_endpoint_scopes_by_business(client):
    r = client.get("/api/metrics", params={"businessId": "biz1"})
    assert r.status_code == 200
    body = r.json()
    assert body["businessId"] == "biz1"
    m = body["metrics"]
    assert m["totalOrders"] == 2
    assert m["completedOrders"] == 1
    assert m["successRate"] == 50.0
    assert m["avgDeliveryTime"] == 40
    assert m["onTimePercentage"] == 100.0
    assert m["avgRating"] == 5.0
    assert m["availableCredits"] == 3.0
    assert body["analytics"]["statusDistribution"]["completed"] == 1


def test_metrics_endpoint_unknown_scope_is_zeroed(client):
    r = client.get("/api/metrics", params={"driverId": "nobody"})
    assert r.status_code == 200
    assert r.json()["metrics"]["totalOrders"] == 0


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "providerConfigured": False}


class _DownStore:
    def get(self, collection, doc_id):
        raise StoreError("down")

    def find_one(self, collection, field, value):
        raise StoreError("down")

    def find(self, collection, filters=None, limit=None):
        raise StoreError("down")


def test_datastore_outage_is_503_not_404():
    store = _DownStore()
    c = TestClient(create_app(TrackingAggregator(store), store=store))
    assert c.get("/api/tracking/ORD-1").status_code == 503
    assert c.get("/api/metrics").status_code == 503


def test_create_app_requires_a_source():
    with pytest.raises(ValueError):
        create_app()
