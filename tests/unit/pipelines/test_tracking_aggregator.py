from __future__ import annotations

import datetime as dt
import json
import threading
import time

import pytest

from order_tracking_status.api.shipday import ProviderError
from order_tracking_status.io.store import InMemoryStore
from order_tracking_status.models import CanonicalStatus, StatusCategory
from order_tracking_status.pipelines.tracking import TrackingAggregator, TrackingNotFoundError


class _FakeProvider:
    """Scriptable stand-in for the Shipday client."""

    def __init__(self, order=None, progress=None, *, configured=True,
                 order_exc=None, order_delay=0.0, barrier=None):
        self._order = order
        self._progress = progress
        self._configured = configured
        self.order_exc = order_exc
        self.order_delay = order_delay
        self.barrier = barrier
        self.order_calls = []
        self.progress_calls = []
        self.release = threading.Event()

    @property
    def configured(self):
        return self._configured

    def fetch_order(self, order_number, *, timeout=None):
        self.order_calls.append(order_number)
        if self.barrier is not None:
            self.barrier.wait(timeout=2)
        if self.order_delay:
            self.release.wait(self.order_delay)
        if self.order_exc is not None:
            raise self.order_exc
        return self._order

    def fetch_progress(self, tracking_id, *, timeout=None):
        self.progress_calls.append(tracking_id)
        if self.barrier is not None:
            self.barrier.wait(timeout=2)
        if self._progress is None:
            raise ProviderError("no progress", status=404)
        return self._progress


def _store():
    s = InMemoryStore()
    s.add("orders", "doc100", {
        "orderNumber": "ORD-100",
        "status": "PENDING",
        "createdAt": "2025-03-01T10:00:00Z",
        "customer": {"name": "Maria", "address": "Calle 3", "phone": "555"},
        "totalOrderValue": 200,
    })
    s.add("orders", "doc200", {
        "orderNumber": "ORD-200",
        "shipdayOrderId": 5001,
        "status": "STARTED",
        "businessId": "biz1",
        "createdAt": "2025-03-01T10:00:00Z",
        "assignedAt": "2025-03-01T10:05:00Z",
        "startedAt": "2025-03-01T10:08:00Z",
        "estimatedDeliveryTime": "2025-03-01T11:00:00Z",
        "deliveryFee": 40,
        "totalOrderValue": 240,
        "paymentMethod": "cash",
        "tip": 10,
        "orderItems": [{"name": "Tacos", "quantity": 3, "unitPrice": 50}],
    })
    s.add("businesses", "biz1", {"businessName": "Tacos Don Pepe", "address": "Av. 1",
                                 "coordinates": {"lat": 19.4, "lng": -99.1}})
    s.add("shipdayOrders", "so1", {
        "orderId": 5001,
        "assignedCarrierId": 31,
        "assignedCarrier": {"name": "Cached Carla", "phoneNumber": "555-1"},
    })
    return s


def _delivered_body():
    return {
        "orderNumber": "ORD-200",
        "orderStatus": {"orderState": "ALREADY_DELIVERED"},
        "assignedCarrierId": 9,
        "assignedCarrier": {"name": "Luis", "phoneNumber": "555-0101", "carrierPhoto": "l.png"},
        "activityLog": {
            "placementTime": "2025-03-01T10:00:00Z",
            "assignedTime": "2025-03-01T10:05:00Z",
            "pickedupTime": "2025-03-01T10:20:00Z",
            "deliveryTime": "2025-03-01T10:45:00Z",
        },
        "proofOfDelivery": {"imageUrls": ["pod.jpg"], "signaturePath": None},
        "etaTime": "2025-03-01T10:50:00Z",
    }


# --- end-to-end scenarios ------------------------------------------------------

def test_scenario_a_local_pending_order_without_provider():
    snap = TrackingAggregator(_store(), provider=None).get_snapshot("ORD-100")

    assert snap.status is CanonicalStatus.PENDING
    assert snap.driver is None
    assert [ev.status for ev in snap.timeline] == ["CREATED"]
    assert snap.placementTime == "2025-03-01T10:00:00.000Z"
    assert snap.deliveryTime is None
    assert snap.customer.name == "Maria"
    assert snap.business.name == "Negocio"


def test_scenario_b_provider_delivered_with_carrier():
    provider = _FakeProvider(order=_delivered_body())
    snap = TrackingAggregator(_store(), provider=provider).get_snapshot("ORD-200")

    assert provider.order_calls == ["5001"]
    assert snap.status is CanonicalStatus.DELIVERED
    assert snap.statusCategory is StatusCategory.COMPLETED
    assert snap.progress == 100
    assert (snap.driver.name, snap.driver.phoneNumber, snap.driver.photo) == ("Luis", "555-0101", "l.png")
    assert snap.deliveryTime == "2025-03-01T10:45:00.000Z"
    assert snap.proofOfDelivery == ["pod.jpg"]
    assert snap.estimatedTime == "2025-03-01T10:50:00.000Z"
    assert [ev.status for ev in snap.timeline][0] == "DELIVERED"


def test_scenario_c_provider_timeout_falls_back_to_local_and_cached_courier():
    provider = _FakeProvider(order=_delivered_body(), order_delay=5.0)
    agg = TrackingAggregator(_store(), provider=provider, deadline=0.2, provider_timeout=0.2)

    started = time.monotonic()
    snap = agg.get_snapshot("ORD-200")
    elapsed = time.monotonic() - started
    provider.release.set()

    assert elapsed < 2.0
    assert snap.status is CanonicalStatus.STARTED
    assert [ev.status for ev in snap.timeline] == ["STARTED", "ASSIGNED", "CREATED"]
    assert snap.driver is not None
    assert snap.driver.name == "Cached Carla"
    assert snap.deliveryTime is None
    assert snap.estimatedTime == "2025-03-01T11:00:00.000Z"


@pytest.mark.parametrize("exc", [
    ProviderError("HTTP 503", status=503),
    ProviderError("transport error: refused"),
    ValueError("unexpected"),
])
def test_provider_failures_never_escape(exc):
    provider = _FakeProvider(order_exc=exc)
    snap = TrackingAggregator(_store(), provider=provider).get_snapshot("ORD-200")

    assert snap.status is CanonicalStatus.STARTED
    assert snap.driver.name == "Cached Carla"


def test_malformed_provider_body_is_ignored():
    provider = _FakeProvider(order="<html>oops</html>")
    snap = TrackingAggregator(_store(), provider=provider).get_snapshot("ORD-200")
    assert snap.status is CanonicalStatus.STARTED


# --- identifier resolution -----------------------------------------------------

def test_unknown_identifier_raises_not_found():
    with pytest.raises(TrackingNotFoundError) as e:
        TrackingAggregator(_store()).get_snapshot("ORD-404")
    assert e.value.identifier == "ORD-404"

    with pytest.raises(TrackingNotFoundError):
        TrackingAggregator(_store()).get_snapshot("   ")


def test_lookup_by_provider_id_and_document_id():
    agg = TrackingAggregator(_store())
    assert agg.get_snapshot("5001").orderNumber == "ORD-200"
    assert agg.get_snapshot("doc100").orderNumber == "ORD-100"


# --- live progress -------------------------------------------------------------

def _with_link(store, link="https://dispatch.test/trackingPage/tid9"):
    doc = store.collections["orders"]["doc200"]
    doc["trackingLink"] = link
    return store


def test_order_and_progress_calls_run_concurrently():
    barrier = threading.Barrier(2)
    progress = {"dynamicData": {"carrierLocation": {"latitude": 19.43, "longitude": -99.13},
                                "estimatedTimeInMinutes": 7}}
    provider = _FakeProvider(order=_delivered_body(), progress=progress, barrier=barrier)

    snap = TrackingAggregator(_with_link(_store()), provider=provider, deadline=5).get_snapshot("ORD-200")

    # both calls passed the two-party barrier, so they overlapped
    assert not barrier.broken
    assert provider.progress_calls == ["tid9"]
    assert snap.status is CanonicalStatus.DELIVERED
    assert (snap.driverLocation.latitude, snap.driverLocation.longitude) == (19.43, -99.13)
    assert snap.estimatedTime == 7
    assert snap.trackingLink.endswith("/tid9")


def test_progress_runs_without_credential_and_fills_missing_courier():
    store = _with_link(_store())
    store.collections["shipdayOrders"].clear()
    progress = {"fixedData": {"carrier": {"name": "Pedro", "phoneNumber": "777"}}}
    provider = _FakeProvider(progress=progress, configured=False)

    snap = TrackingAggregator(store, provider=provider).get_snapshot("ORD-200")

    assert provider.order_calls == []
    assert provider.progress_calls == ["tid9"]
    assert snap.driver.name == "Pedro"
    assert snap.driverLocation is None


def test_progress_carrier_does_not_replace_resolved_courier():
    progress = {"fixedData": {"carrier": {"name": "Pedro"}}}
    provider = _FakeProvider(progress=progress, configured=False)
    snap = TrackingAggregator(_with_link(_store()), provider=provider).get_snapshot("ORD-200")
    assert snap.driver.name == "Cached Carla"


def test_tracking_link_from_provider_triggers_progress_call():
    body = _delivered_body()
    body["trackingLink"] = "https://dispatch.test/trackingPage/late1"
    provider = _FakeProvider(order=body, progress={"dynamicData": {"estimatedTimeInMinutes": 3}})

    snap = TrackingAggregator(_store(), provider=provider).get_snapshot("ORD-200")

    assert provider.progress_calls == ["late1"]
    assert snap.estimatedTime == 3
    assert snap.trackingLink == "https://dispatch.test/trackingPage/late1"


def test_no_tracking_link_means_no_progress_call():
    provider = _FakeProvider(order={"orderNumber": "ORD-200"})
    TrackingAggregator(_store(), provider=provider).get_snapshot("ORD-200")
    assert provider.progress_calls == []


# --- field fallbacks -----------------------------------------------------------

def test_business_from_business_document_and_financials():
    snap = TrackingAggregator(_store()).get_snapshot("ORD-200")

    assert snap.business.name == "Tacos Don Pepe"
    assert (snap.business.latitude, snap.business.longitude) == (19.4, -99.1)
    assert snap.deliveryFee == 40.0
    assert snap.totalCost == 240.0
    assert snap.tip == 10.0
    assert snap.paymentMethod == "cash"
    assert snap.orderItems == [{"name": "Tacos", "quantity": 3, "unitPrice": 50}]


def test_pickup_block_and_synthetic_order_item():
    store = _store()
    store.collections["orders"]["doc100"]["pickup"] = {"name": "Cocina Central", "address": "Calle 9"}
    snap = TrackingAggregator(store, default_delivery_fee=55).get_snapshot("ORD-100")

    assert snap.business.name == "Cocina Central"
    assert snap.deliveryFee == 55.0
    assert snap.orderItems == [{"name": "Pedido de entrega", "quantity": 1, "unitPrice": 145.0}]


def test_provider_business_and_customer_override_local():
    body = {
        "orderStatus": {"orderState": "READY_TO_DELIVER"},
        "restaurant": {"name": "Provider Pizza", "address": "P St"},
        "customer": {"name": "Provider Customer", "address": "C St"},
    }
    snap = TrackingAggregator(_store(), provider=_FakeProvider(order=body)).get_snapshot("ORD-200")

    assert snap.status is CanonicalStatus.IN_TRANSIT
    assert snap.business.name == "Provider Pizza"
    assert snap.customer.name == "Provider Customer"
    # provider sent no activity log, local timeline stays
    assert [ev.status for ev in snap.timeline] == ["STARTED", "ASSIGNED", "CREATED"]


def test_snapshot_json_shape():
    doc = TrackingAggregator(_store()).get_snapshot("ORD-100").to_dict()
    for key in ("orderNumber", "status", "customer", "business", "driver", "driverLocation",
                "estimatedTime", "orderItems", "deliveryFee", "totalCost", "placementTime",
                "deliveryTime", "proofOfDelivery", "timeline"):
        assert key in doc
    assert doc["status"] == "PENDING"
    assert doc["statusCategory"] == "pending"
    assert doc["driver"] is None
    assert doc["timeline"][0] == {
        "status": "CREATED",
        "timestamp": "2025-03-01T10:00:00.000Z",
        "description": "Pedido creado",
    }


# --- stored value shapes -------------------------------------------------------

@pytest.mark.parametrize("stored", [
    dt.datetime(2025, 3, 1, 11, 0, tzinfo=dt.timezone.utc),
    {"_seconds": 1740826800, "_nanoseconds": 0},
    1740826800000,
    "2025-03-01T05:00:00-06:00",
])
def test_local_eta_is_iso_for_every_stored_shape(stored):
    store = _store()
    store.add("orders", "doc300", {"orderNumber": "ORD-300", "status": "ASSIGNED",
                                   "createdAt": "2025-03-01T10:00:00Z",
                                   "estimatedDeliveryTime": stored})
    snap = TrackingAggregator(store, provider=None).get_snapshot("ORD-300")

    assert snap.estimatedTime == "2025-03-01T11:00:00.000Z"
    json.dumps(snap.to_dict())


def test_provider_eta_map_is_converted_to_iso():
    body = {**_delivered_body(), "etaTime": {"_seconds": 1740826800, "_nanoseconds": 0}}
    snap = TrackingAggregator(_store(), provider=_FakeProvider(order=body)).get_snapshot("ORD-200")
    assert snap.estimatedTime == "2025-03-01T11:00:00.000Z"


def test_malformed_local_timestamp_is_skipped_not_fatal():
    store = _store()
    store.add("orders", "doc301", {
        "orderNumber": "ORD-301",
        "status": "ASSIGNED",
        "createdAt": "2025-03-01T10:00:00Z",
        "assignedAt": ["2025-03-01T10:05:00Z", "2025-03-01T10:06:00Z"],
    })
    snap = TrackingAggregator(store, provider=None).get_snapshot("ORD-301")

    assert snap.status is CanonicalStatus.ASSIGNED
    assert [ev.status for ev in snap.timeline] == ["CREATED"]


def test_unrecognised_provider_state_keeps_local_status():
    body = {**_delivered_body(), "orderStatus": {"orderState": "TELEPORTED"}, "activityLog": None}
    snap = TrackingAggregator(_store(), provider=_FakeProvider(order=body)).get_snapshot("ORD-200")

    assert snap.status is CanonicalStatus.STARTED
    assert snap.progress == 50


def test_order_driver_name_is_the_last_courier_fallback():
    store = _store()
    store.collections["shipdayOrders"].clear()
    store.collections["orders"]["doc200"]["driverName"] = "Webhook Walter"
    snap = TrackingAggregator(store, provider=None).get_snapshot("ORD-200")

    assert (snap.driver.name, snap.driver.phoneNumber, snap.driver.rating) == ("Webhook Walter", "", None)


def test_progress_carrier_replaces_a_name_only_courier():
    store = _with_link(_store())
    store.collections["shipdayOrders"].clear()
    store.collections["orders"]["doc200"]["driverName"] = "Webhook Walter"
    progress = {"fixedData": {"carrier": {"name": "Pedro", "phoneNumber": "777"}}}
    provider = _FakeProvider(progress=progress, configured=False)

    snap = TrackingAggregator(store, provider=provider).get_snapshot("ORD-200")
    assert (snap.driver.name, snap.driver.phoneNumber) == ("Pedro", "777")
