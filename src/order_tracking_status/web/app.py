# src/order_tracking_status/web/app.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from order_tracking_status.io.schema import BUSINESSES, NOT_FOUND_MESSAGE
from order_tracking_status.io.store import DocumentStore, StoreError
from order_tracking_status.models import EnvCfg
from order_tracking_status.pipelines.metrics import (
    analyze_orders,
    compute_business_metrics,
    load_scoped_orders,
)
from order_tracking_status.pipelines.tracking import TrackingAggregator, TrackingNotFoundError

logger = logging.getLogger("order_tracking_status.web.app")


def create_app(
    aggregator: Optional[TrackingAggregator] = None,
    *,
    store: Optional[DocumentStore] = None,
    env_cfg: Optional[EnvCfg] = None,
) -> FastAPI:
    """
    Build the HTTP surface. Pass a ready aggregator (tests, CLI) or let it be
    built from `env_cfg` over `store`.
    """
    cfg = env_cfg or EnvCfg()
    if aggregator is None:
        if store is None:
            raise ValueError("create_app needs an aggregator or a store")
        aggregator = TrackingAggregator.from_env(cfg, store)
    store = store or aggregator.store

    app = FastAPI(title="Order Tracking Status", version="0.1.0")
    app.state.aggregator = aggregator
    app.state.store = store

    @app.get("/health")
    def health() -> dict:
        return {"ok": True, "providerConfigured": bool(
            aggregator.provider is not None and aggregator.provider.configured)}

    @app.get("/api/tracking/{order_number}")
    def tracking(order_number: str):
        try:
            snapshot = aggregator.get_snapshot(order_number)
        except TrackingNotFoundError:
            return JSONResponse(
                status_code=404,
                content={"error": NOT_FOUND_MESSAGE, "orderNumber": order_number},
            )
        except StoreError as ex:
            logger.error("Datastore unavailable while tracking %s: %s", order_number, ex)
            return JSONResponse(status_code=503, content={"error": "Servicio no disponible"})
        return snapshot.to_dict()

    @app.get("/api/metrics")
    def metrics(
        businessId: Optional[str] = Query(default=None),
        driverId: Optional[str] = Query(default=None),
        limit: Optional[int] = Query(default=None, ge=1),
    ):
        try:
            orders = load_scoped_orders(store, business_id=businessId, driver_id=driverId, limit=limit)
            business = store.get(BUSINESSES, businessId) if businessId else None
        except StoreError as ex:
            logger.error("Datastore unavailable while computing metrics: %s", ex)
            return JSONResponse(status_code=503, content={"error": "Servicio no disponible"})

        summary = compute_business_metrics(
            orders, business=business, on_time_tolerance_minutes=cfg.ON_TIME_TOLERANCE_MINUTES)
        return {
            "businessId": businessId,
            "driverId": driverId,
            "metrics": summary.to_dict(),
            "analytics": analyze_orders(orders).to_dict(),
        }

    return app
