# src/order_tracking_status/__init__.py
from .pipelines.tracking import TrackingAggregator, TrackingNotFoundError
from .pipelines.driver_resolver import DriverResolver
from .pipelines.metrics import analyze_orders, compute_business_metrics

__all__ = [
    "TrackingAggregator",
    "TrackingNotFoundError",
    "DriverResolver",
    "analyze_orders",
    "compute_business_metrics",
]
