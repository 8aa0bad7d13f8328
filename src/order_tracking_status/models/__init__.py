from .env_cfg import EnvCfg
from .status import CanonicalStatus, StatusCategory
from .metrics import BusinessMetrics, OrderAnalytics
from .snapshot import (
    BusinessInfo,
    Coordinates,
    CourierInfo,
    CustomerInfo,
    TimelineEvent,
    TrackingSnapshot,
)

__all__ = [
    "EnvCfg",
    "CanonicalStatus",
    "StatusCategory",
    "BusinessInfo",
    "Coordinates",
    "CourierInfo",
    "CustomerInfo",
    "TimelineEvent",
    "TrackingSnapshot",
    "BusinessMetrics",
    "OrderAnalytics",
]
