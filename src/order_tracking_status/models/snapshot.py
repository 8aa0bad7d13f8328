from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from order_tracking_status.models.status import CanonicalStatus, StatusCategory


def to_iso(ts: Optional[datetime]) -> Optional[str]:
    """UTC ISO-8601 with millisecond precision and a trailing Z."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    address: str
    latitude: float = 0.0
    longitude: float = 0.0
    phoneNumber: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "phoneNumber": self.phoneNumber,
        }


@dataclass(frozen=True)
class BusinessInfo:
    name: str
    address: str
    latitude: float = 0.0
    longitude: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True)
class CourierInfo:
    name: str
    phoneNumber: str = ""
    photo: str = ""
    rating: Optional[float] = None
    # which resolver tier produced this record; diagnostics only
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "phoneNumber": self.phoneNumber,
            "photo": self.photo,
            "rating": self.rating,
        }


@dataclass(frozen=True)
class TimelineEvent:
    status: str
    timestamp: datetime
    description: str

    @property
    def iso_timestamp(self) -> str:
        return to_iso(self.timestamp) or ""

    def to_dict(self) -> dict[str, str]:
        return {
            "status": self.status,
            "timestamp": self.iso_timestamp,
            "description": self.description,
        }


@dataclass(frozen=True)
class TrackingSnapshot:
    orderNumber: str
    status: CanonicalStatus
    statusCategory: StatusCategory
    progress: int
    customer: CustomerInfo
    business: BusinessInfo
    driver: Optional[CourierInfo]
    driverLocation: Optional[Coordinates]
    estimatedTime: Any
    orderItems: list[dict[str, Any]]
    deliveryFee: float
    totalCost: float
    placementTime: Optional[str]
    deliveryTime: Optional[str]
    proofOfDelivery: list[str] = field(default_factory=list)
    timeline: list[TimelineEvent] = field(default_factory=list)
    trackingLink: Optional[str] = None
    paymentMethod: Optional[str] = None
    tip: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready document served by the tracking endpoint."""
        return {
            "orderNumber": self.orderNumber,
            "status": self.status.value,
            "statusCategory": self.statusCategory.value,
            "progress": self.progress,
            "customer": self.customer.to_dict(),
            "business": self.business.to_dict(),
            "driver": self.driver.to_dict() if self.driver else None,
            "driverLocation": self.driverLocation.to_dict() if self.driverLocation else None,
            "estimatedTime": self.estimatedTime,
            "orderItems": list(self.orderItems),
            "deliveryFee": self.deliveryFee,
            "totalCost": self.totalCost,
            "placementTime": self.placementTime,
            "deliveryTime": self.deliveryTime,
            "proofOfDelivery": list(self.proofOfDelivery),
            "timeline": [ev.to_dict() for ev in self.timeline],
            "trackingLink": self.trackingLink,
            "paymentMethod": self.paymentMethod,
            "tip": self.tip,
        }
