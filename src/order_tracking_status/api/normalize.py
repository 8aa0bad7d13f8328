# src/order_tracking_status/api/normalize.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from order_tracking_status.io.schema import (
    ADDRESS_PLACEHOLDER,
    BUSINESS_PLACEHOLDER,
    COURIER_PLACEHOLDER,
    CUSTOMER_PLACEHOLDER,
    DEFAULT_COURIER_RATING,
    UNASSIGNED_CARRIER_ID,
)
from order_tracking_status.models import (
    BusinessInfo,
    CanonicalStatus,
    Coordinates,
    CourierInfo,
    CustomerInfo,
)
from order_tracking_status.rules.status_mapper import normalize_status

_TRAILING_SEGMENT = re.compile(r"/([^/?#]+)/?(?:[?#].*)?$")


def _num(val: Any) -> Optional[float]:
    if val is None or isinstance(val, bool):
        return None
    try:
        out = float(val)
    except (TypeError, ValueError):
        return None
    return out if out == out else None  # NaN


def _text(val: Any) -> str:
    return str(val).strip() if val is not None else ""


def read_coordinates(block: Any) -> Tuple[float, float]:
    """
    (latitude, longitude) from a location block. Looks at the block itself and
    its `coordinates` child, with `lat`/`lng` aliases. Missing → 0.0.
    """
    if not isinstance(block, dict):
        return 0.0, 0.0
    candidates = [block.get("coordinates"), block]
    lat = lng = None
    for c in candidates:
        if not isinstance(c, dict):
            continue
        if lat is None:
            lat = _num(c.get("latitude", c.get("lat")))
        if lng is None:
            lng = _num(c.get("longitude", c.get("lng")))
    return lat or 0.0, lng or 0.0


def customer_from_block(block: Any) -> CustomerInfo:
    block = block if isinstance(block, dict) else {}
    lat, lng = read_coordinates(block)
    return CustomerInfo(
        name=_text(block.get("name")) or CUSTOMER_PLACEHOLDER,
        address=_text(block.get("address")) or ADDRESS_PLACEHOLDER,
        latitude=lat,
        longitude=lng,
        phoneNumber=_text(block.get("phoneNumber") or block.get("phone")),
    )


def business_from_block(block: Any) -> BusinessInfo:
    block = block if isinstance(block, dict) else {}
    lat, lng = read_coordinates(block)
    return BusinessInfo(
        name=_text(block.get("businessName") or block.get("name")) or BUSINESS_PLACEHOLDER,
        address=_text(block.get("address")) or ADDRESS_PLACEHOLDER,
        latitude=lat,
        longitude=lng,
    )


def courier_from_block(
    block: Any,
    *,
    source: str,
    rating: Optional[float] = DEFAULT_COURIER_RATING,
    photo_keys: Tuple[str, ...] = ("carrierPhoto", "imagePath", "profilePhoto", "photo"),
) -> Optional[CourierInfo]:
    """CourierInfo from a carrier/driver-like dict; None if it identifies nobody."""
    if not isinstance(block, dict) or not block:
        return None
    name = _text(block.get("fullName") or block.get("name"))
    phone = _text(block.get("phoneNumber") or block.get("phone"))
    if not name and not phone:
        return None
    photo = ""
    for key in photo_keys:
        photo = _text(block.get(key))
        if photo:
            break
    return CourierInfo(
        name=name or COURIER_PLACEHOLDER,
        phoneNumber=phone,
        photo=photo,
        rating=rating,
        source=source,
    )


def tracking_id_from_link(link: Any) -> Optional[str]:
    """Last path segment of a provider tracking link."""
    if not isinstance(link, str) or not link.strip():
        return None
    m = _TRAILING_SEGMENT.search(link.strip())
    return m.group(1) if m else None


def provider_status_of(payload: Dict[str, Any]) -> str:
    status = payload.get("orderStatus")
    if isinstance(status, dict):
        state = status.get("orderState")
        if state:
            return str(state)
    for key in ("orderState", "status"):
        if payload.get(key):
            return str(payload[key])
    return ""


def assigned_carrier_of(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The embedded carrier, unless the provider marks the order unassigned."""
    carrier = payload.get("assignedCarrier")
    if not isinstance(carrier, dict) or not carrier:
        return None
    try:
        if int(payload.get("assignedCarrierId", 0)) == UNASSIGNED_CARRIER_ID:
            return None
    except (TypeError, ValueError):
        pass
    return carrier


@dataclass(frozen=True)
class ProviderOrderView:
    """Fields the tracker takes from a provider order body. None = omitted."""

    raw_status: str
    status: Optional[CanonicalStatus]
    eta: Any
    carrier: Optional[Dict[str, Any]]
    business: Optional[BusinessInfo]
    customer: Optional[CustomerInfo]
    activity_log: Optional[Dict[str, Any]]
    proof_of_delivery: Optional[list]
    tracking_link: Optional[str]
    feedback: Optional[float]
    raw: Dict[str, Any]


def normalize_provider_order(payload: Dict[str, Any]) -> ProviderOrderView:
    """
    Project a provider order body onto ProviderOrderView. Anything the body
    omits (or sends in the wrong shape) is None so the caller keeps its own
    fallback for that field.
    """
    payload = payload if isinstance(payload, dict) else {}

    raw_status = provider_status_of(payload)
    status = normalize_status(raw_status) if raw_status else None

    restaurant = payload.get("restaurant")
    business = business_from_block(restaurant) if isinstance(restaurant, dict) and restaurant else None

    customer_block = payload.get("customer")
    customer = customer_from_block(customer_block) if isinstance(customer_block, dict) and customer_block else None

    log = payload.get("activityLog")
    activity_log = log if isinstance(log, dict) and log else None

    pod = payload.get("proofOfDelivery")
    proof: Optional[list] = None
    if isinstance(pod, dict):
        images = pod.get("imageUrls") or []
        proof = [u for u in [*images, pod.get("signaturePath")] if isinstance(u, str) and u]
    elif isinstance(pod, list):
        proof = [u for u in pod if isinstance(u, str) and u]

    link = payload.get("trackingLink")

    return ProviderOrderView(
        raw_status=raw_status,
        status=status,
        eta=payload.get("etaTime") or None,
        carrier=assigned_carrier_of(payload),
        business=business,
        customer=customer,
        activity_log=activity_log,
        proof_of_delivery=proof,
        tracking_link=link if isinstance(link, str) and link else None,
        feedback=_num(payload.get("feedback")),
        raw=payload,
    )


@dataclass(frozen=True)
class ProgressView:
    location: Optional[Coordinates]
    eta_minutes: Optional[int]
    carrier: Optional[CourierInfo]


def normalize_progress(payload: Dict[str, Any]) -> ProgressView:
    """Courier location, live ETA and carrier card from a progress body."""
    payload = payload if isinstance(payload, dict) else {}
    dynamic = payload.get("dynamicData") if isinstance(payload.get("dynamicData"), dict) else {}
    fixed = payload.get("fixedData") if isinstance(payload.get("fixedData"), dict) else {}

    location = None
    loc = dynamic.get("carrierLocation")
    if isinstance(loc, dict):
        lat, lng = _num(loc.get("latitude")), _num(loc.get("longitude"))
        if lat is not None and lng is not None:
            location = Coordinates(latitude=lat, longitude=lng)

    eta_minutes = None
    minutes = _num(dynamic.get("estimatedTimeInMinutes"))
    if minutes is not None and minutes > 0:
        eta_minutes = int(minutes)

    carrier = courier_from_block(fixed.get("carrier"), source="provider_progress", rating=None)
    return ProgressView(location=location, eta_minutes=eta_minutes, carrier=carrier)
