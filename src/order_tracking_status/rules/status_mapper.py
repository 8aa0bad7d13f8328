from __future__ import annotations

import re
from typing import Mapping, Optional, Union

from order_tracking_status.models.status import CanonicalStatus, StatusCategory

# Raw vocabularies, keyed by their upper-cased/underscored spelling so lookup is
# case-insensitive. Every entry must land inside CanonicalStatus.

# Operational codes written by the first generation of the platform
LEGACY_STATUS_MAP: dict[str, CanonicalStatus] = {
    "PENDING_DISPATCH": CanonicalStatus.PENDING,
    "PENDIENTE": CanonicalStatus.PENDING,
    "SEARCHING": CanonicalStatus.PENDING,
    "ACTIVE": CanonicalStatus.PENDING,
    "ASIGNADO": CanonicalStatus.ASSIGNED,
    "RECOGIDO": CanonicalStatus.PICKED_UP,
    "PICKEDUP": CanonicalStatus.PICKED_UP,
    "EN_CAMINO": CanonicalStatus.IN_TRANSIT,
    "EN_TRANSITO": CanonicalStatus.IN_TRANSIT,
    "ON_THE_WAY": CanonicalStatus.IN_TRANSIT,
    "ENTREGADO": CanonicalStatus.DELIVERED,
    "FINISHED": CanonicalStatus.COMPLETED,
    "COMPLETE": CanonicalStatus.COMPLETED,
    "SUCCEEDED": CanonicalStatus.COMPLETED,
    "CANCELADO": CanonicalStatus.CANCELLED,
    "CANCELED": CanonicalStatus.CANCELLED,
    "FALLIDO": CanonicalStatus.FAILED,
}

# The platform's own state machine (identity, plus ACCEPTED which predates STARTED)
PLATFORM_STATUS_MAP: dict[str, CanonicalStatus] = {
    **{s.value: s for s in CanonicalStatus},
    "ACCEPTED": CanonicalStatus.ASSIGNED,
}

# Delivery-network provider order states
PROVIDER_STATUS_MAP: dict[str, CanonicalStatus] = {
    "NOT_ASSIGNED": CanonicalStatus.PENDING,
    "NOT_ACCEPTED": CanonicalStatus.PENDING,
    "NOT_STARTED_YET": CanonicalStatus.PENDING,
    "IN_PROGRESS": CanonicalStatus.STARTED,
    "AT_PICKUP": CanonicalStatus.PICKED_UP,
    "READY_FOR_PICKUP": CanonicalStatus.PICKED_UP,
    "READY_TO_DELIVER": CanonicalStatus.IN_TRANSIT,
    "ALREADY_DELIVERED": CanonicalStatus.DELIVERED,
    "INCOMPLETE": CanonicalStatus.FAILED,
    "FAILED_DELIVERY": CanonicalStatus.FAILED,
}

# Later maps win on collisions; provider names never collide with the others
_LOOKUP: dict[str, CanonicalStatus] = {
    **LEGACY_STATUS_MAP,
    **PLATFORM_STATUS_MAP,
    **PROVIDER_STATUS_MAP,
}

CATEGORY_BY_STATUS: dict[CanonicalStatus, StatusCategory] = {
    CanonicalStatus.PENDING: StatusCategory.PENDING,
    CanonicalStatus.ASSIGNED: StatusCategory.ASSIGNED,
    CanonicalStatus.STARTED: StatusCategory.ASSIGNED,
    CanonicalStatus.PICKED_UP: StatusCategory.PICKED_UP,
    CanonicalStatus.IN_TRANSIT: StatusCategory.IN_TRANSIT,
    CanonicalStatus.ARRIVED: StatusCategory.IN_TRANSIT,
    CanonicalStatus.DELIVERED: StatusCategory.COMPLETED,
    CanonicalStatus.COMPLETED: StatusCategory.COMPLETED,
    CanonicalStatus.FAILED: StatusCategory.CANCELLED,
    CanonicalStatus.CANCELLED: StatusCategory.CANCELLED,
    CanonicalStatus.UNKNOWN: StatusCategory.UNKNOWN,
}

# Progress bar policy. Non-decreasing along the happy path; failed and
# cancelled orders show no progress at all.
PROGRESS_BY_STATUS: dict[CanonicalStatus, int] = {
    CanonicalStatus.PENDING: 10,
    CanonicalStatus.ASSIGNED: 25,
    CanonicalStatus.STARTED: 50,
    CanonicalStatus.PICKED_UP: 75,
    CanonicalStatus.IN_TRANSIT: 85,
    CanonicalStatus.ARRIVED: 95,
    CanonicalStatus.DELIVERED: 100,
    CanonicalStatus.COMPLETED: 100,
    CanonicalStatus.FAILED: 0,
    CanonicalStatus.CANCELLED: 0,
    CanonicalStatus.UNKNOWN: 0,
}

HAPPY_PATH: tuple[CanonicalStatus, ...] = (
    CanonicalStatus.PENDING,
    CanonicalStatus.ASSIGNED,
    CanonicalStatus.STARTED,
    CanonicalStatus.PICKED_UP,
    CanonicalStatus.IN_TRANSIT,
    CanonicalStatus.ARRIVED,
    CanonicalStatus.DELIVERED,
)

DELIVERED_STATUSES = frozenset({CanonicalStatus.DELIVERED, CanonicalStatus.COMPLETED})
ZERO_PROGRESS_STATUSES = frozenset({CanonicalStatus.FAILED, CanonicalStatus.CANCELLED})

_SEPARATORS = re.compile(r"[\s\-]+")

StatusLike = Union[CanonicalStatus, str, None]


def _key(raw: str) -> str:
    return _SEPARATORS.sub("_", raw.strip()).upper()


def normalize_status(raw: StatusLike) -> CanonicalStatus:
    """
    Map any known raw status (legacy, platform, or provider vocabulary) onto
    CanonicalStatus. Never raises: blank, non-string, or unrecognised input
    yields CanonicalStatus.UNKNOWN. Idempotent.
    """
    if isinstance(raw, CanonicalStatus):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return CanonicalStatus.UNKNOWN
    return _LOOKUP.get(_key(raw), CanonicalStatus.UNKNOWN)


def is_known_status(raw: StatusLike) -> bool:
    return normalize_status(raw) is not CanonicalStatus.UNKNOWN


def status_category(raw: StatusLike) -> StatusCategory:
    """Dashboard category for a raw or canonical status."""
    return CATEGORY_BY_STATUS[normalize_status(raw)]


def progress_percentage(
    raw: StatusLike,
    table: Optional[Mapping[CanonicalStatus, int]] = None,
) -> int:
    """
    0..100 progress for a status. A custom `table` may override the default
    policy, but FAILED and CANCELLED always report 0.
    """
    status = normalize_status(raw)
    if status in ZERO_PROGRESS_STATUSES:
        return 0
    policy = PROGRESS_BY_STATUS if table is None else {**PROGRESS_BY_STATUS, **table}
    return max(0, min(100, int(policy.get(status, 0))))


def is_delivered(raw: StatusLike) -> bool:
    return normalize_status(raw) in DELIVERED_STATUSES


def is_active(raw: StatusLike) -> bool:
    """Pending or moving; not terminal and not unknown."""
    return status_category(raw) in {
        StatusCategory.PENDING,
        StatusCategory.ASSIGNED,
        StatusCategory.PICKED_UP,
        StatusCategory.IN_TRANSIT,
    }
