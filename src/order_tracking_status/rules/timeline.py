from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from order_tracking_status.models.snapshot import TimelineEvent
from order_tracking_status.utils.timestamps import coerce_timestamp

# Event keys in lifecycle order; the rank breaks ties between equal timestamps
EVENT_DESCRIPTIONS: dict[str, str] = {
    "CREATED": "Pedido creado",
    "ASSIGNED": "Repartidor asignado",
    "STARTED": "Repartidor en camino a recoger",
    "PICKED_UP": "Pedido recogido",
    "IN_TRANSIT": "Pedido en camino",
    "ARRIVED": "Repartidor llegó al destino",
    "DELIVERED": "Pedido entregado",
    "COMPLETED": "Pedido completado",
}
_LIFECYCLE_RANK = {key: i for i, key in enumerate(EVENT_DESCRIPTIONS)}

# Provider activity log: (field aliases, event key)
ACTIVITY_LOG_FIELDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("placementTime",), "CREATED"),
    (("assignedTime",), "ASSIGNED"),
    (("startTime",), "STARTED"),
    (("pickedUpTime", "pickedupTime"), "PICKED_UP"),
    (("arrivedTime",), "ARRIVED"),
    (("deliveryTime",), "DELIVERED"),
)

# Per-field timestamps on the order document
DISCRETE_FIELDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("createdAt",), "CREATED"),
    (("assignedAt",), "ASSIGNED"),
    (("startedAt", "acceptedAt"), "STARTED"),
    (("pickedUpAt",), "PICKED_UP"),
    (("inTransitAt",), "IN_TRANSIT"),
    (("arrivedAt",), "ARRIVED"),
    (("deliveredAt",), "DELIVERED"),
    (("completedAt",), "COMPLETED"),
)

# Merge priority: lower wins when two sources produce the same event key
SOURCE_PRIORITY: dict[str, int] = {
    "activity_log": 0,
    "discrete": 1,
    "discrete_timing": 2,
}


@dataclass(frozen=True)
class TimelineEntry:
    """Source-tagged (key, timestamp) pair before merging."""
    key: str
    timestamp: dt.datetime
    source: str


def _first_timestamp(doc: Mapping[str, Any], aliases: Iterable[str]) -> Optional[dt.datetime]:
    for name in aliases:
        ts = coerce_timestamp(doc.get(name))
        if ts is not None:
            return ts
    return None


def _entries(doc: Any, fields, source: str) -> list[TimelineEntry]:
    if not isinstance(doc, Mapping):
        return []
    out: list[TimelineEntry] = []
    for aliases, key in fields:
        ts = _first_timestamp(doc, aliases)
        if ts is not None:
            out.append(TimelineEntry(key=key, timestamp=ts, source=source))
    return out


def entries_from_activity_log(activity_log: Optional[Mapping[str, Any]]) -> list[TimelineEntry]:
    return _entries(activity_log, ACTIVITY_LOG_FIELDS, "activity_log")


def entries_from_order(order: Optional[Mapping[str, Any]]) -> list[TimelineEntry]:
    """Top-level *At fields, then the older nested `timing` object."""
    if not isinstance(order, Mapping):
        return []
    return (
        _entries(order, DISCRETE_FIELDS, "discrete")
        + _entries(order.get("timing"), DISCRETE_FIELDS, "discrete_timing")
    )


def merge_entries(entries: Iterable[TimelineEntry]) -> dict[str, TimelineEntry]:
    """One entry per event key; the highest-priority source wins."""
    chosen: dict[str, TimelineEntry] = {}
    for entry in entries:
        current = chosen.get(entry.key)
        if current is None or SOURCE_PRIORITY[entry.source] < SOURCE_PRIORITY[current.source]:
            chosen[entry.key] = entry
    return chosen


def build_timeline(
    *,
    activity_log: Optional[Mapping[str, Any]] = None,
    order: Optional[Mapping[str, Any]] = None,
) -> list[TimelineEvent]:
    """
    Build the newest-first event list from an activity log and/or the order's
    discrete timestamp fields. Absent or unparseable fields are skipped; each
    event key appears at most once.
    """
    merged = merge_entries(
        entries_from_activity_log(activity_log) + entries_from_order(order)
    )
    ordered = sorted(
        merged.values(),
        key=lambda e: (e.timestamp, _LIFECYCLE_RANK.get(e.key, -1)),
        reverse=True,
    )
    return [
        TimelineEvent(status=e.key, timestamp=e.timestamp,
                      description=EVENT_DESCRIPTIONS.get(e.key, e.key))
        for e in ordered
    ]


def find_event(timeline: Iterable[TimelineEvent], key: str) -> Optional[TimelineEvent]:
    for ev in timeline:
        if ev.status == key:
            return ev
    return None
