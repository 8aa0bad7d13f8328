# src/order_tracking_status/pipelines/metrics.py
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Iterable, Optional

import numpy as np
import pandas as pd

from order_tracking_status.io.schema import ORDERS
from order_tracking_status.io.store import DocumentStore
from order_tracking_status.models import (
    BusinessMetrics,
    CanonicalStatus,
    OrderAnalytics,
    StatusCategory,
)
from order_tracking_status.rules.status_mapper import normalize_status, status_category
from order_tracking_status.utils.timestamps import coerce_timestamp

logger = logging.getLogger("order_tracking_status.pipelines.metrics")

DEFAULT_ON_TIME_TOLERANCE_MINUTES = 15.0

# on-time % thresholds, checked in order
PERFORMANCE_BANDS = (
    (90.0, "excellent"),
    (75.0, "good"),
    (60.0, "fair"),
)

# hour ranges [start, end) in local time; anything else is "night"
DAYPARTS = (
    ("morning", 6, 12),
    ("afternoon", 12, 18),
    ("evening", 18, 22),
)

_COMPLETED = {CanonicalStatus.DELIVERED.value, CanonicalStatus.COMPLETED.value}
_AMOUNT_KEYS = ("totalAmount", "totalOrderValue", "total")


def _ratio(num: float, den: float) -> float:
    """num/den, or 0.0 when the denominator set is empty."""
    if not den:
        return 0.0
    out = float(num) / float(den)
    return out if np.isfinite(out) else 0.0


def _amount(order: dict[str, Any]) -> float:
    for key in _AMOUNT_KEYS:
        val = order.get(key)
        if isinstance(val, bool):
            continue
        try:
            out = float(val)
        except (TypeError, ValueError):
            continue
        if np.isfinite(out):
            return out
    return 0.0


def _feedback(order: dict[str, Any]) -> float:
    val = order.get("feedback")
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        return np.nan
    return float(val) if val > 0 else np.nan


def _resolve_tz(tz: Any) -> dt.tzinfo:
    if tz is None:
        return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc
    if isinstance(tz, str):
        return pd.Timestamp.now(tz=tz).tzinfo
    return tz


def orders_frame(orders: Iterable[dict[str, Any]]) -> pd.DataFrame:
    """
    One row per order with the fields metrics read:
    status, category, created, amount, feedback, placed, delivered, expected.
    Timestamps are UTC (NaT when missing); delivery timing comes from the
    activity-log shape only.
    """
    rows = []
    for o in orders:
        if not isinstance(o, dict):
            continue
        log = o.get("activityLog") if isinstance(o.get("activityLog"), dict) else {}
        status = normalize_status(o.get("status"))
        rows.append({
            "status": status.value,
            "category": status_category(status).value,
            "created": coerce_timestamp(o.get("createdAt")),
            "amount": _amount(o),
            "feedback": _feedback(o),
            "placed": coerce_timestamp(log.get("placementTime")),
            "delivered": coerce_timestamp(log.get("deliveryTime")),
            "expected": coerce_timestamp(log.get("expectedDeliveryTime")),
        })

    cols = ["status", "category", "created", "amount",
            "feedback", "placed", "delivered", "expected"]
    df = pd.DataFrame(rows, columns=cols)
    for c in ("created", "placed", "delivered", "expected"):
        df[c] = pd.to_datetime(df[c], utc=True)
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
    df["feedback"] = pd.to_numeric(df["feedback"], errors="coerce")
    return df


def delivery_performance(on_time_pct: float) -> str:
    for floor, label in PERFORMANCE_BANDS:
        if on_time_pct >= floor:
            return label
    return "poor"


def compute_business_metrics(
    orders: Iterable[dict[str, Any]],
    *,
    business: Optional[dict[str, Any]] = None,
    now: Optional[dt.datetime] = None,
    tz: Any = None,
    on_time_tolerance_minutes: float = DEFAULT_ON_TIME_TOLERANCE_MINUTES,
) -> BusinessMetrics:
    """
    Dashboard metrics over an already-scoped set of orders.

    - successRate: completed / (total - cancelled) × 100
    - avgDeliveryTime: mean(deliveryTime - placementTime) in minutes over
      completed orders whose activity log carries both
    - onTimePercentage: share of those with an expectedDeliveryTime where
      delivery <= expected + tolerance
    - avgRating: mean feedback over orders with a positive numeric feedback
    - orderTrend: today's vs yesterday's order count, local calendar days

    Every ratio is 0 when its denominator set is empty.
    """
    df = orders_frame(orders)
    credits = 0.0
    if isinstance(business, dict):
        credits = _amount({"total": business.get("availableCredits", business.get("credits"))})

    if df.empty:
        logger.debug("No orders to measure")
        return BusinessMetrics(availableCredits=credits, deliveryPerformance=delivery_performance(0.0))

    tzinfo = _resolve_tz(tz)
    now_ts = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz=tzinfo)
    if now_ts.tzinfo is None:
        now_ts = now_ts.tz_localize(tzinfo)
    local_now = now_ts.tz_convert(tzinfo)
    today_start = local_now.normalize()
    yesterday_start = today_start - pd.Timedelta(days=1)

    created = df["created"]
    is_today = created >= today_start
    is_yesterday = (created >= yesterday_start) & (created < today_start)
    last_7 = created >= now_ts - pd.Timedelta(days=7)
    last_30 = created >= now_ts - pd.Timedelta(days=30)

    completed = df["status"].isin(_COMPLETED)
    cancelled = df["status"] == CanonicalStatus.CANCELLED.value
    pending = df["status"] == CanonicalStatus.PENDING.value

    total = len(df)
    n_completed = int(completed.sum())
    n_cancelled = int(cancelled.sum())
    success = _ratio(n_completed, total - n_cancelled) * 100

    timed = df.loc[completed & df["placed"].notna() & df["delivered"].notna()]
    durations = (timed["delivered"] - timed["placed"]).dt.total_seconds() / 60.0
    avg_delivery = float(durations.mean()) if len(durations) else 0.0

    with_expected = timed.loc[timed["expected"].notna()]
    tolerance = pd.Timedelta(minutes=float(on_time_tolerance_minutes))
    on_time = int((with_expected["delivered"] <= with_expected["expected"] + tolerance).sum())
    on_time_pct = _ratio(on_time, len(with_expected)) * 100

    rated = df["feedback"].dropna()
    avg_rating = float(rated.mean()) if len(rated) else 0.0

    n_today = int(is_today.sum())
    n_yesterday = int(is_yesterday.sum())
    if n_today > n_yesterday:
        trend = "up"
    elif n_today < n_yesterday:
        trend = "down"
    else:
        trend = "stable"

    result = BusinessMetrics(
        totalOrders=total,
        todayOrders=n_today,
        pendingOrders=int(pending.sum()),
        completedOrders=n_completed,
        cancelledOrders=n_cancelled,
        totalSpent=round(float(df["amount"].sum()), 2),
        successRate=round(success, 2),
        avgDeliveryTime=int(round(avg_delivery)) if np.isfinite(avg_delivery) else 0,
        onTimePercentage=round(on_time_pct, 2),
        avgRating=round(avg_rating, 1) if np.isfinite(avg_rating) else 0.0,
        revenueLast7Days=round(float(df.loc[last_7, "amount"].sum()), 2),
        revenueLast30Days=round(float(df.loc[last_30, "amount"].sum()), 2),
        orderTrend=trend,
        deliveryPerformance=delivery_performance(on_time_pct),
        availableCredits=credits,
    )
    logger.info(
        "Metrics over %d orders: success=%.2f%% on_time=%.2f%% (n=%d) avg_delivery=%dmin trend=%s",
        total, result.successRate, result.onTimePercentage, len(with_expected),
        result.avgDeliveryTime, trend,
    )
    return result


def _daypart(hour: int) -> str:
    for name, start, end in DAYPARTS:
        if start <= hour < end:
            return name
    return "night"


def analyze_orders(orders: Iterable[dict[str, Any]], *, tz: Any = None) -> OrderAnalytics:
    """Status mix by dashboard category, time-of-day mix, peak hours and average order value."""
    df = orders_frame(orders)
    status_dist = {c.value: 0 for c in StatusCategory}
    time_dist = {name: 0 for name, _, _ in DAYPARTS}
    time_dist["night"] = 0

    if df.empty:
        return OrderAnalytics(statusDistribution=status_dist, timeDistribution=time_dist)

    for cat, n in df["category"].value_counts().items():
        status_dist[str(cat)] = int(n)

    created = df["created"].dropna()
    peak_hours: list[str] = []
    if len(created):
        hours = created.dt.tz_convert(_resolve_tz(tz)).dt.hour
        for part, n in hours.map(_daypart).value_counts().items():
            time_dist[str(part)] = int(n)
        hourly = hours.value_counts()
        top = hourly.max()
        peak_hours = [f"{int(h)}:00" for h in sorted(hourly[hourly == top].index)]

    return OrderAnalytics(
        statusDistribution=status_dist,
        timeDistribution=time_dist,
        avgOrderValue=round(_ratio(df["amount"].sum(), len(df)), 2),
        peakHours=peak_hours,
    )


def load_scoped_orders(
    store: DocumentStore,
    *,
    business_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Orders for one business and/or driver; unscoped when neither is given."""
    filters: dict[str, Any] = {}
    if business_id:
        filters["businessId"] = business_id
    if driver_id:
        filters["driverId"] = driver_id
    docs = store.find(ORDERS, filters or None, limit=limit)
    logger.debug("Loaded %d orders for scope %s", len(docs), filters or "all")
    return docs
