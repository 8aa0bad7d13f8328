from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence

from order_tracking_status.api.normalize import assigned_carrier_of, courier_from_block
from order_tracking_status.io.schema import (
    DEFAULT_COURIER_RATING,
    DRIVERS,
    PROVIDER_CARRIERS,
    PROVIDER_ORDERS,
)
from order_tracking_status.io.store import DocumentStore
from order_tracking_status.models import CourierInfo

_log = logging.getLogger("order_tracking_status.pipelines.driver_resolver")


@dataclass(frozen=True)
class ResolverContext:
    order: dict[str, Any]
    # provider order body from a successful live call, if any
    live_order: Optional[dict[str, Any]] = None


class CourierTier(Protocol):
    name: str

    def resolve(self, ctx: ResolverContext) -> Optional[CourierInfo]:
        ...


def _id_variants(value: Any) -> list[Any]:
    """The stored id as given, plus its int/str twin; mirrors mix both."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return []
    out: list[Any] = [value]
    text = str(value).strip()
    if isinstance(value, str) and text.lstrip("-").isdigit():
        out.append(int(text))
    elif not isinstance(value, str):
        out.append(text)
    return out


class LiveProviderCarrierTier:
    """Tier 1: the carrier embedded in the live provider order."""

    name = "provider_live"

    def resolve(self, ctx: ResolverContext) -> Optional[CourierInfo]:
        if not ctx.live_order:
            return None
        return courier_from_block(
            assigned_carrier_of(ctx.live_order), source=self.name, rating=DEFAULT_COURIER_RATING)


class CachedProviderOrderTier:
    """Tier 2: assigned carrier on the locally mirrored provider order."""

    name = "provider_order_cache"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def resolve(self, ctx: ResolverContext) -> Optional[CourierInfo]:
        for ident in _id_variants(ctx.order.get("shipdayOrderId")):
            cached = self.store.find_one(PROVIDER_ORDERS, "orderId", ident)
            if cached:
                return courier_from_block(
                    assigned_carrier_of(cached), source=self.name, rating=DEFAULT_COURIER_RATING)
        return None


class CachedCarrierTier:
    """Tier 3: mirrored carrier record referenced by the order."""

    name = "provider_carrier_cache"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def resolve(self, ctx: ResolverContext) -> Optional[CourierInfo]:
        ref = ctx.order.get("assignedCarrierId")
        if ref is None:
            ref = ctx.order.get("shipdayCarrierId")
        for ident in _id_variants(ref):
            carrier = self.store.find_one(PROVIDER_CARRIERS, "id", ident)
            if carrier:
                return courier_from_block(carrier, source=self.name, rating=DEFAULT_COURIER_RATING)
        return None


class PlatformDriverTier:
    """Tier 4: the platform's own driver account, with its historical rating."""

    name = "platform_driver"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def resolve(self, ctx: ResolverContext) -> Optional[CourierInfo]:
        driver_id = ctx.order.get("driverId") or ctx.order.get("assignedDriverId")
        if not driver_id:
            return None
        driver = self.store.get(DRIVERS, str(driver_id))
        if not driver:
            return None
        kpis = driver.get("kpis") if isinstance(driver.get("kpis"), dict) else {}
        rating = kpis.get("averageRating")
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or rating <= 0:
            rating = DEFAULT_COURIER_RATING
        return courier_from_block(
            driver, source=self.name, rating=float(rating),
            photo_keys=("profilePhoto", "photo"))


class OrderDriverNameTier:
    """Last resort: the bare courier name a webhook copied onto the order."""

    name = "order_driver_name"

    def resolve(self, ctx: ResolverContext) -> Optional[CourierInfo]:
        name = ctx.order.get("driverName")
        if not isinstance(name, str) or not name.strip():
            return None
        return CourierInfo(name=name.strip(), rating=None, source=self.name)


def default_tiers(store: DocumentStore) -> list[CourierTier]:
    return [
        LiveProviderCarrierTier(),
        CachedProviderOrderTier(store),
        CachedCarrierTier(store),
        PlatformDriverTier(store),
        OrderDriverNameTier(),
    ]


class DriverResolver:
    """Ordered, short-circuiting courier lookup.

    Tiers run one after another and the first non-None answer wins. A tier that
    raises is logged and treated as empty. New sources are appended as tiers.
    """

    def __init__(self, tiers: Sequence[CourierTier], *, logger: Optional[logging.Logger] = None) -> None:
        self.tiers = list(tiers)
        self.logger = logger or _log

    @classmethod
    def for_store(cls, store: DocumentStore, **kwargs) -> "DriverResolver":
        return cls(default_tiers(store), **kwargs)

    def resolve(
        self,
        order: dict[str, Any],
        *,
        live_order: Optional[dict[str, Any]] = None,
        skip: Iterable[str] = (),
    ) -> Optional[CourierInfo]:
        ctx = ResolverContext(order=order, live_order=live_order)
        skipped = set(skip)
        for tier in self.tiers:
            if tier.name in skipped:
                continue
            try:
                found = tier.resolve(ctx)
            except Exception as ex:
                self.logger.warning(
                    "Courier tier %s failed for order %s: %s",
                    tier.name, order.get("orderNumber") or order.get("id"), ex,
                )
                continue
            if found is not None:
                self.logger.debug("Courier resolved by tier %s: %s", tier.name, found.name)
                return found
        return None
