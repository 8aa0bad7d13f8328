from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Optional

from order_tracking_status.api.client import ProviderClient
from order_tracking_status.api.normalize import (
    business_from_block,
    customer_from_block,
    normalize_progress,
    normalize_provider_order,
    tracking_id_from_link,
    ProgressView,
)
from order_tracking_status.io.schema import (
    BUSINESSES,
    BUSINESS_PLACEHOLDER,
    ADDRESS_PLACEHOLDER,
    ORDER_ITEM_PLACEHOLDER,
    ORDER_LOOKUP_FIELDS,
    ORDERS,
)
from order_tracking_status.io.store import DocumentStore
from order_tracking_status.models import (
    BusinessInfo,
    CanonicalStatus,
    Coordinates,
    CourierInfo,
    CustomerInfo,
    EnvCfg,
    TimelineEvent,
    TrackingSnapshot,
)
from order_tracking_status.models.snapshot import to_iso
from order_tracking_status.pipelines.driver_resolver import DriverResolver, OrderDriverNameTier
from order_tracking_status.rules.status_mapper import (
    is_delivered,
    normalize_status,
    progress_percentage,
    status_category,
)
from order_tracking_status.rules.timeline import build_timeline, find_event
from order_tracking_status.utils.timestamps import coerce_timestamp


class TrackingNotFoundError(LookupError):
    """No local order matches the requested identifier."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"order not found: {identifier}")
        self.identifier = identifier


def _num(val: Any, default: float = 0.0) -> float:
    if val is None or isinstance(val, bool):
        return default
    try:
        out = float(val)
    except (TypeError, ValueError):
        return default
    return out if out == out else default


def _eta(val: Any) -> Optional[str]:
    """ISO time for any stored ETA shape; free text that is not a time is kept as is."""
    ts = coerce_timestamp(val)
    if ts is not None:
        return to_iso(ts)
    if isinstance(val, str) and val.strip():
        return val.strip()
    return None


@dataclass
class _Draft:
    """Mutable working copy of the snapshot while sources are merged."""

    status: CanonicalStatus
    customer: CustomerInfo
    business: BusinessInfo
    timeline: list[TimelineEvent]
    proof_of_delivery: list[str]
    estimated_time: Any
    tracking_link: Optional[str]
    driver: Optional[CourierInfo] = None
    driver_location: Optional[Coordinates] = None
    live_order: Optional[dict[str, Any]] = None
    sources: list[str] = field(default_factory=list)


class TrackingAggregator:
    """Builds the per-request tracking snapshot.

    Local order data seeds every field; a live provider order (when a key is
    configured and the call succeeds in time) overrides only the fields it
    returns; the courier comes from the DriverResolver chain; live location
    comes from the provider progress endpoint, best effort. Only a missing
    local order is fatal.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: Optional[ProviderClient] = None,
        *,
        resolver: Optional[DriverResolver] = None,
        provider_timeout: float = 5.0,
        deadline: float = 8.0,
        default_delivery_fee: float = 55.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.resolver = resolver or DriverResolver.for_store(store)
        self.provider_timeout = float(provider_timeout)
        self.deadline = float(deadline)
        self.default_delivery_fee = float(default_delivery_fee)
        self.logger = logger or logging.getLogger(
            "order_tracking_status.pipelines.tracking")

    @classmethod
    def from_env(cls, env_cfg: EnvCfg, store: DocumentStore, **kwargs) -> "TrackingAggregator":
        from order_tracking_status.api.shipday import ShipdayClient, ShipdayConfig
        from order_tracking_status.api.transport import RequestsTransport

        provider = kwargs.pop("provider", None) or ShipdayClient(
            ShipdayConfig(base_url=env_cfg.SHIPDAY_BASE_URL, api_key=env_cfg.SHIPDAY_API_KEY),
            transport=RequestsTransport(timeout=env_cfg.PROVIDER_TIMEOUT_SECONDS),
        )
        return cls(
            store,
            provider,
            provider_timeout=env_cfg.PROVIDER_TIMEOUT_SECONDS,
            deadline=env_cfg.TRACKING_DEADLINE_SECONDS,
            default_delivery_fee=env_cfg.DEFAULT_DELIVERY_FEE,
            **kwargs,
        )

    # --- local record ----------------------------------------------------------

    def find_order(self, identifier: str) -> Optional[dict[str, Any]]:
        """Try each lookup field, then the document id."""
        ident = str(identifier or "").strip()
        if not ident:
            return None
        for fld in ORDER_LOOKUP_FIELDS:
            candidates: list[Any] = [ident]
            if ident.isdigit():
                candidates.append(int(ident))
            for value in candidates:
                doc = self.store.find_one(ORDERS, fld, value)
                if doc:
                    self.logger.debug("Order %s matched on field %s", ident, fld)
                    return doc
        return self.store.get(ORDERS, ident)

    def _local_business(self, order: dict[str, Any]) -> BusinessInfo:
        business_id = order.get("businessId")
        if business_id:
            try:
                doc = self.store.get(BUSINESSES, str(business_id))
            except Exception as ex:
                self.logger.warning("Business lookup %s failed: %s", business_id, ex)
                doc = None
            if doc:
                return business_from_block(doc)
        pickup = order.get("pickup")
        if isinstance(pickup, dict) and pickup:
            return business_from_block(pickup)
        return BusinessInfo(name=BUSINESS_PLACEHOLDER, address=ADDRESS_PLACEHOLDER)

    def _seed(self, order: dict[str, Any]) -> _Draft:
        pod = order.get("proofOfDelivery")
        link = order.get("trackingLink")
        return _Draft(
            status=normalize_status(order.get("status")),
            customer=customer_from_block(order.get("customer")),
            business=self._local_business(order),
            timeline=build_timeline(activity_log=order.get("activityLog"), order=order),
            proof_of_delivery=[u for u in pod if isinstance(u, str) and u] if isinstance(pod, list) else [],
            estimated_time=_eta(order.get("estimatedDeliveryTime")),
            tracking_link=link if isinstance(link, str) and link else None,
            sources=["local"],
        )

    # --- provider ----------------------------------------------------------------

    def _provider_order_number(self, order: dict[str, Any], identifier: str) -> str:
        for key in ("shipdayOrderNumber", "shipdayOrderId", "orderNumber"):
            if order.get(key) not in (None, ""):
                return str(order[key])
        return identifier

    def _await(self, future: Future, deadline_at: float, what: str, order_ref: str) -> Optional[dict[str, Any]]:
        remaining = max(0.0, deadline_at - time.monotonic())
        try:
            return future.result(timeout=remaining)
        except FutureTimeout:
            self.logger.warning("Provider %s for %s exceeded the %.1fs deadline", what, order_ref, self.deadline)
        except Exception as ex:
            self.logger.warning("Provider %s for %s failed: %s", what, order_ref, ex)
        return None

    def _apply_live_order(self, draft: _Draft, body: dict[str, Any], order: dict[str, Any]) -> None:
        view = normalize_provider_order(body)
        # an unrecognised provider state says nothing; keep the local status
        if view.status is not None and view.status is not CanonicalStatus.UNKNOWN:
            draft.status = view.status
        eta = _eta(view.eta)
        if eta is not None:
            draft.estimated_time = eta
        if view.business is not None:
            draft.business = view.business
        if view.customer is not None:
            draft.customer = view.customer
        if view.activity_log is not None:
            draft.timeline = build_timeline(activity_log=view.activity_log, order=order)
        if view.proof_of_delivery is not None:
            draft.proof_of_delivery = view.proof_of_delivery
        if draft.tracking_link is None and view.tracking_link:
            draft.tracking_link = view.tracking_link
        draft.live_order = body
        draft.sources.append("provider")

    def _apply_progress(self, draft: _Draft, progress: ProgressView) -> None:
        if progress.location is not None:
            draft.driver_location = progress.location
        if progress.eta_minutes is not None:
            draft.estimated_time = progress.eta_minutes
        # a live carrier beats a name copied onto the order
        weak = draft.driver is None or draft.driver.source == OrderDriverNameTier.name
        if weak and progress.carrier is not None:
            draft.driver = progress.carrier
        draft.sources.append("progress")

    def _merge_provider(self, draft: _Draft, order: dict[str, Any], identifier: str) -> None:
        provider = self.provider
        order_ref = str(order.get("orderNumber") or identifier)
        deadline_at = time.monotonic() + self.deadline
        live_enabled = provider is not None and provider.configured
        if provider is not None and not live_enabled:
            self.logger.debug("No provider credential; skipping live order for %s", order_ref)

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="tracking")
        try:
            live_future = None
            progress_future = None
            progress_id = tracking_id_from_link(draft.tracking_link)

            if live_enabled:
                live_future = pool.submit(
                    provider.fetch_order,
                    self._provider_order_number(order, identifier),
                    timeout=self.provider_timeout,
                )
            if provider is not None and progress_id:
                progress_future = pool.submit(
                    provider.fetch_progress, progress_id, timeout=self.provider_timeout)

            if live_future is not None:
                body = self._await(live_future, deadline_at, "order", order_ref)
                if isinstance(body, dict) and body:
                    try:
                        self._apply_live_order(draft, body, order)
                    except Exception as ex:
                        self.logger.warning("Provider order for %s was malformed: %s", order_ref, ex)

            # the link may only be known from the live order
            if provider is not None and progress_future is None:
                progress_id = tracking_id_from_link(draft.tracking_link)
                if progress_id:
                    progress_future = pool.submit(
                        provider.fetch_progress, progress_id, timeout=self.provider_timeout)

            draft.driver = self.resolver.resolve(order, live_order=draft.live_order)

            if progress_future is not None:
                body = self._await(progress_future, deadline_at, "progress", order_ref)
                if isinstance(body, dict) and body:
                    self._apply_progress(draft, normalize_progress(body))
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    # --- assembly ----------------------------------------------------------------

    def _delivery_time(self, draft: _Draft, order: dict[str, Any]) -> Optional[str]:
        if not is_delivered(draft.status):
            return None
        ev = find_event(draft.timeline, "DELIVERED") or find_event(draft.timeline, "COMPLETED")
        if ev is not None:
            return ev.iso_timestamp
        local = coerce_timestamp(order.get("deliveredAt"))
        if local is not None:
            return to_iso(local)
        return draft.timeline[0].iso_timestamp if draft.timeline else None

    @staticmethod
    def _placement_time(draft: _Draft, order: dict[str, Any]) -> Optional[str]:
        ev = find_event(draft.timeline, "CREATED")
        if ev is not None:
            return ev.iso_timestamp
        if draft.timeline:
            return draft.timeline[-1].iso_timestamp
        return to_iso(coerce_timestamp(order.get("createdAt")))

    def _order_items(self, order: dict[str, Any], fee: float, total: float) -> list[dict[str, Any]]:
        items = order.get("orderItems")
        if isinstance(items, list) and items:
            return [dict(i) for i in items if isinstance(i, dict)]
        return [{
            "name": order.get("orderDescription") or ORDER_ITEM_PLACEHOLDER,
            "quantity": 1,
            "unitPrice": round(total - fee, 2),
        }]

    def get_snapshot(self, identifier: str) -> TrackingSnapshot:
        order = self.find_order(identifier)
        if not order:
            self.logger.info("Tracking lookup for %s: not found", identifier)
            raise TrackingNotFoundError(str(identifier))

        draft = self._seed(order)
        self._merge_provider(draft, order, str(identifier))

        fee = _num(order.get("deliveryFee"), self.default_delivery_fee) or self.default_delivery_fee
        total = _num(order.get("totalOrderValue", order.get("totalAmount", order.get("total"))))
        pricing = order.get("pricing") if isinstance(order.get("pricing"), dict) else {}
        tip = _num(order.get("tip", pricing.get("tip")))

        snapshot = TrackingSnapshot(
            orderNumber=str(order.get("orderNumber") or identifier),
            status=draft.status,
            statusCategory=status_category(draft.status),
            progress=progress_percentage(draft.status),
            customer=draft.customer,
            business=draft.business,
            driver=draft.driver,
            driverLocation=draft.driver_location,
            estimatedTime=draft.estimated_time,
            orderItems=self._order_items(order, fee, total),
            deliveryFee=fee,
            totalCost=total,
            placementTime=self._placement_time(draft, order),
            deliveryTime=self._delivery_time(draft, order),
            proofOfDelivery=draft.proof_of_delivery,
            timeline=draft.timeline,
            trackingLink=draft.tracking_link,
            paymentMethod=order.get("paymentMethod"),
            tip=tip,
        )

        self.logger.info(
            "Tracking %s: status=%s sources=%s driver=%s location=%s events=%d",
            snapshot.orderNumber,
            snapshot.status.value,
            ",".join(draft.sources),
            draft.driver.source if draft.driver else None,
            bool(snapshot.driverLocation),
            len(snapshot.timeline),
        )
        return snapshot
