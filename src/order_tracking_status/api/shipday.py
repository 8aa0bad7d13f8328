from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote
import json
import logging

import requests

from .transport import RequestsTransport


class ProviderError(RuntimeError):
    """The delivery-network provider was unreachable or answered unusably."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass
class ShipdayConfig:
    base_url: str = "https://api.shipday.com"
    api_key: str = ""


def _clip(text: Optional[str], limit: int = 2000) -> Optional[str]:
    if text and len(text) > limit:
        return text[:limit] + "..."
    return text


class ShipdayClient:
    """Minimal client for the two provider endpoints the tracker reads.

    - fetch_order(order_number): authenticated `GET /orders/{orderNumber}`.
    - fetch_progress(tracking_id): `GET /order/progress/{trackingId}`; the key
      is sent when configured but the endpoint does not require it.

    Both raise ProviderError on transport failures, non-2xx statuses, and
    bodies that are not JSON objects. Callers decide how to fall back.
    """

    def __init__(
        self,
        cfg: ShipdayConfig,
        transport: Optional[RequestsTransport] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.cfg = cfg
        self.transport = transport or RequestsTransport()
        self.logger: logging.Logger = logger or logging.getLogger(
            "order_tracking_status.api.shipday"
        )

    @property
    def configured(self) -> bool:
        return bool(self.cfg.api_key)

    def _headers(self, *, auth: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if auth and self.cfg.api_key:
            headers["Authorization"] = f"Basic {self.cfg.api_key}"
        return headers

    def _get_json(self, url: str, *, headers: Dict[str, str], params: Optional[Dict[str, Any]] = None,
                  timeout: Optional[float] = None) -> Any:
        self.logger.debug("Provider GET %s params=%s", url, params)
        try:
            resp = self.transport.get(
                url, headers=headers, params=params, timeout=timeout)
        except requests.RequestException as ex:
            self.logger.warning("Provider GET %s failed: %s", url, ex)
            raise ProviderError(f"transport error: {ex}") from ex

        status = resp.status_code
        if not 200 <= status < 300:
            self.logger.warning(
                "Provider GET %s returned status=%s response_body=%s",
                url, status, _clip(resp.text),
            )
            raise ProviderError(f"HTTP {status}", status=status)

        try:
            body = resp.json()
        except ValueError as ex:
            self.logger.warning(
                "Provider GET %s returned non-JSON body: %s", url, _clip(resp.text))
            raise ProviderError("malformed body", status=status) from ex

        try:
            self.logger.debug("Provider GET %s status=%s response_body=%s",
                              url, status, _clip(json.dumps(body, ensure_ascii=False), 4000))
        except (TypeError, ValueError):
            pass
        return body

    def fetch_order(self, order_number: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Return the provider's order object for `order_number`.

        The endpoint answers with a list of matches; the entry whose
        orderNumber equals the request wins, else the first one.
        """
        if not self.configured:
            raise ProviderError("provider credential not configured")

        url = f"{self.cfg.base_url.rstrip('/')}/orders/{quote(str(order_number), safe='')}"
        body = self._get_json(url, headers=self._headers(auth=True), timeout=timeout)

        if isinstance(body, list):
            candidates = [o for o in body if isinstance(o, dict)]
            if not candidates:
                raise ProviderError(f"order {order_number} not found at provider")
            for o in candidates:
                if str(o.get("orderNumber", "")) == str(order_number):
                    return o
            return candidates[0]
        if isinstance(body, dict) and body:
            return body
        raise ProviderError("unexpected order body shape")

    def fetch_progress(self, tracking_id: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Live courier progress (location, ETA) for a tracking id."""
        url = f"{self.cfg.base_url.rstrip('/')}/order/progress/{quote(str(tracking_id), safe='')}"
        body = self._get_json(
            url,
            headers=self._headers(auth=True),
            params={"isStaticDataRequired": "false"},
            timeout=timeout,
        )
        if not isinstance(body, dict):
            raise ProviderError("unexpected progress body shape")
        return body
