# src/order_tracking_status/api/client.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Any, List
import json

from order_tracking_status.api.shipday import ProviderError


class ProviderClient(Protocol):
    @property
    def configured(self) -> bool:
        ...

    def fetch_order(self, order_number: str, *, timeout: Optional[float] = None) -> dict[str, Any]:
        ...

    def fetch_progress(self, tracking_id: str, *, timeout: Optional[float] = None) -> dict[str, Any]:
        ...


@dataclass
class ReplayClient:
    """Replay client serving recorded provider bodies from a single JSON file.

    Accepted file shapes:
      - {"orders": [...order bodies...] | {orderNumber: body},
         "progress": {trackingId: body}}
      - a bare JSON array (or object) of order bodies

    Order bodies are indexed by every identifier they carry (orderNumber,
    orderId). Lookups that miss raise ProviderError, like a provider 404.
    """

    replay_file: Path
    _orders: dict[str, Any] = field(default_factory=dict)
    _progress: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.replay_file = Path(self.replay_file)
        if not self.replay_file.exists():
            raise ValueError(f"Replay file does not exist: {self.replay_file}")
        if not self.replay_file.is_file():
            raise ValueError(
                "ReplayClient requires a single JSON file containing recorded provider bodies."
            )

        raw = json.loads(self.replay_file.read_text(encoding="utf-8"))
        if isinstance(raw, dict) and ("orders" in raw or "progress" in raw):
            orders = raw.get("orders") or []
            progress = raw.get("progress") or {}
        else:
            orders = raw
            progress = {}

        if isinstance(orders, dict):
            for key, body in orders.items():
                self._orders[str(key)] = body
                for ident in self._identifiers(body):
                    self._orders.setdefault(ident, body)
        else:
            entries: List[Any] = orders if isinstance(orders, list) else [orders]
            for body in entries:
                for ident in self._identifiers(body):
                    self._orders[ident] = body

        if isinstance(progress, dict):
            self._progress = {str(k): v for k, v in progress.items()}

    @staticmethod
    def _identifiers(body: Any) -> List[str]:
        if not isinstance(body, dict):
            return []
        out: List[str] = []
        for key in ("orderNumber", "orderId"):
            val = body.get(key)
            if val is not None and str(val).strip():
                out.append(str(val))
        return out

    @property
    def configured(self) -> bool:
        return True

    def fetch_order(self, order_number: str, *, timeout: Optional[float] = None) -> dict[str, Any]:
        body = self._orders.get(str(order_number))
        if not isinstance(body, dict):
            raise ProviderError(f"order {order_number} not in replay file", status=404)
        return body

    def fetch_progress(self, tracking_id: str, *, timeout: Optional[float] = None) -> dict[str, Any]:
        body = self._progress.get(str(tracking_id))
        if not isinstance(body, dict):
            raise ProviderError(f"progress {tracking_id} not in replay file", status=404)
        return body
