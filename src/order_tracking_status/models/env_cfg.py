from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class EnvCfg:
    """Minimal shape we need from get_app_env()."""
    SHIPDAY_API_KEY: str = ""
    SHIPDAY_BASE_URL: str = "https://api.shipday.com"
    PROVIDER_TIMEOUT_SECONDS: float = 5.0
    TRACKING_DEADLINE_SECONDS: float = 8.0
    ON_TIME_TOLERANCE_MINUTES: float = 15.0
    DEFAULT_DELIVERY_FEE: float = 55.0
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB: str = "delivery"

    @property
    def has_provider_credentials(self) -> bool:
        return bool(self.SHIPDAY_API_KEY)
