from __future__ import annotations

from typing import Any, Dict, Optional
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


class RequestsTransport:
    """Requests session wrapper with retry/backoff.

    Retries on connection errors and on the listed gateway status codes. The
    tracking endpoint runs under a request deadline, so the defaults stay small.
    """

    def __init__(self, timeout: float = 5.0, max_retries: int = 1, backoff_factor: float = 0.2) -> None:
        self.session = requests.Session()
        self.timeout = timeout

        retry = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=("GET",),
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def get(self, url: str, *, headers: Optional[Dict[str, str]] = None, params: Optional[Dict[str, Any]] = None,
            timeout: Optional[float] = None):
        return self.session.get(url, headers=headers, params=params, timeout=timeout or self.timeout)

    def close(self) -> None:
        self.session.close()
