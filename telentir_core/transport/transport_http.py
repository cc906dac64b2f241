# telentir_core/transport/transport_http.py
from __future__ import annotations
from typing import Any, Optional
import re

import requests

from telentir_core.logger import get_logger
from telentir_core.transport.transport_base import (
    BaseTransport,
    QueryParams,
    TransportPermanentError,
    TransportTransientError,
    error_for_status,
)

log = get_logger("Telentir.Transport.HTTP")

DEFAULT_API = "https://telentir.com/api"
_ABSOLUTE = re.compile(r"^https?://", re.IGNORECASE)


class HTTPTransport(BaseTransport):
    """
    HTTP adapter for the Telentir REST API.

    - Bearer authentication with the account API key on every request
    - Relative paths are joined to ``base_url``; absolute URLs pass through
    - ``None`` query values are dropped
    """
    name = "http"

    def __init__(self, base_url: str = DEFAULT_API, api_key: str = "", timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve_url(self, target: str) -> str:
        if _ABSOLUTE.match(target):
            return target
        suffix = target if target.startswith("/") else f"/{target}"
        return f"{self.base_url}{suffix}"

    def request(self, method: str, path: str, json: Any = None, query: Optional[QueryParams] = None) -> Any:
        url = self.resolve_url(path)
        headers = {"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"}
        params = {k: str(v) for k, v in (query or {}).items() if v is not None}

        log.debug(f"[HTTP REQ] {method} {url}")
        try:
            res = self.session.request(
                method,
                url,
                json=json,
                params=params or None,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            log.error(f"[HTTP REQ] {method} {url} failed: {e}")
            raise TransportTransientError(f"Request to {url} failed: {e}") from e

        if not res.ok:
            body = _error_body(res)
            log.error(f"[HTTP RES] {method} {url} -> {res.status_code} {res.reason}")
            raise error_for_status(res.status_code, res.reason or "", body)

        log.debug(f"[HTTP RES] {method} {url} -> {res.status_code}")
        if res.status_code == 204 or not res.content:
            return None

        try:
            return res.json()
        except ValueError as e:
            raise TransportPermanentError(
                f"Failed to parse JSON response from {url}: {e}",
                status=res.status_code,
                reason=res.reason or "",
                body=res.text,
            ) from e

    def close(self) -> None:
        self.session.close()


def _error_body(res: requests.Response) -> Any:
    content_type = res.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            return res.json()
    except ValueError:
        pass
    return res.text or None
