from __future__ import annotations
from typing import Any, Dict, Optional, Union

from telentir_core.errors import TelentirError

QueryValue = Union[str, int, float, bool, None]
QueryParams = Dict[str, QueryValue]


class TransportError(TelentirError):
    def __init__(self, message: str, status: Optional[int] = None, reason: str = "", body: Any = None):
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.body = body


class TransportTransientError(TransportError):
    """Connection failures, timeouts and 5xx responses; safe for callers to retry."""


class TransportPermanentError(TransportError):
    """4xx responses and malformed bodies; retrying will not help."""


def error_for_status(status: int, reason: str, body: Any) -> TransportError:
    if isinstance(body, str) and body:
        message = body
    elif isinstance(body, dict) and "message" in body:
        message = str(body["message"])
    else:
        message = f"{status} {reason}".strip()
    cls = TransportTransientError if status >= 500 else TransportPermanentError
    return cls(message, status=status, reason=reason, body=body)


class BaseTransport:
    """
    Request/response contract towards the remote object store.

    ``request`` returns the decoded JSON body, or ``None`` for empty bodies,
    and raises a ``TransportError`` for anything that is not a 2xx.
    Implementations are synchronous; the orchestrator runs them in a worker
    thread.
    """
    name: str = "base"

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        query: Optional[QueryParams] = None,
    ) -> Any:
        raise NotImplementedError

    def close(self) -> None:
        return
