# telentir_core/transport/__init__.py
from telentir_core.transport.transport_base import (
    BaseTransport,
    TransportError,
    TransportPermanentError,
    TransportTransientError,
)
from telentir_core.transport.transport_http import DEFAULT_API, HTTPTransport

__all__ = [
    "BaseTransport",
    "TransportError",
    "TransportPermanentError",
    "TransportTransientError",
    "HTTPTransport",
    "DEFAULT_API",
]
