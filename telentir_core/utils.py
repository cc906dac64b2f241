"""
telentir_core.utils
-------------------
Lightweight helpers for hex/base64 transport encoding and timestamps.
"""

from __future__ import annotations
import base64, binascii, time


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def b64url(b: bytes) -> str:
    # JOSE flavour: url-safe alphabet, no padding
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")

def b64url_decode(s: str) -> bytes:
    return base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))

def hexe(b: bytes) -> str:
    return binascii.hexlify(b).decode("ascii")

def hexd(s: str) -> bytes:
    return binascii.unhexlify(s)

def now_ms() -> int:
    return int(time.time() * 1000)

def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, second precision
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())