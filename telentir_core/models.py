# telentir_core/models.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field, replace
from typing import Any, Dict, Optional

from .servers import EncryptedHeader, EncryptedPayload
from .utils import hexd


@dataclass(frozen=True)
class KeyRecord:
    """
    Remote-store representation of a wrapped symmetric key.

    ``key`` and ``iv`` are the wrapped values, hex encoded as on the wire.
    The remote store is authoritative; copies held by the orchestrator or a
    key cache may be stale.
    """
    id: str
    server: str
    key: str
    iv: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def header(self) -> EncryptedHeader:
        return EncryptedHeader(key=hexd(self.key), iv=hexd(self.iv))

    def with_wrapped(self, key: str, iv: str) -> "KeyRecord":
        return replace(self, key=key, iv=iv)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyRecord":
        return cls(
            id=data["id"],
            server=data["server"],
            key=data["key"],
            iv=data["iv"],
            metadata=dict(data.get("metadata") or {}),
            user_id=data.get("user_id", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(frozen=True)
class ObjectRecord:
    """Encrypted payload as stored remotely; ``auth_tag``/``content`` are hex."""
    id: str
    key_id: str
    auth_tag: str
    content: str
    related_object_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def payload(self) -> EncryptedPayload:
        return EncryptedPayload(auth_tag=hexd(self.auth_tag), content=hexd(self.content))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectRecord":
        return cls(
            id=data["id"],
            key_id=data["key_id"],
            auth_tag=data["auth_tag"],
            content=data["content"],
            related_object_id=data.get("related_object_id") or None,
            metadata=dict(data.get("metadata") or {}),
            user_id=data.get("user_id", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(frozen=True)
class StoreRef:
    """Named object store: its root object id and default key id."""
    id: str
    default_key: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreRef":
        return cls(id=data["id"], default_key=data["defaultKey"])
