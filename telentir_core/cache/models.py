# telentir_core/cache/models.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class WrappedKey:
    """Wrapped key + iv, hex encoded, exactly as last seen from the remote store."""
    key: str
    iv: str


@dataclass(frozen=True)
class DecryptedKey:
    """Unwrapped key + iv (hex) together with the wrapped form they came from."""
    header: WrappedKey
    key: str
    iv: str


@dataclass
class EncryptedSlot:
    key: str
    iv: str
    expires_at: Optional[int] = None

    def expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "iv": self.iv, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedSlot":
        return cls(key=data["key"], iv=data["iv"], expires_at=data.get("expires_at"))


@dataclass
class DecryptedSlot:
    header: WrappedKey
    key: str
    iv: str
    expires_at: Optional[int] = None

    def expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": {"key": self.header.key, "iv": self.header.iv},
            "key": self.key,
            "iv": self.iv,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecryptedSlot":
        header = data["header"]
        return cls(
            header=WrappedKey(key=header["key"], iv=header["iv"]),
            key=data["key"],
            iv=data["iv"],
            expires_at=data.get("expires_at"),
        )


@dataclass
class CachedEntry:
    """Both halves of one key id's cache entry; each expires on its own."""
    decrypted: Optional[DecryptedSlot] = None
    encrypted: Optional[EncryptedSlot] = None

    def empty(self) -> bool:
        return self.decrypted is None and self.encrypted is None

    def drop_expired(self, now: int) -> bool:
        """Clear lapsed slots in place; True if anything was cleared."""
        changed = False
        if self.decrypted is not None and self.decrypted.expired(now):
            self.decrypted = None
            changed = True
        if self.encrypted is not None and self.encrypted.expired(now):
            self.encrypted = None
            changed = True
        return changed

    def set_decrypted(self, key: str, iv: str, header: WrappedKey, expires_at: Optional[int]) -> None:
        # the encrypted half always follows the header it was unwrapped from
        self.decrypted = DecryptedSlot(header=header, key=key, iv=iv, expires_at=expires_at)
        self.encrypted = EncryptedSlot(key=header.key, iv=header.iv, expires_at=expires_at)

    def set_encrypted(self, key: str, iv: str, expires_at: Optional[int]) -> None:
        self.encrypted = EncryptedSlot(key=key, iv=iv, expires_at=expires_at)

    def decrypted_key(self) -> Optional[DecryptedKey]:
        if self.decrypted is None:
            return None
        return DecryptedKey(header=self.decrypted.header, key=self.decrypted.key, iv=self.decrypted.iv)

    def wrapped_key(self) -> Optional[WrappedKey]:
        if self.encrypted is None:
            return None
        return WrappedKey(key=self.encrypted.key, iv=self.encrypted.iv)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decrypted": self.decrypted.to_dict() if self.decrypted else None,
            "encrypted": self.encrypted.to_dict() if self.encrypted else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedEntry":
        if not isinstance(data, dict):
            raise ValueError("cache entry must be a JSON object")
        return cls(
            decrypted=DecryptedSlot.from_dict(data["decrypted"]) if data.get("decrypted") else None,
            encrypted=EncryptedSlot.from_dict(data["encrypted"]) if data.get("encrypted") else None,
        )


def expiry(ttl_ms: Optional[int], now: int) -> Optional[int]:
    return now + ttl_ms if ttl_ms else None
