# telentir_core/cache/provider.py
from __future__ import annotations
from typing import Optional, Protocol, runtime_checkable

from .models import DecryptedKey, WrappedKey


@runtime_checkable
class KeyCache(Protocol):
    """
    Contract shared by every key cache backend.

    Backends hold derived, possibly stale copies of key material. Reads never
    raise for corrupt entries; they report a miss instead.
    """

    async def get_decrypted_key(self, id: str) -> Optional[DecryptedKey]: ...

    async def get_encrypted_key(self, id: str) -> Optional[WrappedKey]: ...

    async def persist_decrypted_key(self, id: str, key: str, iv: str, header: WrappedKey) -> None: ...

    async def persist_encrypted_key(self, id: str, key: str, iv: str) -> None: ...


@runtime_checkable
class StorageLike(Protocol):
    """Synchronous string key/value store in the shape of the Web Storage API."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def key(self, index: int) -> Optional[str]: ...

    def __len__(self) -> int: ...
