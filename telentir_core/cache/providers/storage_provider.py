from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import json
from urllib.parse import quote

from telentir_core import utils
from telentir_core.cache.models import CachedEntry, DecryptedKey, WrappedKey, expiry
from telentir_core.cache.provider import StorageLike
from telentir_core.logger import get_logger

log = get_logger("Telentir.KeyCache.Storage")

DEFAULT_PREFIX = "telentir:key-cache:"


class MemoryStorage:
    """Dict-backed ``StorageLike``; mostly useful for tests and short-lived tools."""

    def __init__(self):
        self.items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def key(self, index: int) -> Optional[str]:
        keys = list(self.items)
        return keys[index] if 0 <= index < len(keys) else None

    def __len__(self) -> int:
        return len(self.items)


class StorageKeyCache:
    """
    Key cache on top of any Web-Storage-shaped store.

    Each id lives in one slot under ``prefix`` as JSON with an explicit
    ``updated_at`` stamp (ms) used to rank entries for eviction.
    """

    def __init__(
        self,
        storage: StorageLike,
        max_entries: Optional[int] = None,
        ttl_ms: Optional[int] = None,
        prefix: str = DEFAULT_PREFIX,
    ):
        self.storage = storage
        self.max_entries = max_entries
        self.ttl_ms = ttl_ms
        self.prefix = prefix

    async def get_decrypted_key(self, id: str) -> Optional[DecryptedKey]:
        entry = self._read(id)
        return entry.decrypted_key() if entry else None

    async def get_encrypted_key(self, id: str) -> Optional[WrappedKey]:
        entry = self._read(id)
        return entry.wrapped_key() if entry else None

    async def persist_decrypted_key(self, id: str, key: str, iv: str, header: WrappedKey) -> None:
        entry = self._read(id) or CachedEntry()
        entry.set_decrypted(key, iv, header, expiry(self.ttl_ms, utils.now_ms()))
        self._store(id, entry)
        self._evict()

    async def persist_encrypted_key(self, id: str, key: str, iv: str) -> None:
        entry = self._read(id) or CachedEntry()
        entry.set_encrypted(key, iv, expiry(self.ttl_ms, utils.now_ms()))
        self._store(id, entry)
        self._evict()

    def storage_key(self, id: str) -> str:
        return f"{self.prefix}{quote(id, safe='')}"

    def _read(self, id: str) -> Optional[CachedEntry]:
        storage_key = self.storage_key(id)
        raw = self.storage.get_item(storage_key)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            entry = CachedEntry.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError):
            log.warning(f"[KEY CACHE] discarding corrupt entry key={storage_key}")
            self.storage.remove_item(storage_key)
            return None

        now = utils.now_ms()
        if entry.drop_expired(now):
            if entry.empty():
                self.storage.remove_item(storage_key)
                return None
            # keep the original recency; expiry cleanup is not a write
            self._set(storage_key, entry, data.get("updated_at") or now)
        return entry

    def _store(self, id: str, entry: CachedEntry) -> None:
        storage_key = self.storage_key(id)
        if entry.empty():
            self.storage.remove_item(storage_key)
            return
        self._set(storage_key, entry, utils.now_ms())

    def _set(self, storage_key: str, entry: CachedEntry, updated_at: int) -> None:
        self.storage.set_item(storage_key, json.dumps(dict(entry.to_dict(), updated_at=updated_at)))

    def _prefixed_keys(self) -> List[str]:
        keys = []
        for index in range(len(self.storage)):
            key = self.storage.key(index)
            if key and key.startswith(self.prefix):
                keys.append(key)
        return keys

    def _evict(self) -> None:
        if self.max_entries is None:
            return

        keys = self._prefixed_keys()
        if len(keys) <= self.max_entries:
            return

        ranked: List[Tuple[int, int, str]] = []
        for position, storage_key in enumerate(keys):
            raw = self.storage.get_item(storage_key)
            try:
                updated_at = json.loads(raw).get("updated_at")
            except (TypeError, ValueError, AttributeError):
                self.storage.remove_item(storage_key)
                continue
            ranked.append((updated_at if isinstance(updated_at, int) else 0, position, storage_key))

        ranked.sort()
        for _, _, storage_key in ranked[:max(len(ranked) - self.max_entries, 0)]:
            log.debug(f"[KEY CACHE] evicting key={storage_key}")
            self.storage.remove_item(storage_key)
