from typing import Dict, Optional

from telentir_core import utils
from telentir_core.cache.models import CachedEntry, DecryptedKey, WrappedKey, expiry


class InMemoryKeyCache:
    """
    Process-local key cache backed by an insertion-ordered dict.

    Eviction drops the earliest inserted ids first. Re-persisting an id that
    is still live keeps its original position, so this approximates LRU
    rather than implementing it.
    """

    def __init__(self, max_entries: Optional[int] = None, ttl_ms: Optional[int] = None):
        self.entries: Dict[str, CachedEntry] = {}
        self.max_entries = max_entries
        self.ttl_ms = ttl_ms

    async def get_decrypted_key(self, id: str) -> Optional[DecryptedKey]:
        entry = self._read(id)
        return entry.decrypted_key() if entry else None

    async def get_encrypted_key(self, id: str) -> Optional[WrappedKey]:
        entry = self._read(id)
        return entry.wrapped_key() if entry else None

    async def persist_decrypted_key(self, id: str, key: str, iv: str, header: WrappedKey) -> None:
        entry = self._ensure(id)
        entry.set_decrypted(key, iv, header, expiry(self.ttl_ms, utils.now_ms()))
        self._evict()

    async def persist_encrypted_key(self, id: str, key: str, iv: str) -> None:
        entry = self._ensure(id)
        entry.set_encrypted(key, iv, expiry(self.ttl_ms, utils.now_ms()))
        self._evict()

    def __len__(self):
        return len(self.entries)

    def _read(self, id: str) -> Optional[CachedEntry]:
        entry = self.entries.get(id)
        if entry is None:
            return None
        entry.drop_expired(utils.now_ms())
        if entry.empty():
            del self.entries[id]
            return None
        return entry

    def _ensure(self, id: str) -> CachedEntry:
        entry = self._read(id)
        if entry is None:
            entry = self.entries[id] = CachedEntry()
        return entry

    def _evict(self) -> None:
        if self.max_entries is None:
            return
        excess = len(self.entries) - self.max_entries
        for id in list(self.entries)[:max(excess, 0)]:
            del self.entries[id]
