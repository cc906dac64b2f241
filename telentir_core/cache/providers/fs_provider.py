from __future__ import annotations
from typing import List, Optional, Tuple
import asyncio, base64, json, os

from telentir_core import utils
from telentir_core.cache.models import CachedEntry, DecryptedKey, WrappedKey, expiry
from telentir_core.logger import get_logger

log = get_logger("Telentir.KeyCache.Fs")


class FsKeyCache:
    """
    Key cache persisted as one JSON document per key id.

    File names are the url-safe base64 of the id. Eviction ranks files by
    modification time, so several processes sharing the directory see (and
    evict) each other's entries.
    """

    def __init__(self, directory: str, max_entries: Optional[int] = None, ttl_ms: Optional[int] = None):
        self.directory = directory
        self.max_entries = max_entries
        self.ttl_ms = ttl_ms
        self._ready: Optional[asyncio.Future] = None

    async def get_decrypted_key(self, id: str) -> Optional[DecryptedKey]:
        entry = await self._read(id)
        return entry.decrypted_key() if entry else None

    async def get_encrypted_key(self, id: str) -> Optional[WrappedKey]:
        entry = await self._read(id)
        return entry.wrapped_key() if entry else None

    async def persist_decrypted_key(self, id: str, key: str, iv: str, header: WrappedKey) -> None:
        entry = await self._read(id) or CachedEntry()
        entry.set_decrypted(key, iv, header, expiry(self.ttl_ms, utils.now_ms()))
        await self._store(id, entry)
        await self._evict()

    async def persist_encrypted_key(self, id: str, key: str, iv: str) -> None:
        entry = await self._read(id) or CachedEntry()
        entry.set_encrypted(key, iv, expiry(self.ttl_ms, utils.now_ms()))
        await self._store(id, entry)
        await self._evict()

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------
    @staticmethod
    def sanitize_id(id: str) -> str:
        return base64.urlsafe_b64encode(id.encode("utf-8")).decode("ascii").rstrip("=")

    def file_path(self, id: str) -> str:
        return os.path.join(self.directory, f"{self.sanitize_id(id)}.json")

    async def _directory_ready(self) -> None:
        # mkdir is issued once; later callers await the same future
        if self._ready is None:
            self._ready = asyncio.ensure_future(asyncio.to_thread(os.makedirs, self.directory, exist_ok=True))
        await asyncio.shield(self._ready)

    async def _read(self, id: str) -> Optional[CachedEntry]:
        await self._directory_ready()
        path = self.file_path(id)

        try:
            raw = await asyncio.to_thread(_read_text, path)
        except FileNotFoundError:
            return None

        try:
            entry = CachedEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError):
            log.warning(f"[KEY CACHE] discarding corrupt entry file={path}")
            await self._unlink(path)
            return None

        if entry.drop_expired(utils.now_ms()):
            if entry.empty():
                await self._unlink(path)
                return None
            await asyncio.to_thread(_write_text, path, json.dumps(entry.to_dict()))
        return entry

    async def _store(self, id: str, entry: CachedEntry) -> None:
        path = self.file_path(id)
        if entry.empty():
            await self._unlink(path)
            return
        await self._directory_ready()
        await asyncio.to_thread(_write_text, path, json.dumps(entry.to_dict()))

    async def _unlink(self, path: str) -> None:
        try:
            await asyncio.to_thread(os.unlink, path)
        except FileNotFoundError:
            pass

    async def _evict(self) -> None:
        if self.max_entries is None:
            return

        await self._directory_ready()
        files = await asyncio.to_thread(_list_by_mtime, self.directory)
        excess = len(files) - self.max_entries
        for _, path in files[:max(excess, 0)]:
            log.debug(f"[KEY CACHE] evicting file={path}")
            await self._unlink(path)


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _write_text(path: str, data: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(data)


def _list_by_mtime(directory: str) -> List[Tuple[int, str]]:
    """Cache files oldest first; files that vanish mid-scan are skipped."""
    files = []
    with os.scandir(directory) as it:
        for dirent in it:
            if not (dirent.is_file() and dirent.name.endswith(".json")):
                continue
            try:
                files.append((dirent.stat().st_mtime_ns, dirent.path))
            except FileNotFoundError:
                continue
    files.sort()
    return files
