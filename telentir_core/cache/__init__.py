# telentir_core/cache/__init__.py

from .models import WrappedKey, DecryptedKey, CachedEntry
from .provider import KeyCache, StorageLike
from .providers.memory_provider import InMemoryKeyCache
from .providers.fs_provider import FsKeyCache
from .providers.storage_provider import StorageKeyCache, MemoryStorage, DEFAULT_PREFIX
from .providers.sqlite_provider import SQLiteStorage
from typing import Optional
import os


def _int_or_none(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def load_key_cache(config: dict | None = None) -> Optional[KeyCache]:
    """
    Factory resolver for selecting the key cache backend.

        - none (default): no cache, every key is resolved remotely
        - memory
        - fs      (directory per TELENTIR_KEY_CACHE_DIR)
        - sqlite  (Web-Storage-style slots in TELENTIR_KEY_CACHE_DB)
    """
    config = config or {}
    provider = (config.get("provider") or os.getenv("TELENTIR_KEY_CACHE", "none")).lower()
    ttl_ms = _int_or_none(config.get("ttl_ms", os.getenv("TELENTIR_KEY_CACHE_TTL_MS")))
    max_entries = _int_or_none(config.get("max_entries", os.getenv("TELENTIR_KEY_CACHE_MAX_ENTRIES")))

    if provider == "none":
        return None

    if provider == "memory":
        return InMemoryKeyCache(max_entries=max_entries, ttl_ms=ttl_ms)

    if provider == "fs":
        directory = config.get("directory") or os.getenv("TELENTIR_KEY_CACHE_DIR", ".telentir/keys")
        return FsKeyCache(directory, max_entries=max_entries, ttl_ms=ttl_ms)

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("TELENTIR_KEY_CACHE_DB", ".telentir/key_cache.db")
        prefix = config.get("prefix") or os.getenv("TELENTIR_KEY_CACHE_PREFIX", DEFAULT_PREFIX)
        return StorageKeyCache(SQLiteStorage(db_path), max_entries=max_entries, ttl_ms=ttl_ms, prefix=prefix)

    raise ValueError(f"Unknown key cache provider: {provider}")


__all__ = [
    "WrappedKey",
    "DecryptedKey",
    "CachedEntry",
    "KeyCache",
    "StorageLike",
    "InMemoryKeyCache",
    "FsKeyCache",
    "StorageKeyCache",
    "MemoryStorage",
    "SQLiteStorage",
    "load_key_cache",
]
