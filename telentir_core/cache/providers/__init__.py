from .memory_provider import InMemoryKeyCache
from .fs_provider import FsKeyCache
from .storage_provider import StorageKeyCache, MemoryStorage
from .sqlite_provider import SQLiteStorage

__all__ = ["InMemoryKeyCache", "FsKeyCache", "StorageKeyCache", "MemoryStorage", "SQLiteStorage"]
