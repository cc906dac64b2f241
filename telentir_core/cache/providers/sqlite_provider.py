from __future__ import annotations
from typing import Optional
import os, sqlite3, threading


class SQLiteStorage:
    """
    Persistent ``StorageLike`` backed by a single SQLite table.

    Lets ``StorageKeyCache`` survive restarts and be shared between processes
    on the same host. Key order for ``key(index)`` is insertion order (rowid).
    """

    def __init__(self, path="db/key_cache.db"):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path, check_same_thread=False)
        self._lock = threading.Lock()
        self._init()

    def _init(self) -> None:
        self.db.execute("""CREATE TABLE IF NOT EXISTS storage(
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )""")
        self.db.commit()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            row = self.db.execute("SELECT value FROM storage WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self.db.execute(
                "INSERT INTO storage(key,value) VALUES(?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )
            self.db.commit()

    def remove_item(self, key: str) -> None:
        with self._lock:
            self.db.execute("DELETE FROM storage WHERE key=?", (key,))
            self.db.commit()

    def key(self, index: int) -> Optional[str]:
        if index < 0:
            return None
        with self._lock:
            row = self.db.execute("SELECT key FROM storage ORDER BY rowid LIMIT 1 OFFSET ?", (index,)).fetchone()
        return row[0] if row else None

    def __len__(self) -> int:
        with self._lock:
            return self.db.execute("SELECT COUNT(*) FROM storage").fetchone()[0]

    def close(self):
        self.db.close()
