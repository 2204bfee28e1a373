"""
storage.py
──────────
Key-value document stores.  Each key holds one JSON string; alarms and
reminders live under separate keys.

  - JsonFileStore: one <key>.json file per key, atomic writes via
    os.replace(), a threading.Lock around every read and write
  - MemoryStore: a dict, for tests and throwaway runs
"""

from __future__ import annotations

import os
import threading
from typing import Dict, Optional, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class JsonFileStore:
    def __init__(self, data_dir: str):
        self._data_dir = os.path.abspath(data_dir)
        self._lock = threading.Lock()

    def _path(self, key: str) -> str:
        return os.path.join(self._data_dir, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        with self._lock:
            if not os.path.exists(path):
                return None
            with open(path, "r", encoding="utf-8") as f:
                return f.read()

    def set(self, key: str, value: str) -> None:
        """Atomic write: write to a tmp file then rename (os.replace)."""
        path = self._path(key)
        tmp = path + ".tmp"
        with self._lock:
            os.makedirs(self._data_dir, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)   # Atomic on POSIX; near-atomic on Windows


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
