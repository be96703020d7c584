"""In-process key → bytes store used by the download variant.

Eviction is least-recently-used and cost based: each entry weighs its length
in bytes and the store never holds more than ``max_bytes``.  The LRU
primitive comes from :mod:`cachetools`; access is serialised with a lock here
so callers need no locking of their own.

The store is an ordinary object.  Build one, inject it into the fetcher, and
call :meth:`MemoryStore.reset` between tests.
"""

from __future__ import annotations

import threading
from typing import Optional

from cachetools import LRUCache

DEFAULT_MAX_BYTES = 64 * 1024 * 1024


class MemoryStore:
    """Thread-safe, size-bounded LRU of raw bytes.

    Args:
        max_bytes: Total byte budget.  An entry larger than the budget is
            not stored.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self._max_bytes = max_bytes
        self._lock = threading.Lock()
        self._entries = self._new_cache()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, data: bytes) -> None:
        if len(data) > self._max_bytes:
            return
        with self._lock:
            self._entries[key] = bytes(data)

    def reset(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries = self._new_cache()

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def current_bytes(self) -> int:
        with self._lock:
            return int(self._entries.currsize)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _new_cache(self) -> LRUCache:
        return LRUCache(maxsize=self._max_bytes, getsizeof=len)
