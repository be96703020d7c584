"""Persistent key → bytes store backed by :mod:`diskcache`.

The store holds encoded :class:`~persistcall.models.Payload` envelopes under
their cache key.  Entries never expire and are never evicted; a write to an
existing key overwrites it.  Where an entry physically lives is up to
:class:`diskcache.Cache`.

Reads never raise.  A missing key, a value that is not ``bytes``, or a
storage fault all come back as ``None`` so the caller falls through to the
network.  Writes raise :class:`~persistcall.exceptions.DiskWriteError` and
leave it to the caller to decide how loudly to report it.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

import diskcache

from persistcall.exceptions import DiskReadError, DiskWriteError

logger = logging.getLogger(__name__)

_ENTRIES_SUBDIR = "entries"


class DiskStore:
    """Disk-backed byte store.

    Args:
        cache_dir: Root directory for the cache.  An ``entries/``
            subdirectory is created inside it.

    Example::

        from persistcall.cache import DiskStore

        with DiskStore("/tmp/persistcall") as store:
            store.write("ab12:bytes", b'{"date": ...}')
            data = store.read("ab12:bytes")
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self._cache_dir = Path(cache_dir)
        self._cache: Optional[diskcache.Cache] = diskcache.Cache(str(self.directory))

    @property
    def directory(self) -> Path:
        """The directory holding the entries."""
        return self._cache_dir / _ENTRIES_SUBDIR

    def read(self, key: str) -> Optional[bytes]:
        """Return the bytes stored under *key*, or ``None`` on any kind of miss."""
        try:
            return self._get(key)
        except DiskReadError as exc:
            logger.warning("Treating unreadable cache entry %s as a miss: %s", key, exc)
            return None

    def write(self, key: str, data: bytes) -> None:
        """Store *data* under *key*, replacing any existing entry.

        Raises:
            DiskWriteError: If the store is closed or the write fails.
        """
        cache = self._require_open(DiskWriteError)
        try:
            stored = cache.set(key, bytes(data))
        except (OSError, sqlite3.Error) as exc:
            raise DiskWriteError(f"Cannot write cache entry {key}: {exc}") from exc
        if not stored:
            raise DiskWriteError(f"Cache refused entry {key}")

    def delete(self, key: str) -> bool:
        """Remove the entry under *key*.  Returns whether it existed."""
        if self._cache is None:
            return False
        return bool(self._cache.delete(key))

    def clear(self) -> int:
        """Remove every entry.  Returns the number removed."""
        if self._cache is None:
            return 0
        return self._cache.clear()

    def stats(self) -> dict[str, Any]:
        """Return entry count, directory, and on-disk volume in bytes."""
        if self._cache is None:
            return {"open": False, "directory": str(self.directory)}
        return {
            "open": True,
            "size": len(self._cache),
            "directory": str(self.directory),
            "volume_bytes": self._cache.volume(),
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`.  Safe to call twice."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    def __contains__(self, key: object) -> bool:
        return self._cache is not None and key in self._cache

    def __len__(self) -> int:
        return 0 if self._cache is None else len(self._cache)

    def __enter__(self) -> DiskStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _get(self, key: str) -> Optional[bytes]:
        cache = self._require_open(DiskReadError)
        try:
            value = cache.get(key)
        except (OSError, sqlite3.Error) as exc:
            raise DiskReadError(f"Cannot read cache entry {key}: {exc}") from exc
        if value is None:
            return None
        if not isinstance(value, (bytes, bytearray)):
            raise DiskReadError(
                f"Cache entry {key} holds {type(value).__name__}, expected bytes"
            )
        return bytes(value)

    def _require_open(self, error: type[Exception]) -> diskcache.Cache:
        if self._cache is None:
            raise error(f"Disk store at {self.directory} is closed")
        return self._cache
