"""Two-tier byte storage for persistcall.

* :class:`DiskStore` -- persistent, unbounded, backed by :mod:`diskcache`.
  Holds every cached envelope.
* :class:`MemoryStore` -- in-process, size-bounded LRU backed by
  :mod:`cachetools`.  Only the download variant consults it, before the
  disk.

Both are plain key → bytes stores; encoding envelopes is the job of
:mod:`persistcall.codec`.
"""

from persistcall.cache.disk import DiskStore
from persistcall.cache.memory import MemoryStore

__all__ = ["DiskStore", "MemoryStore"]
