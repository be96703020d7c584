"""Fetch coordination for persistcall.

Classes:
    :class:`PersistentFetcher` -- async coordinator: cache check, fetch,
    store, return, one coroutine per result shape.
    :class:`SyncFetcher` -- the same operations, blocking, driven through
    a :class:`SyncBridge`.
    :class:`HttpxTransport` -- default network transport over
    :class:`httpx.AsyncClient`.
    :class:`RequestCoalescer` -- optional per-key single-flight.

Example::

    from persistcall.client import SyncFetcher
    from persistcall.config import load_global_config

    with SyncFetcher.from_config(load_global_config()) as fetcher:
        data = fetcher.fetch_map("https://api.example.com/status")
"""

from persistcall.client.bridge import SyncBridge
from persistcall.client.coalescer import RequestCoalescer
from persistcall.client.fetcher import PersistentFetcher
from persistcall.client.sync_fetcher import SyncFetcher
from persistcall.client.transport import HttpxTransport, Transport

__all__ = [
    "HttpxTransport",
    "PersistentFetcher",
    "RequestCoalescer",
    "SyncBridge",
    "SyncFetcher",
    "Transport",
]
