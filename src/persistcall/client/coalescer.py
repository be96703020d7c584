"""Per-key single-flight for the fetch coordinator.

When several coroutines miss the cache for the same key at the same time,
only the first one (the *initiator*) runs the fetch; the rest wait on the
initiator's future and receive the same result or the same exception.

The fetcher only routes misses through here when it is built with
``single_flight=True``.  Without it, concurrent cold fetches for the same
key each hit the network and the last disk write wins.

Registries are bound to one event loop.  The :class:`~persistcall.client.bridge.SyncBridge`
runs everything on a single loop, so sync callers share one registry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestCoalescer:
    """Ensures concurrent fetches for the same key share one upstream call.

    Usage::

        coalescer = RequestCoalescer()
        data = await coalescer.run(key, lambda: transport.fetch(request))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._joined = 0

    async def run(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        """Join the in-flight call for *key*, or start one with *fetch_fn*.

        Raises:
            Exception: Whatever *fetch_fn* raised, re-raised in every waiter.
        """
        existing = self._in_flight.get(key)
        if existing is not None:
            self._joined += 1
            logger.debug("Joining in-flight fetch for %s", key)
            return await asyncio.shield(existing)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        logger.debug("Initiating fetch for %s", key)
        try:
            result = await fetch_fn()
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unjoined failure is not reported as unhandled.
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            del self._in_flight[key]

    @property
    def active_requests(self) -> int:
        """Number of keys with a fetch in flight."""
        return len(self._in_flight)

    @property
    def joined(self) -> int:
        """How many callers have piggybacked on another caller's fetch."""
        return self._joined
