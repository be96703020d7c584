"""Blocking counterpart of :class:`~persistcall.client.fetcher.PersistentFetcher`.

:class:`SyncFetcher` exposes the same operations as the async fetcher, each
one run to completion on a :class:`~persistcall.client.bridge.SyncBridge`.
All fetches share the bridge's single event loop, so the transport's HTTP
client and the single-flight registry (when enabled) are shared too.

Never call a :class:`SyncFetcher` method from inside a coroutine running on
its own bridge; await the underlying :attr:`SyncFetcher.fetcher` instead.

See Also:
    :class:`~persistcall.client.fetcher.PersistentFetcher` for the
    semantics of each operation.
"""

from __future__ import annotations

import concurrent.futures
from typing import Any, Awaitable, Callable, Optional, TypeVar

from persistcall.client.bridge import SyncBridge
from persistcall.client.fetcher import PersistentFetcher, RequestLike
from persistcall.client.transport import Transport
from persistcall.models import FetchOutcome, FirstOf2, GlobalConfig, Payload
from persistcall.strategy import ALWAYS_USE_CACHE, FetchStrategy

T = TypeVar("T")


class SyncFetcher:
    """Blocking façade over a :class:`PersistentFetcher`.

    Args:
        fetcher: The async fetcher to drive.
        bridge: The bridge to run it on.  A private one is created when
            omitted and closed by :meth:`close`.

    Example::

        with SyncFetcher.from_config(load_global_config()) as fetcher:
            body = fetcher.fetch_bytes("https://api.example.com/users")
    """

    def __init__(
        self,
        fetcher: PersistentFetcher,
        bridge: Optional[SyncBridge] = None,
    ) -> None:
        self._fetcher = fetcher
        self._bridge = bridge if bridge is not None else SyncBridge()
        self._owns_bridge = bridge is None

    @classmethod
    def from_config(
        cls,
        config: GlobalConfig,
        transport: Optional[Transport] = None,
    ) -> SyncFetcher:
        return cls(PersistentFetcher.from_config(config, transport=transport))

    @property
    def fetcher(self) -> PersistentFetcher:
        return self._fetcher

    @property
    def bridge(self) -> SyncBridge:
        return self._bridge

    def __enter__(self) -> SyncFetcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the fetcher, then the bridge if this object created it."""
        if self._bridge.closed:
            return
        self._bridge.run(self._fetcher.aclose())
        if self._owns_bridge:
            self._bridge.close()

    def stats(self) -> dict[str, int]:
        return self._fetcher.stats()

    # ------------------------------------------------------------------ #
    # Blocking operations
    # ------------------------------------------------------------------ #

    def fetch_bytes(
        self,
        request: RequestLike,
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> bytes:
        return self._bridge.run(self._fetcher.fetch_bytes(request, strategy))

    def fetch_map(
        self,
        request: RequestLike,
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> dict[str, Any]:
        return self._bridge.run(self._fetcher.fetch_map(request, strategy))

    def fetch_value(
        self,
        request: RequestLike,
        value_type: type[T],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> T:
        return self._bridge.run(self._fetcher.fetch_value(request, value_type, strategy))

    def fetch_envelope(
        self,
        request: RequestLike,
        value_type: type[T],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> Payload[T]:
        return self._bridge.run(self._fetcher.fetch_envelope(request, value_type, strategy))

    def fetch_first_of_2(
        self,
        request: RequestLike,
        first: type[Any],
        second: type[Any],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> FirstOf2:
        return self._bridge.run(
            self._fetcher.fetch_first_of_2(request, first, second, strategy)
        )

    def fetch_first_of_2_envelope(
        self,
        request: RequestLike,
        first: type[Any],
        second: type[Any],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> FirstOf2:
        return self._bridge.run(
            self._fetcher.fetch_first_of_2_envelope(request, first, second, strategy)
        )

    def fetch_download(
        self,
        request: RequestLike,
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> bytes:
        return self._bridge.run(self._fetcher.fetch_download(request, strategy))

    # ------------------------------------------------------------------ #
    # Callback style
    # ------------------------------------------------------------------ #

    def submit(
        self,
        operation: Callable[[PersistentFetcher], Awaitable[T]],
        on_complete: Callable[[FetchOutcome[T]], None],
    ) -> concurrent.futures.Future[T]:
        """Start *operation* without blocking; *on_complete* gets its outcome exactly once.

        Example::

            fetcher.submit(
                lambda f: f.fetch_first_of_2(url, User, ApiError),
                lambda outcome: print(outcome.value if outcome.ok else outcome.error),
            )
        """

        async def _call() -> T:
            return await operation(self._fetcher)

        return self._bridge.submit(_call(), on_complete)
