"""The fetch coordinator: check the cache, else fetch, store, and return.

:class:`PersistentFetcher` exposes one coroutine per result shape:

- ``fetch_bytes`` -- raw body; stored as ``Payload[bytes]``.
- ``fetch_map`` -- JSON object; stored as ``Payload[bytes]``.
- ``fetch_value`` -- body validated as ``T``; stored as ``Payload[bytes]``.
- ``fetch_envelope`` -- ``Payload[T]``, so callers see ``date`` and ``key``;
  stored as ``Payload[T]``.
- ``fetch_first_of_2`` / ``fetch_first_of_2_envelope`` -- body that is
  either an ``A`` or a ``B``; stored as whichever matched.
- ``fetch_download`` -- raw body cached in memory as well as on disk.

Every operation follows the same steps:

1. Derive the key from the request and the shape tag.
2. (Download only) return a memory hit straight away.
3. Read the disk entry.  If it decodes into the expected shape and the
   :class:`~persistcall.strategy.FetchStrategy` allows it, return it.  An
   entry that does not decode is a miss.
4. Otherwise call the transport.
5. Decode the fresh bytes, write a new envelope (and the memory entry for
   downloads), and return the value.  A failed disk write is logged and
   counted; the value is still returned.
6. Transport failures propagate as :class:`~persistcall.exceptions.NetworkError`
   without retry.  Fresh bytes that do not decode raise
   :class:`~persistcall.exceptions.DecodeError` (or
   :class:`~persistcall.exceptions.DoubleDecodeMissError` for fallback
   fetches) and nothing is written.

Concurrent cold fetches for the same key each go to the network unless the
fetcher was built with ``single_flight=True``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from persistcall.cache import DiskStore, MemoryStore
from persistcall.client.coalescer import RequestCoalescer
from persistcall.client.transport import HttpxTransport, Transport
from persistcall.codec import decode_map, decode_payload, decode_value, encode_payload
from persistcall.exceptions import DecodeError, DiskWriteError, DoubleDecodeMissError
from persistcall.keys import (
    BYTES_TAG,
    DOWNLOAD_TAG,
    MAP_TAG,
    derive_key,
    envelope_tag,
    first_of_2_envelope_tag,
    first_of_2_tag,
    shape_tag,
    value_tag,
)
from persistcall.models import FirstOf2, GlobalConfig, Payload, RequestDescriptor
from persistcall.strategy import ALWAYS_USE_CACHE, FetchStrategy, StrategyKind

logger = logging.getLogger(__name__)

T = TypeVar("T")
RequestLike = Union[RequestDescriptor, str, dict[str, Any]]
Clock = Callable[[], datetime]

_STAT_KEYS = ("network_calls", "disk_hits", "memory_hits", "write_failures")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PersistentFetcher:
    """Coordinates the disk store, memory store and transport.

    Args:
        disk: Where envelopes are persisted.
        transport: How bytes are fetched.  Defaults to
            :class:`~persistcall.client.transport.HttpxTransport`.
        memory: In-process store for :meth:`fetch_download`.  Defaults to
            a fresh :class:`~persistcall.cache.MemoryStore`.
        clock: Returns "now"; used for envelope dates and freshness checks.
        single_flight: Share one in-flight fetch between concurrent callers
            asking for the same key.

    Example::

        async with PersistentFetcher(DiskStore(cache_dir)) as fetcher:
            users = await fetcher.fetch_value(
                "https://api.example.com/users", list[User],
                strategy=FetchStrategy.refresh_after(300),
            )
    """

    def __init__(
        self,
        disk: DiskStore,
        transport: Optional[Transport] = None,
        memory: Optional[MemoryStore] = None,
        *,
        clock: Optional[Clock] = None,
        single_flight: bool = False,
    ) -> None:
        self._disk = disk
        self._transport: Transport = transport if transport is not None else HttpxTransport()
        self._memory = memory if memory is not None else MemoryStore()
        self._clock = clock or utcnow
        self._coalescer = RequestCoalescer() if single_flight else None
        self._stats: Counter[str] = Counter()

    @classmethod
    def from_config(
        cls,
        config: GlobalConfig,
        transport: Optional[Transport] = None,
    ) -> PersistentFetcher:
        """Build a fetcher from a :class:`~persistcall.models.GlobalConfig`.

        The disk store lives in ``config.cache.directory`` or, when unset,
        the XDG cache directory.
        """
        from persistcall.config import get_cache_dir

        cache_dir = Path(config.cache.directory) if config.cache.directory else get_cache_dir()
        return cls(
            DiskStore(cache_dir),
            transport if transport is not None else HttpxTransport(config.request),
            MemoryStore(config.cache.memory_max_bytes),
            single_flight=config.cache.single_flight,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> PersistentFetcher:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport and the disk store."""
        await self._transport.aclose()
        self._disk.close()

    @property
    def disk(self) -> DiskStore:
        return self._disk

    @property
    def memory(self) -> MemoryStore:
        return self._memory

    def stats(self) -> dict[str, int]:
        """Counters since construction.

        ``network_calls``, ``disk_hits``, ``memory_hits``,
        ``write_failures``, and ``coalesced`` (callers that shared another
        caller's fetch).
        """
        result = {name: self._stats[name] for name in _STAT_KEYS}
        result["coalesced"] = self._coalescer.joined if self._coalescer else 0
        return result

    # ------------------------------------------------------------------ #
    # Shapes stored as raw bytes
    # ------------------------------------------------------------------ #

    async def fetch_bytes(
        self,
        request: RequestLike,
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> bytes:
        """Fetch the raw response body."""
        return await self._fetch_raw(request, BYTES_TAG, bytes, strategy)

    async def fetch_map(
        self,
        request: RequestLike,
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> dict[str, Any]:
        """Fetch a JSON object.

        Raises:
            DecodeError: If the fresh body is not a JSON object.
        """
        return await self._fetch_raw(request, MAP_TAG, decode_map, strategy)

    async def fetch_value(
        self,
        request: RequestLike,
        value_type: type[T],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> T:
        """Fetch a body and validate it as *value_type*.

        The raw body is what gets stored, so changing *value_type*'s
        definition does not invalidate entries that still validate.

        Raises:
            DecodeError: If the fresh body does not validate.
        """
        return await self._fetch_raw(
            request,
            value_tag(value_type),
            lambda data: decode_value(data, value_type),
            strategy,
        )

    # ------------------------------------------------------------------ #
    # Shapes stored as typed envelopes
    # ------------------------------------------------------------------ #

    async def fetch_envelope(
        self,
        request: RequestLike,
        value_type: type[T],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> Payload[T]:
        """Fetch *value_type* wrapped in its envelope, exposing ``date`` and ``key``.

        Raises:
            DecodeError: If the fresh body does not validate.
        """
        descriptor = RequestDescriptor.coerce(request)
        key = derive_key(descriptor, envelope_tag(value_type))

        cached = self._usable_entry(self._read_disk(key, strategy), key, value_type, strategy)
        if cached is not None:
            return self._disk_hit(key, cached)

        async def produce() -> Payload[T]:
            data = await self._fetch_network(descriptor)
            value = decode_value(data, value_type)
            payload = Payload[value_type](date=self._clock(), value=value, key=key)  # type: ignore[valid-type]
            self._store(payload)
            return payload

        return await self._on_miss(key, produce)

    async def fetch_first_of_2(
        self,
        request: RequestLike,
        first: type[Any],
        second: type[Any],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> FirstOf2:
        """Fetch a body that is either a *first* or a *second*.

        *first* is tried before *second*; exactly one side of the result is
        set.

        Raises:
            DoubleDecodeMissError: If the fresh body is neither.
        """
        tag = first_of_2_tag(first, second)
        index, payload = await self._fetch_either(request, first, second, tag, strategy)
        return FirstOf2(first=payload.value) if index == 0 else FirstOf2.of_second(payload.value)

    async def fetch_first_of_2_envelope(
        self,
        request: RequestLike,
        first: type[Any],
        second: type[Any],
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> FirstOf2:
        """Like :meth:`fetch_first_of_2`, but each side is a :class:`~persistcall.models.Payload`.

        Raises:
            DoubleDecodeMissError: If the fresh body is neither.
        """
        tag = first_of_2_envelope_tag(first, second)
        index, payload = await self._fetch_either(request, first, second, tag, strategy)
        return FirstOf2(first=payload) if index == 0 else FirstOf2.of_second(payload)

    # ------------------------------------------------------------------ #
    # Download (memory + disk)
    # ------------------------------------------------------------------ #

    async def fetch_download(
        self,
        request: RequestLike,
        strategy: FetchStrategy = ALWAYS_USE_CACHE,
    ) -> bytes:
        """Download a body, caching it in memory as well as on disk.

        A memory hit is returned without consulting the strategy.  Disk
        reads and writes run in a worker thread so the event loop is never
        blocked on I/O.
        """
        descriptor = RequestDescriptor.coerce(request)
        key = derive_key(descriptor, DOWNLOAD_TAG)

        hit = self._memory.get(key)
        if hit is not None:
            self._stats["memory_hits"] += 1
            logger.debug("Memory hit for %s", key)
            return hit

        data = await asyncio.to_thread(self._read_disk, key, strategy)
        cached = self._usable_entry(data, key, bytes, strategy)
        if cached is not None:
            self._memory.set(key, cached.value)
            return self._disk_hit(key, cached.value)

        async def produce() -> bytes:
            self._stats["network_calls"] += 1
            body = await self._transport.download(descriptor)
            payload = Payload[bytes](date=self._clock(), value=body, key=key)
            await asyncio.to_thread(self._store, payload)
            self._memory.set(key, body)
            return body

        return await self._on_miss(key, produce)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _fetch_raw(
        self,
        request: RequestLike,
        tag: str,
        decode: Callable[[bytes], T],
        strategy: FetchStrategy,
    ) -> T:
        descriptor = RequestDescriptor.coerce(request)
        key = derive_key(descriptor, tag)

        cached = self._usable_entry(self._read_disk(key, strategy), key, bytes, strategy)
        if cached is not None:
            try:
                return self._disk_hit(key, decode(cached.value))
            except DecodeError as exc:
                logger.info("Cached entry %s no longer decodes, refetching: %s", key, exc)

        async def produce() -> T:
            data = await self._fetch_network(descriptor)
            value = decode(data)
            self._store(Payload[bytes](date=self._clock(), value=data, key=key))
            return value

        return await self._on_miss(key, produce)

    async def _fetch_either(
        self,
        request: RequestLike,
        first: type[Any],
        second: type[Any],
        tag: str,
        strategy: FetchStrategy,
    ) -> tuple[int, Payload[Any]]:
        descriptor = RequestDescriptor.coerce(request)
        key = derive_key(descriptor, tag)

        data = self._read_disk(key, strategy)
        for index, value_type in enumerate((first, second)):
            cached = self._usable_entry(data, key, value_type, strategy)
            if cached is not None:
                return self._disk_hit(key, (index, cached))

        async def produce() -> tuple[int, Payload[Any]]:
            body = await self._fetch_network(descriptor)
            errors: list[DecodeError] = []
            for index, value_type in enumerate((first, second)):
                try:
                    value = decode_value(body, value_type)
                except DecodeError as exc:
                    errors.append(exc)
                    continue
                payload = Payload[value_type](date=self._clock(), value=value, key=key)  # type: ignore[valid-type]
                self._store(payload)
                return index, payload
            raise DoubleDecodeMissError(
                f"Response from {descriptor.url} is neither {shape_tag(first)} "
                f"nor {shape_tag(second)}: {errors[0]}; {errors[1]}"
            )

        return await self._on_miss(key, produce)

    def _read_disk(self, key: str, strategy: FetchStrategy) -> Optional[bytes]:
        if strategy.kind is StrategyKind.NEW_CALL:
            return None
        return self._disk.read(key)

    def _usable_entry(
        self,
        data: Optional[bytes],
        key: str,
        value_type: Any,
        strategy: FetchStrategy,
    ) -> Optional[Payload[Any]]:
        """Decode a disk entry and apply the freshness policy; ``None`` means miss."""
        if data is None:
            return None
        try:
            payload = decode_payload(data, value_type)
        except DecodeError as exc:
            logger.debug("Entry %s is not a Payload[%s]: %s", key, shape_tag(value_type), exc)
            return None
        if not strategy.try_cache(payload.date, self._clock()):
            logger.debug("Entry %s from %s rejected by strategy %s", key, payload.date, strategy)
            return None
        return payload

    def _disk_hit(self, key: str, value: T) -> T:
        self._stats["disk_hits"] += 1
        logger.debug("Disk hit for %s", key)
        return value

    async def _fetch_network(self, descriptor: RequestDescriptor) -> bytes:
        self._stats["network_calls"] += 1
        return await self._transport.fetch(descriptor)

    async def _on_miss(self, key: str, produce: Callable[[], Awaitable[T]]) -> T:
        logger.debug("Cache miss for %s", key)
        if self._coalescer is None:
            return await produce()
        return await self._coalescer.run(key, produce)

    def _store(self, payload: Payload[Any]) -> None:
        try:
            self._disk.write(payload.key, encode_payload(payload))
        except DiskWriteError as exc:
            self._stats["write_failures"] += 1
            logger.warning("Could not persist %s; serving the fresh value uncached: %s", payload.key, exc)
