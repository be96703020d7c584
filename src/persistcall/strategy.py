"""Freshness policy deciding whether a stored entry may be reused.

A :class:`FetchStrategy` is one of three policies:

* :data:`ALWAYS_USE_CACHE` -- reuse any stored entry, however old.
* :data:`NEW_CALL` -- ignore the store and always go to the network.
* :meth:`FetchStrategy.refresh_after` -- compare the entry's age with an
  interval.

.. warning::
   ``refresh_after(d)`` treats an entry as usable when
   ``abs(now - retrieved_at) > d``, i.e. only once it is *older* than ``d``.
   That is the opposite of what the name suggests (reuse while younger than
   ``d``).  Do not flip it without reading the open question in DESIGN.md.

Strategies render and parse as short strings so they can live in JSON
config and on the command line: ``cache``, ``new``, ``refresh:300``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from persistcall.exceptions import ConfigError


class StrategyKind(str, enum.Enum):
    """Discriminator for :class:`FetchStrategy`."""

    ALWAYS_USE_CACHE = "cache"
    NEW_CALL = "new"
    REFRESH_AFTER = "refresh"


@dataclass(frozen=True)
class FetchStrategy:
    """A freshness policy.

    Build instances with the class methods rather than the constructor.

    Example::

        strategy = FetchStrategy.refresh_after(300)
        strategy.try_cache(payload.date)
    """

    kind: StrategyKind
    interval: Optional[timedelta] = None

    @classmethod
    def always_use_cache_if_available(cls) -> FetchStrategy:
        return cls(StrategyKind.ALWAYS_USE_CACHE)

    @classmethod
    def new_call(cls) -> FetchStrategy:
        return cls(StrategyKind.NEW_CALL)

    @classmethod
    def refresh_after(cls, interval: Union[float, timedelta]) -> FetchStrategy:
        """Build a ``refresh_after`` policy.

        Args:
            interval: Seconds, or a :class:`~datetime.timedelta`.  Must not
                be negative.

        Raises:
            ValueError: If *interval* is negative, not a number, or too
                large for a :class:`~datetime.timedelta`.
        """
        if not isinstance(interval, timedelta):
            try:
                interval = timedelta(seconds=interval)
            except OverflowError as exc:
                raise ValueError(f"refresh interval out of range: {interval}") from exc
        if interval < timedelta(0):
            raise ValueError(f"refresh interval must not be negative: {interval}")
        return cls(StrategyKind.REFRESH_AFTER, interval)

    def try_cache(
        self,
        original: datetime,
        current: Optional[datetime] = None,
    ) -> bool:
        """Return whether an entry retrieved at *original* may be reused at *current*.

        Args:
            original: When the entry was retrieved.
            current: The reference time; defaults to now (UTC).
        """
        if self.kind is StrategyKind.ALWAYS_USE_CACHE:
            return True
        if self.kind is StrategyKind.NEW_CALL:
            return False
        if current is None:
            current = datetime.now(timezone.utc)
        assert self.interval is not None
        return abs(current - original) > self.interval

    @classmethod
    def parse(cls, text: str) -> FetchStrategy:
        """Parse ``cache``, ``new`` or ``refresh:<seconds>``.

        Raises:
            ConfigError: If *text* is not a recognised strategy.
        """
        value = text.strip().lower()
        if value == StrategyKind.ALWAYS_USE_CACHE.value:
            return cls.always_use_cache_if_available()
        if value == StrategyKind.NEW_CALL.value:
            return cls.new_call()
        prefix = StrategyKind.REFRESH_AFTER.value + ":"
        if value.startswith(prefix):
            try:
                return cls.refresh_after(float(value[len(prefix):]))
            except ValueError as exc:
                raise ConfigError(f"Invalid refresh interval in strategy '{text}': {exc}") from exc
        raise ConfigError(
            f"Unknown fetch strategy '{text}' (expected cache, new, or refresh:<seconds>)"
        )

    def __str__(self) -> str:
        if self.kind is StrategyKind.REFRESH_AFTER:
            assert self.interval is not None
            seconds = self.interval.total_seconds()
            shown = int(seconds) if seconds.is_integer() else seconds
            return f"{self.kind.value}:{shown}"
        return self.kind.value


ALWAYS_USE_CACHE = FetchStrategy.always_use_cache_if_available()
NEW_CALL = FetchStrategy.new_call()
