"""Canonical Pydantic models shared across all persistcall modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RequestConfig`, :class:`OutputConfig`, and
    :class:`GlobalConfig`.

**Fetch models** -- what flows through the fetch coordinator:
    :class:`RequestDescriptor` (the outbound call), :class:`Payload` (the
    envelope written to disk), :class:`FirstOf2` (result of a fallback fetch)
    and :class:`FetchOutcome` (what completion callbacks receive).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, NamedTuple, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from persistcall.exceptions import ConfigError, InvalidRequestError
from persistcall.strategy import FetchStrategy

T = TypeVar("T")


# --- Configuration ---


class CacheConfig(BaseModel):
    """Cache settings stored in :class:`GlobalConfig`."""

    directory: Optional[str] = Field(
        default=None,
        description="On-disk cache directory (defaults to the XDG cache dir)",
    )
    strategy: str = Field(
        default="cache",
        description="Default fetch strategy: cache, new, or refresh:<seconds>",
    )
    memory_max_bytes: int = Field(
        default=64 * 1024 * 1024,
        ge=0,
        description="Upper bound on bytes held by the in-memory download cache",
    )
    single_flight: bool = Field(
        default=False,
        description="Share one network call between concurrent identical fetches",
    )

    @field_validator("strategy")
    @classmethod
    def _check_strategy(cls, value: str) -> str:
        try:
            return str(FetchStrategy.parse(value))
        except ConfigError as exc:
            raise ValueError(str(exc)) from exc

    def fetch_strategy(self) -> FetchStrategy:
        """Return :attr:`strategy` as a :class:`~persistcall.strategy.FetchStrategy`."""
        return FetchStrategy.parse(self.strategy)


class RequestConfig(BaseModel):
    """Settings for the default :class:`~persistcall.client.transport.HttpxTransport`."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    follow_redirects: bool = Field(default=True, description="Follow HTTP redirects")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/persistcall/config.json``.

    Loaded and saved by :func:`~persistcall.config.load_global_config` and
    :func:`~persistcall.config.save_global_config`.  See
    :func:`~persistcall.config.resolve_config` for the precedence chain.
    """

    output: OutputConfig = Field(default_factory=OutputConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)


# --- Fetch models ---


class RequestDescriptor(BaseModel):
    """An outbound call: method, URL, headers, query params and body.

    Only its derived cache key is ever persisted, never the descriptor
    itself.  Plain URL strings are accepted anywhere a descriptor is and are
    turned into ``GET`` descriptors by :meth:`coerce`.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: Optional[bytes] = None

    @classmethod
    def coerce(cls, request: RequestDescriptor | str | dict[str, Any]) -> RequestDescriptor:
        """Normalise a URL string, a dict, or a descriptor into a descriptor.

        Raises:
            InvalidRequestError: If a dict does not validate (e.g. no ``url``).
        """
        if isinstance(request, RequestDescriptor):
            return request
        if isinstance(request, str):
            return cls(url=request)
        try:
            return cls.model_validate(request)
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid request descriptor: {exc}") from exc


class Payload(BaseModel, Generic[T]):
    """The envelope written to disk: a value, when it was retrieved, and its key.

    ``bytes`` values travel as base64 on the wire.  Naive datetimes are
    taken to be UTC so freshness comparisons never mix naive and aware
    values.

    Example::

        Payload[bytes](date=datetime.now(timezone.utc), value=b"{}", key="ab12:bytes")
    """

    model_config = ConfigDict(
        frozen=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    date: datetime
    value: T
    key: str

    @field_validator("date")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def json_dictionary(self) -> dict[str, Any]:
        """The value parsed as a JSON object, or ``{}`` when it is not one."""
        raw = self.value
        if not isinstance(raw, (bytes, bytearray, str)):
            return {}
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}


class FirstOf2(NamedTuple):
    """Result of a first-of-two fetch.

    ``index`` says which type matched (0 for *first*, 1 for *second*), so a
    first type that legitimately decodes to ``None`` is still told apart
    from a fallback.
    """

    first: Any = None
    second: Any = None
    index: int = 0

    @classmethod
    def of_second(cls, value: Any) -> FirstOf2:
        return cls(second=value, index=1)

    @property
    def value(self) -> Any:
        """The side that matched."""
        return self.second if self.index else self.first


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """What a completion callback receives: a value or an error, never both."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the stored error if there is one."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
