"""JSON codec for :class:`~persistcall.models.Payload` envelopes and response bodies.

Serialization is delegated to Pydantic.  Envelopes are written as a JSON
object with exactly three fields::

    {"date": "2026-10-19T09:30:00.123456Z", "value": ..., "key": "<digest>:<tag>"}

``bytes`` values are base64-encoded.  Every failure surfaces as
:class:`~persistcall.exceptions.DecodeError` so the fetch coordinator can
treat it as a cache miss (stored bytes) or report it (fresh bytes).
"""

from __future__ import annotations

import functools
import json
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from persistcall.exceptions import DecodeError
from persistcall.models import Payload

T = TypeVar("T")


@functools.lru_cache(maxsize=256)
def _adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def _adapter_for(tp: Any) -> TypeAdapter:
    try:
        return _adapter(tp)
    except TypeError:
        # Unhashable annotations cannot be memoised.
        return TypeAdapter(tp)


def encode_payload(payload: Payload[Any]) -> bytes:
    """Serialise *payload* to JSON bytes."""
    return payload.model_dump_json().encode("utf-8")


def decode_payload(data: bytes, value_type: Any) -> Payload[Any]:
    """Parse JSON bytes into ``Payload[value_type]``.

    Raises:
        DecodeError: If *data* is not a valid envelope for *value_type*.
    """
    try:
        return Payload[value_type].model_validate_json(data)  # type: ignore[valid-type]
    except (ValidationError, ValueError) as exc:
        raise DecodeError(f"Stored entry is not a Payload[{value_type!r}]: {exc}") from exc


def decode_value(data: bytes, value_type: Any) -> Any:
    """Decode a raw response body into *value_type*.

    ``bytes`` is returned unchanged.  Everything else is parsed as JSON and
    validated, so Pydantic models, dataclasses, ``TypedDict`` and builtin
    containers all work.

    Raises:
        DecodeError: If the body does not validate as *value_type*.
    """
    if value_type is bytes:
        return bytes(data)
    try:
        return _adapter_for(value_type).validate_json(data)
    except (ValidationError, ValueError) as exc:
        raise DecodeError(f"Response body is not a valid {value_type!r}: {exc}") from exc


def decode_map(data: bytes) -> dict[str, Any]:
    """Decode a raw response body as a JSON object.

    Raises:
        DecodeError: If the body is not JSON or not an object.
    """
    try:
        parsed = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Response body is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise DecodeError(f"Response body is a JSON {type(parsed).__name__}, not an object")
    return parsed
