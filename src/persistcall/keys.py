"""Cache key derivation.

A cache key is ``<sha256 of the canonical request>:<shape tag>``.  The shape
tag names the type the caller expects back, so the same request fetched as
raw bytes and as a typed model lands in two different entries.

Canonicalisation makes the digest independent of incidental ordering: the
method is upper-cased, header names are lower-cased, and headers and query
params are sorted.  The body contributes its own SHA-256 so large uploads do
not bloat the canonical form.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Union
from urllib.parse import urlsplit

from persistcall.exceptions import InvalidRequestError
from persistcall.models import RequestDescriptor

SUPPORTED_SCHEMES = frozenset({"http", "https", "file"})

BYTES_TAG = "bytes"
MAP_TAG = "map"
DOWNLOAD_TAG = "download"


def shape_tag(tp: Any) -> str:
    """Return a stable name for *tp*.

    Classes use their module-qualified name so that two models called
    ``User`` in different modules never share an entry.  Generic aliases
    and unions such as ``list[int]`` use their ``repr``.
    """
    if isinstance(tp, type):
        if tp.__module__ == "builtins":
            return tp.__qualname__
        return f"{tp.__module__}.{tp.__qualname__}"
    return repr(tp)


# Fixed tags are bare words. Typed tags are ``<variant>[...]`` where the
# variant name belongs to exactly one fetch operation.


def value_tag(tp: Any) -> str:
    return f"value[{shape_tag(tp)}]"


def envelope_tag(tp: Any) -> str:
    return f"envelope[{shape_tag(tp)}]"


def _pair(first: Any, second: Any) -> str:
    return json.dumps([shape_tag(first), shape_tag(second)], separators=(",", ":"))


def first_of_2_tag(first: Any, second: Any) -> str:
    return f"first_of_2{_pair(first, second)}"


def first_of_2_envelope_tag(first: Any, second: Any) -> str:
    return f"first_of_2_envelope{_pair(first, second)}"


def request_digest(request: Union[RequestDescriptor, str, dict[str, Any]]) -> str:
    """Return the SHA-256 hex digest of the canonical form of *request*.

    Raises:
        InvalidRequestError: If the URL is missing, has no scheme, uses an
            unsupported scheme, or the params are not JSON-serialisable.
    """
    descriptor = RequestDescriptor.coerce(request)
    url = descriptor.url.strip()
    if not url:
        raise InvalidRequestError("Request has no URL")
    parts = urlsplit(url)
    if not parts.scheme:
        raise InvalidRequestError(f"Request URL has no scheme: {url}")
    if parts.scheme.lower() not in SUPPORTED_SCHEMES:
        raise InvalidRequestError(f"Unsupported URL scheme '{parts.scheme}': {url}")
    if parts.scheme.lower() != "file" and not parts.netloc:
        raise InvalidRequestError(f"Request URL has no host: {url}")

    canonical: dict[str, Any] = {
        "method": descriptor.method.upper(),
        "url": url,
        "headers": sorted((k.lower(), v) for k, v in descriptor.headers.items()),
    }
    if descriptor.params:
        canonical["params"] = descriptor.params
    if descriptor.body is not None:
        canonical["body"] = hashlib.sha256(descriptor.body).hexdigest()

    try:
        raw = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Request params cannot be canonicalised: {exc}") from exc
    return hashlib.sha256(raw.encode()).hexdigest()


def derive_key(
    request: Union[RequestDescriptor, str, dict[str, Any]],
    tag: str,
) -> str:
    """Derive the cache key for *request* fetched as the shape named by *tag*.

    Example::

        derive_key("https://api.example.com/users", BYTES_TAG)
        # 'f3b1...9c:bytes'
    """
    return f"{request_digest(request)}:{tag}"
