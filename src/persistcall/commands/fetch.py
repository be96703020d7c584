"""Fetch command -- retrieve a URL through the persistent cache.

``persistcall fetch URL`` resolves the effective configuration, builds a
:class:`~persistcall.client.SyncFetcher`, and prints the result: raw bytes
for ``--as bytes`` and ``--download``, formatted JSON for ``--as json`` and
``--as map``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import typer

from persistcall.exceptions import InvalidUsageError
from persistcall.keys import BYTES_TAG, DOWNLOAD_TAG, MAP_TAG, value_tag
from persistcall.models import RequestDescriptor
from persistcall.output import debug, format_response, print_bytes


class Shape(str, Enum):
    """How the fetched body is decoded (and which cache entry it uses)."""

    BYTES = "bytes"
    JSON = "json"
    MAP = "map"
    DOWNLOAD = "download"


SHAPE_TAGS = {
    Shape.BYTES.value: BYTES_TAG,
    Shape.JSON.value: value_tag(Any),
    Shape.MAP.value: MAP_TAG,
    Shape.DOWNLOAD.value: DOWNLOAD_TAG,
}


def resolve_shape_tag(name: str) -> str:
    """Map a CLI shape name to its key tag; unknown names are used as raw tags."""
    return SHAPE_TAGS.get(name, name)


def _parse_pairs(values: list[str], sep: str, what: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values:
        name, found, value = item.partition(sep)
        if not found or not name.strip():
            raise InvalidUsageError(f"Invalid {what} '{item}', expected NAME{sep}VALUE")
        pairs[name.strip()] = value.strip()
    return pairs


def build_request(
    url: str,
    method: str = "GET",
    headers: Optional[list[str]] = None,
    params: Optional[list[str]] = None,
    data: Optional[str] = None,
) -> RequestDescriptor:
    """Build a descriptor from CLI-style ``Name: value`` headers and ``key=value`` params.

    Raises:
        InvalidUsageError: If a header or param is malformed.
    """
    return RequestDescriptor(
        method=method.upper(),
        url=url,
        headers=_parse_pairs(headers or [], ":", "header"),
        params=_parse_pairs(params or [], "=", "param"),
        body=data.encode("utf-8") if data is not None else None,
    )


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to fetch (http, https, or file)."),
    method: str = typer.Option("GET", "-X", "--method", help="HTTP method."),
    header: list[str] = typer.Option(
        [], "-H", "--header", help="Request header as 'Name: value'. Repeatable."
    ),
    param: list[str] = typer.Option(
        [], "-P", "--param", help="Query parameter as 'key=value'. Repeatable."
    ),
    data: Optional[str] = typer.Option(None, "-d", "--data", help="Request body."),
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        "-s",
        help="cache, new, or refresh:<seconds> (overrides config).",
    ),
    shape: Shape = typer.Option(
        Shape.BYTES, "--as", help="Decode the body as bytes, json, or map."
    ),
    download: bool = typer.Option(
        False, "--download", help="Fetch as a download (memory and disk cache)."
    ),
) -> None:
    """Fetch a URL, returning a cached copy when the strategy allows it.

    Example::

        persistcall fetch https://api.example.com/users --as json
        persistcall fetch https://example.com/logo.png --download -o logo.png
        persistcall fetch https://api.example.com/status --strategy new
    """
    from persistcall.client import SyncFetcher
    from persistcall.config import resolve_config

    obj = ctx.obj or {}
    config = resolve_config(cli_strategy=strategy, cli_cache_dir=obj.get("cache_dir"))
    fetch_strategy = config.cache.fetch_strategy()
    request = build_request(url, method, header, param, data)
    debug(f"Fetching {request.method} {request.url} with strategy {fetch_strategy}")

    with SyncFetcher.from_config(config) as fetcher:
        if download:
            print_bytes(fetcher.fetch_download(request, fetch_strategy))
        elif shape == Shape.JSON:
            format_response(fetcher.fetch_value(request, Any, fetch_strategy))
        elif shape == Shape.MAP:
            format_response(fetcher.fetch_map(request, fetch_strategy))
        else:
            print_bytes(fetcher.fetch_bytes(request, fetch_strategy))
        stats = fetcher.stats()

    debug(", ".join(f"{name}={count}" for name, count in stats.items()))
