"""Cache commands -- inspect and manage the on-disk cache.

Provides the ``persistcall cache`` sub-command group.  Every command opens
the :class:`~persistcall.cache.DiskStore` in the resolved cache directory
(``--cache-dir``, ``PERSISTCALL_CACHE_DIR``, config, or the XDG default).

Entries are addressed the way the fetcher addresses them: a URL plus the
shape it was fetched as (``--shape bytes|json|map|download``, or a raw tag
such as ``Payload[myapp.models.User]``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer

from persistcall.cache import DiskStore
from persistcall.codec import decode_payload
from persistcall.commands.fetch import build_request, resolve_shape_tag
from persistcall.exceptions import DecodeError
from persistcall.keys import derive_key
from persistcall.output import format_response, info, print_table, success, warning


cache_app = typer.Typer(no_args_is_help=True)

_SHAPE_HELP = "Shape the entry was fetched as: bytes, json, map, download, or a raw tag."


def _open_store(ctx: typer.Context) -> DiskStore:
    from persistcall.config import get_cache_dir, resolve_config

    obj = ctx.obj or {}
    config = resolve_config(cli_cache_dir=obj.get("cache_dir"))
    directory = Path(config.cache.directory) if config.cache.directory else get_cache_dir()
    return DiskStore(directory)


def _key_for(url: str, method: str, header: list[str], shape: str) -> str:
    return derive_key(build_request(url, method, header), resolve_shape_tag(shape))


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the cache location, entry count, and size on disk.

    Example::

        persistcall cache stats
        persistcall --json cache stats
    """
    with _open_store(ctx) as store:
        stats = store.stats()
    rows = [[name, str(value)] for name, value in stats.items()]
    print_table(["Field", "Value"], rows, title="Cache")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every cached entry.  Asks for confirmation unless ``--force``.

    Example::

        persistcall --force cache clear
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Remove all cached entries?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    with _open_store(ctx) as store:
        removed = store.clear()
    success(f"Removed {removed} cached entr{'y' if removed == 1 else 'ies'}.")


@cache_app.command("key")
def cache_key(
    url: str = typer.Argument(help="Request URL."),
    method: str = typer.Option("GET", "-X", "--method", help="HTTP method."),
    header: list[str] = typer.Option(
        [], "-H", "--header", help="Request header as 'Name: value'. Repeatable."
    ),
    shape: str = typer.Option("bytes", "--shape", help=_SHAPE_HELP),
) -> None:
    """Print the cache key a request is stored under.

    Example::

        persistcall cache key https://api.example.com/users --shape json
    """
    typer.echo(_key_for(url, method, header, shape))


@cache_app.command("show")
def cache_show(
    ctx: typer.Context,
    url: str = typer.Argument(help="Request URL."),
    method: str = typer.Option("GET", "-X", "--method", help="HTTP method."),
    header: list[str] = typer.Option(
        [], "-H", "--header", help="Request header as 'Name: value'. Repeatable."
    ),
    shape: str = typer.Option("bytes", "--shape", help=_SHAPE_HELP),
) -> None:
    """Show when a cached entry was retrieved and how large it is.

    Exits with code 1 when nothing is cached for the request.
    """
    key = _key_for(url, method, header, shape)
    with _open_store(ctx) as store:
        data = store.read(key)
    if data is None:
        warning(f"No cached entry for {url} ({shape})")
        raise typer.Exit(code=1)

    entry: dict[str, Any] = {"key": key, "stored_bytes": len(data), "date": None}
    try:
        entry["date"] = decode_payload(data, Any).date.isoformat()
    except DecodeError as exc:
        warning(f"Entry does not decode: {exc}")
    format_response(entry)


@cache_app.command("invalidate")
def cache_invalidate(
    ctx: typer.Context,
    url: str = typer.Argument(help="Request URL."),
    method: str = typer.Option("GET", "-X", "--method", help="HTTP method."),
    header: list[str] = typer.Option(
        [], "-H", "--header", help="Request header as 'Name: value'. Repeatable."
    ),
    shape: str = typer.Option("bytes", "--shape", help=_SHAPE_HELP),
) -> None:
    """Remove the cached entry for one request and shape.

    Example::

        persistcall cache invalidate https://api.example.com/users --shape map
    """
    key = _key_for(url, method, header, shape)
    with _open_store(ctx) as store:
        removed = store.delete(key)
    if removed:
        success(f"Removed {key}")
    else:
        info(f"Nothing cached under {key}")
