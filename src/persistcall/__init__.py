"""persistcall -- fetch URLs through a persistent, freshness-aware cache.

Every fetch is keyed by the request and the shape the caller expects back.
A :class:`~persistcall.strategy.FetchStrategy` decides whether a cached
envelope may be returned; otherwise the body is fetched, decoded, written to
disk and returned.

Typical use::

    from persistcall.client import SyncFetcher
    from persistcall.config import resolve_config

    with SyncFetcher.from_config(resolve_config()) as fetcher:
        status = fetcher.fetch_map("https://api.example.com/status")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    keys: Cache key derivation.
    strategy: Fetch strategies and the freshness rule.
    codec: Envelope encoding and body decoding.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
