"""Network transport used by the fetch coordinator.

The coordinator only needs "give me the bytes for this request", described
by the :class:`Transport` protocol.  :class:`HttpxTransport` is the default
implementation, built on :class:`httpx.AsyncClient`:

- 2xx responses return their body.
- Non-2xx responses and connect/timeout/network errors raise
  :class:`~persistcall.exceptions.NetworkError`.  There is no retry.
- ``file://`` URLs are read from the local filesystem, which is handy for
  fixtures and for caching expensive local reads.
- :meth:`HttpxTransport.download` streams the body into a temporary file and
  reads it back once complete, so a partial transfer is never returned.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable
from urllib.parse import unquote, urlsplit

import httpx

from persistcall.exceptions import NetworkError
from persistcall.models import RequestConfig, RequestDescriptor

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@runtime_checkable
class Transport(Protocol):
    """What the fetch coordinator needs from the network."""

    async def fetch(self, request: RequestDescriptor) -> bytes: ...

    async def download(self, request: RequestDescriptor) -> bytes: ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """:class:`Transport` over :class:`httpx.AsyncClient`.

    The underlying client is created lazily on first use so that it binds to
    whichever event loop is running at that point.

    Args:
        config: Timeout, SSL verification and redirect settings.
        client: An existing client to use instead of building one (tests
            pass one wired to :class:`httpx.MockTransport`).  A client passed
            in is not closed by :meth:`aclose`.
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._client = client
        self._owns_client = client is None

    async def fetch(self, request: RequestDescriptor) -> bytes:
        """Return the response body for *request*.

        Raises:
            NetworkError: On a non-2xx status, a transport error, or a
                missing local file.
        """
        if _is_file_url(request.url):
            return await asyncio.to_thread(_read_local_file, request.url)

        client = self._get_client()
        try:
            response = await client.request(**_request_kwargs(request))
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"{request.method.upper()} {request.url} failed: {exc}", url=request.url
            ) from exc
        _raise_for_status(request, response.status_code, response.reason_phrase)
        logger.debug("Fetched %s (%d bytes)", request.url, len(response.content))
        return response.content

    async def download(self, request: RequestDescriptor) -> bytes:
        """Stream the body of *request* into a temporary file and return its bytes.

        Chunk writes and the final read run in worker threads.

        Raises:
            NetworkError: Same conditions as :meth:`fetch`.
        """
        if _is_file_url(request.url):
            return await asyncio.to_thread(_read_local_file, request.url)

        client = self._get_client()
        fd, tmp_path = tempfile.mkstemp(prefix="persistcall-", suffix=".download")
        try:
            with os.fdopen(fd, "wb") as tmp:
                try:
                    async with client.stream(**_request_kwargs(request)) as response:
                        _raise_for_status(request, response.status_code, response.reason_phrase)
                        async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                            await asyncio.to_thread(tmp.write, chunk)
                except httpx.HTTPError as exc:
                    raise NetworkError(
                        f"Download of {request.url} failed: {exc}", url=request.url
                    ) from exc
            data = await asyncio.to_thread(Path(tmp_path).read_bytes)
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.debug("Could not remove temporary download %s", tmp_path)
        logger.debug("Downloaded %s (%d bytes)", request.url, len(data))
        return data

    async def aclose(self) -> None:
        """Close the client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=self._config.follow_redirects,
            )
        return self._client


def _request_kwargs(request: RequestDescriptor) -> dict:
    kwargs: dict = {
        "method": request.method.upper(),
        "url": request.url,
        "headers": request.headers,
    }
    if request.params:
        kwargs["params"] = request.params
    if request.body is not None:
        kwargs["content"] = request.body
    return kwargs


def _raise_for_status(request: RequestDescriptor, status: int, reason: str) -> None:
    if 200 <= status < 300:
        return
    prefix = f"HTTP {status}"
    message = f"{prefix} {reason}: {request.url}" if reason else f"{prefix}: {request.url}"
    raise NetworkError(message, status_code=status, url=request.url)


def _is_file_url(url: str) -> bool:
    return urlsplit(url).scheme.lower() == "file"


def _read_local_file(url: str) -> bytes:
    path = Path(unquote(urlsplit(url).path))
    try:
        return path.read_bytes()
    except OSError as exc:
        raise NetworkError(f"Cannot read {url}: {exc}", url=url) from exc
