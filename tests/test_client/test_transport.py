"""Tests for the httpx-based transport."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from persistcall.client.transport import HttpxTransport, Transport
from persistcall.exceptions import NetworkError
from persistcall.models import RequestConfig, RequestDescriptor


URL = "https://api.example.com/items"


def _transport_from_handler(handler) -> HttpxTransport:
    """Build an HttpxTransport whose client is wired to an httpx.MockTransport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(client=client)


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def test_returns_body_on_200(self) -> None:
        transport = _transport_from_handler(lambda req: httpx.Response(200, content=b"hello"))
        assert run(transport.fetch(RequestDescriptor(url=URL))) == b"hello"

    def test_sends_method_headers_params_and_body(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["token"] = request.headers.get("x-token")
            seen["page"] = request.url.params.get("page")
            seen["body"] = request.content
            return httpx.Response(201, json={"ok": True})

        transport = _transport_from_handler(handler)
        body = run(
            transport.fetch(
                RequestDescriptor(
                    method="post",
                    url=URL,
                    headers={"X-Token": "abc"},
                    params={"page": 2},
                    body=b'{"name": "x"}',
                )
            )
        )
        assert json.loads(body) == {"ok": True}
        assert seen == {"method": "POST", "token": "abc", "page": "2", "body": b'{"name": "x"}'}

    @pytest.mark.parametrize("status", [301, 400, 404, 500, 503])
    def test_non_2xx_raises(self, status: int) -> None:
        transport = _transport_from_handler(lambda req: httpx.Response(status, content=b"nope"))
        with pytest.raises(NetworkError) as exc_info:
            run(transport.fetch(RequestDescriptor(url=URL)))
        assert exc_info.value.status_code == status
        assert exc_info.value.url == URL
        assert f"HTTP {status}" in str(exc_info.value)

    def test_connect_error_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = _transport_from_handler(handler)
        with pytest.raises(NetworkError, match="connection refused") as exc_info:
            run(transport.fetch(RequestDescriptor(url=URL)))
        assert exc_info.value.status_code is None

    def test_timeout_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        transport = _transport_from_handler(handler)
        with pytest.raises(NetworkError):
            run(transport.fetch(RequestDescriptor(url=URL)))


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------


class TestDownload:
    def test_streams_full_body(self) -> None:
        payload = bytes(range(256)) * 1024
        transport = _transport_from_handler(lambda req: httpx.Response(200, content=payload))
        assert run(transport.download(RequestDescriptor(url=URL))) == payload

    def test_non_2xx_raises(self) -> None:
        transport = _transport_from_handler(lambda req: httpx.Response(404))
        with pytest.raises(NetworkError) as exc_info:
            run(transport.download(RequestDescriptor(url=URL)))
        assert exc_info.value.status_code == 404

    def test_leaves_no_temporary_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("tempfile.tempdir", str(tmp_path))
        transport = _transport_from_handler(lambda req: httpx.Response(200, content=b"x"))
        run(transport.download(RequestDescriptor(url=URL)))
        assert list(tmp_path.iterdir()) == []

    def test_file_io_runs_in_worker_threads(self, monkeypatch: pytest.MonkeyPatch) -> None:
        offloaded: list[str] = []
        to_thread = asyncio.to_thread

        async def _recording_to_thread(func, *args):
            offloaded.append(func.__name__)
            return await to_thread(func, *args)

        monkeypatch.setattr("persistcall.client.transport.asyncio.to_thread", _recording_to_thread)
        transport = _transport_from_handler(lambda req: httpx.Response(200, content=b"abc"))
        assert run(transport.download(RequestDescriptor(url=URL))) == b"abc"
        assert "write" in offloaded
        assert offloaded[-1] == "read_bytes"


# ---------------------------------------------------------------------------
# file:// URLs
# ---------------------------------------------------------------------------


class TestFileUrls:
    def test_fetch_reads_local_file(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_bytes(b'{"local": true}')
        transport = HttpxTransport()
        assert run(transport.fetch(RequestDescriptor(url=path.as_uri()))) == b'{"local": true}'

    def test_download_reads_local_file(self, tmp_path: Path) -> None:
        path = tmp_path / "image.bin"
        path.write_bytes(b"\x00\x01\x02")
        transport = HttpxTransport()
        assert run(transport.download(RequestDescriptor(url=path.as_uri()))) == b"\x00\x01\x02"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        transport = HttpxTransport()
        with pytest.raises(NetworkError, match="Cannot read"):
            run(transport.fetch(RequestDescriptor(url=(tmp_path / "missing").as_uri())))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(HttpxTransport(), Transport)

    def test_client_created_lazily_with_config(self) -> None:
        transport = HttpxTransport(RequestConfig(timeout=5, follow_redirects=False))
        assert transport._client is None
        client = transport._get_client()
        assert client.timeout.read == 5
        assert client.follow_redirects is False
        run(transport.aclose())
        assert transport._client is None

    def test_does_not_close_injected_client(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport = HttpxTransport(client=client)
        run(transport.aclose())
        assert client.is_closed is False
