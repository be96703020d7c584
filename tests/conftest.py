"""Shared test fixtures for persistcall.

Provides an in-memory transport that counts calls, a controllable clock,
a fetcher wired to both over a temporary disk store, isolated config
directories, and output managers.  Pytest discovers these automatically.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from persistcall.cache import DiskStore, MemoryStore
from persistcall.client.fetcher import PersistentFetcher
from persistcall.models import RequestDescriptor
from persistcall.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager holds references to sys.stdout/sys.stderr from when
    it was created.  CliRunner swaps those streams out, so a manager left
    over from one test would write to closed files in the next.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeTransport:
    """Transport returning a fixed body and counting calls.

    Change ``body`` or ``error`` between calls to simulate the server
    changing its answer.  ``delay`` makes each call yield to the loop so
    concurrent callers overlap.
    """

    def __init__(
        self,
        body: bytes = b'{"id": 1, "name": "Ada"}',
        *,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.body = body
        self.error = error
        self.delay = delay
        self.fetch_calls = 0
        self.download_calls = 0
        self.requests: list[RequestDescriptor] = []
        self.closed = False

    async def fetch(self, request: RequestDescriptor) -> bytes:
        self.fetch_calls += 1
        return await self._respond(request)

    async def download(self, request: RequestDescriptor) -> bytes:
        self.download_calls += 1
        return await self._respond(request)

    async def aclose(self) -> None:
        self.closed = True

    @property
    def calls(self) -> int:
        return self.fetch_calls + self.download_calls

    async def _respond(self, request: RequestDescriptor) -> bytes:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.body


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Fetcher fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_transport() -> type[FakeTransport]:
    """The FakeTransport class, for tests that need one with a custom body."""
    return FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def disk(tmp_path: Path) -> DiskStore:
    store = DiskStore(tmp_path / "cache")
    yield store
    store.close()


@pytest.fixture
def fetcher(disk: DiskStore, transport: FakeTransport, clock: FakeClock) -> PersistentFetcher:
    """A fetcher over a temporary disk store, a fake transport and a fake clock."""
    return PersistentFetcher(disk, transport, MemoryStore(), clock=clock)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME at
    subdirectories of tmp_path, clears the PERSISTCALL_* variables, and
    changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("persistcall.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["PERSISTCALL_STRATEGY", "PERSISTCALL_CACHE_DIR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
