"""Tests for the per-key single-flight registry."""

from __future__ import annotations

import asyncio

import pytest

from persistcall.client.coalescer import RequestCoalescer


class TestRequestCoalescer:
    def test_single_caller_runs_fetch(self) -> None:
        coalescer = RequestCoalescer()

        async def _fetch() -> str:
            return "value"

        assert asyncio.run(coalescer.run("k", _fetch)) == "value"
        assert coalescer.active_requests == 0
        assert coalescer.joined == 0

    def test_concurrent_callers_share_one_fetch(self) -> None:
        coalescer = RequestCoalescer()
        calls = 0

        async def _fetch() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 42

        async def _main() -> list[int]:
            return await asyncio.gather(*(coalescer.run("k", _fetch) for _ in range(5)))

        assert asyncio.run(_main()) == [42] * 5
        assert calls == 1
        assert coalescer.joined == 4
        assert coalescer.active_requests == 0

    def test_different_keys_do_not_share(self) -> None:
        coalescer = RequestCoalescer()
        calls: list[str] = []

        def _fetcher(key: str):
            async def _fetch() -> str:
                calls.append(key)
                await asyncio.sleep(0.01)
                return key

            return _fetch

        async def _main() -> list[str]:
            return await asyncio.gather(
                coalescer.run("a", _fetcher("a")), coalescer.run("b", _fetcher("b"))
            )

        assert asyncio.run(_main()) == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    def test_error_reaches_every_waiter(self) -> None:
        coalescer = RequestCoalescer()

        async def _fetch() -> None:
            await asyncio.sleep(0.01)
            raise ValueError("upstream broke")

        async def _main() -> list[object]:
            return await asyncio.gather(
                *(coalescer.run("k", _fetch) for _ in range(3)), return_exceptions=True
            )

        results = asyncio.run(_main())
        assert len(results) == 3
        assert all(isinstance(r, ValueError) for r in results)
        assert coalescer.active_requests == 0

    def test_key_released_after_failure(self) -> None:
        coalescer = RequestCoalescer()

        async def _fail() -> None:
            raise ValueError("first")

        async def _ok() -> str:
            return "second"

        with pytest.raises(ValueError):
            asyncio.run(coalescer.run("k", _fail))
        assert asyncio.run(coalescer.run("k", _ok)) == "second"

    def test_sequential_calls_are_not_coalesced(self) -> None:
        coalescer = RequestCoalescer()
        calls = 0

        async def _fetch() -> int:
            nonlocal calls
            calls += 1
            return calls

        async def _main() -> list[int]:
            return [await coalescer.run("k", _fetch), await coalescer.run("k", _fetch)]

        assert asyncio.run(_main()) == [1, 2]
        assert coalescer.joined == 0
