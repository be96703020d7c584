"""Tests for the size-bounded in-memory store."""

from __future__ import annotations

import threading

from persistcall.cache import MemoryStore


class TestMemoryStore:
    def test_set_and_get(self) -> None:
        store = MemoryStore()
        store.set("k", b"value")
        assert store.get("k") == b"value"
        assert "k" in store

    def test_missing(self) -> None:
        assert MemoryStore().get("k") is None

    def test_current_bytes_tracks_lengths(self) -> None:
        store = MemoryStore(max_bytes=100)
        store.set("a", b"12345")
        store.set("b", b"123")
        assert store.current_bytes == 8
        assert len(store) == 2

    def test_oversized_entry_not_stored(self) -> None:
        store = MemoryStore(max_bytes=4)
        store.set("big", b"12345")
        assert store.get("big") is None
        assert store.current_bytes == 0

    def test_least_recently_used_is_evicted(self) -> None:
        store = MemoryStore(max_bytes=10)
        store.set("a", b"aaaa")
        store.set("b", b"bbbb")
        store.get("a")
        store.set("c", b"cccc")
        assert store.get("a") == b"aaaa"
        assert store.get("b") is None
        assert store.get("c") == b"cccc"
        assert store.current_bytes <= store.max_bytes

    def test_reset(self) -> None:
        store = MemoryStore()
        store.set("k", b"v")
        store.reset()
        assert store.get("k") is None
        assert store.current_bytes == 0

    def test_concurrent_writers(self) -> None:
        store = MemoryStore(max_bytes=1024)

        def _writer(prefix: str) -> None:
            for i in range(200):
                store.set(f"{prefix}{i}", b"x" * 8)

        threads = [threading.Thread(target=_writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.current_bytes <= 1024
