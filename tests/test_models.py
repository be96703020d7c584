"""Tests for the shared Pydantic models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from persistcall.exceptions import InvalidRequestError, NetworkError
from persistcall.models import (
    CacheConfig,
    FetchOutcome,
    FirstOf2,
    GlobalConfig,
    Payload,
    RequestDescriptor,
)
from persistcall.strategy import FetchStrategy


class TestCacheConfig:
    def test_defaults(self) -> None:
        config = CacheConfig()
        assert config.directory is None
        assert config.strategy == "cache"
        assert config.single_flight is False
        assert config.memory_max_bytes == 64 * 1024 * 1024

    def test_strategy_is_normalised(self) -> None:
        assert CacheConfig(strategy=" REFRESH:60 ").strategy == "refresh:60"

    @pytest.mark.parametrize("text", ["sometimes", "refresh:inf", "refresh:1e20"])
    def test_invalid_strategy_rejected(self, text: str) -> None:
        with pytest.raises(ValidationError):
            CacheConfig(strategy=text)

    def test_negative_memory_budget_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CacheConfig(memory_max_bytes=-1)

    def test_fetch_strategy(self) -> None:
        assert CacheConfig(strategy="refresh:5").fetch_strategy() == FetchStrategy.refresh_after(5)

    def test_global_config_nests_defaults(self) -> None:
        config = GlobalConfig()
        assert config.output.format == "auto"
        assert config.request.timeout == 30.0


class TestRequestDescriptor:
    def test_coerce_string(self) -> None:
        request = RequestDescriptor.coerce("https://example.com")
        assert request.method == "GET"
        assert request.url == "https://example.com"
        assert request.headers == {}

    def test_coerce_dict(self) -> None:
        request = RequestDescriptor.coerce({"url": "https://example.com", "method": "POST"})
        assert request.method == "POST"

    def test_coerce_descriptor_is_identity(self) -> None:
        request = RequestDescriptor(url="https://example.com")
        assert RequestDescriptor.coerce(request) is request

    def test_coerce_invalid_dict(self) -> None:
        with pytest.raises(InvalidRequestError):
            RequestDescriptor.coerce({"headers": {}})

    def test_frozen(self) -> None:
        request = RequestDescriptor(url="https://example.com")
        with pytest.raises(ValidationError):
            request.url = "https://other.example.com"  # type: ignore[misc]


class TestPayload:
    def test_naive_date_becomes_utc(self) -> None:
        payload = Payload[int](date=datetime(2026, 1, 1, 12, 0), value=1, key="k")
        assert payload.date.tzinfo == timezone.utc

    def test_aware_date_kept(self) -> None:
        when = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert Payload[int](date=when, value=1, key="k").date == when

    def test_value_is_validated(self) -> None:
        with pytest.raises(ValidationError):
            Payload[int](date=datetime.now(timezone.utc), value="seven", key="k")


class TestFirstOf2:
    def test_first(self) -> None:
        result = FirstOf2(first=1)
        assert result.second is None
        assert result.index == 0
        assert result.value == 1

    def test_second(self) -> None:
        result = FirstOf2.of_second("b")
        assert result.first is None
        assert result.index == 1
        assert result.value == "b"

    def test_first_matching_none_differs_from_second(self) -> None:
        assert FirstOf2(first=None) != FirstOf2.of_second(None)
        assert FirstOf2(first=None).index == 0


class TestFetchOutcome:
    def test_value(self) -> None:
        outcome = FetchOutcome(value=b"ok")
        assert outcome.ok
        assert outcome.unwrap() == b"ok"

    def test_error(self) -> None:
        outcome: FetchOutcome[bytes] = FetchOutcome(error=NetworkError("down"))
        assert not outcome.ok
        with pytest.raises(NetworkError, match="down"):
            outcome.unwrap()
