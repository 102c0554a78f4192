"""Tests for the source fetcher (cache + mocked upstream client)."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from spacenexus.cache import CacheTTL, ResponseCache
from spacenexus.config import AppConfig, SourceConfig
from spacenexus.fetcher import SourceFetcher
from spacenexus.models import ErrorCode, Status
from spacenexus.upstream_client import UpstreamClient, UpstreamError


def _make_config(sources=None):
    if sources is None:
        sources = [
            SourceConfig(
                key="news",
                label="Space News",
                url="http://fake/news",
                params={"limit": "5"},
                ttl="NEWS",
            )
        ]
    return AppConfig(cleanup_interval=0, sources=sources)


class TestSourceFetcher:
    def _make_fetcher(self, clock, config=None):
        config = config or _make_config()
        client = AsyncMock(spec=UpstreamClient)
        cache = ResponseCache(clock=clock, cleanup_interval=None)
        fetcher = SourceFetcher(config=config, client=client, cache=cache)
        return fetcher, client, cache

    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, clock):
        fetcher, client, cache = self._make_fetcher(clock)
        client.fetch_json.return_value = {"articles": ["a1"]}

        item = await fetcher.get_source("news")
        assert item.status == Status.ok
        assert item.cached is False
        assert item.data == {"articles": ["a1"]}
        client.fetch_json.assert_awaited_once_with(
            "http://fake/news", params={"limit": "5"}
        )
        assert cache.get_stale("news").value == {"articles": ["a1"]}

    @pytest.mark.asyncio
    async def test_serves_fresh_cache_without_upstream(self, clock):
        fetcher, client, _ = self._make_fetcher(clock)
        client.fetch_json.return_value = {"articles": ["a1"]}
        await fetcher.get_source("news")

        clock.advance(CacheTTL.NEWS - 1)
        item = await fetcher.get_source("news")
        assert item.status == Status.ok
        assert item.cached is True
        assert client.fetch_json.await_count == 1

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self, clock):
        fetcher, client, _ = self._make_fetcher(clock)
        client.fetch_json.return_value = {"articles": ["a1"]}
        await fetcher.get_source("news")

        clock.advance(CacheTTL.NEWS + 1)
        client.fetch_json.return_value = {"articles": ["a2"]}
        item = await fetcher.get_source("news")
        assert item.cached is False
        assert item.data == {"articles": ["a2"]}

    @pytest.mark.asyncio
    async def test_stale_cache_on_error(self, clock):
        fetcher, client, _ = self._make_fetcher(clock)
        client.fetch_json.return_value = {"articles": ["cached"]}
        stored_ms = clock()
        await fetcher.get_source("news")

        clock.advance(CacheTTL.NEWS * 2)
        client.fetch_json.side_effect = UpstreamError("down")
        item = await fetcher.get_source("news")
        assert item.status == Status.stale
        assert item.cached is True
        assert item.data == {"articles": ["cached"]}
        assert item.stale_as_of == datetime.fromtimestamp(
            stored_ms / 1000, tz=timezone.utc
        )
        assert item.error is None

    @pytest.mark.asyncio
    async def test_error_when_nothing_cached(self, clock):
        fetcher, client, _ = self._make_fetcher(clock)
        client.fetch_json.side_effect = UpstreamError("Connection error: boom")
        item = await fetcher.get_source("news")
        assert item.status == Status.error
        assert item.data is None
        assert item.error.code == ErrorCode.upstream_unreachable
        assert "boom" in item.error.message

    @pytest.mark.asyncio
    async def test_rate_limited_error_code(self, clock):
        fetcher, client, _ = self._make_fetcher(clock)
        client.fetch_json.side_effect = UpstreamError(
            "Rate limited by upstream", status_code=429
        )
        item = await fetcher.get_source("news")
        assert item.status == Status.error
        assert item.error.code == ErrorCode.upstream_rate_limited

    @pytest.mark.asyncio
    async def test_error_after_cleanup_evicts(self, clock):
        fetcher, client, cache = self._make_fetcher(clock)
        client.fetch_json.return_value = {"articles": []}
        await fetcher.get_source("news")

        clock.advance(CacheTTL.NEWS * 10 + 1)
        cache.cleanup()
        client.fetch_json.side_effect = UpstreamError("down")
        item = await fetcher.get_source("news")
        assert item.status == Status.error

    @pytest.mark.asyncio
    async def test_null_body_is_not_cached(self, clock):
        fetcher, client, cache = self._make_fetcher(clock)
        client.fetch_json.return_value = None

        item = await fetcher.get_source("news")
        assert item.status == Status.ok
        assert item.data is None
        assert cache.get_stale("news") is None

        await fetcher.get_source("news")
        assert client.fetch_json.await_count == 2
        stats = cache.get_stats()
        assert stats.hits == 0
        assert stats.misses == 2

    @pytest.mark.asyncio
    async def test_unknown_key(self, clock):
        fetcher, client, _ = self._make_fetcher(clock)
        assert await fetcher.get_source("nope") is None
        client.fetch_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_all_isolates_failures(self, clock):
        config = _make_config(
            sources=[
                SourceConfig(key="a", label="A", url="http://fake/a"),
                SourceConfig(key="b", label="B", url="http://fake/b"),
            ]
        )
        fetcher, client, _ = self._make_fetcher(clock, config)

        async def fake_fetch(url, params=None):
            if url.endswith("/b"):
                raise UpstreamError("down")
            return {"ok": True}

        client.fetch_json.side_effect = fake_fetch
        result = await fetcher.get_all()
        assert [i.key for i in result.items] == ["a", "b"]
        assert result.items[0].status == Status.ok
        assert result.items[1].status == Status.error
