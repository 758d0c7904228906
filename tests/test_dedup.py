"""Tests for newsroom.dedup."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from newsroom.cache import InMemoryCache
from newsroom.dedup import DedupDecision, DedupGate, marker_key


class TestDedupGate:
    def test_marker_key_format(self) -> None:
        assert marker_key("reddit", "abc") == "seen:reddit:abc"

    @pytest.mark.asyncio
    @patch("newsroom.dedup.ArticleRepository")
    async def test_cache_hit_skips_store(self, mock_repo_cls) -> None:
        cache = InMemoryCache()
        await cache.set("seen:reddit:abc", "1", 60)
        gate = DedupGate(cache)

        decision = await gate.check(AsyncMock(), "reddit", "abc", source_id="abc")

        assert decision is DedupDecision.SEEN
        mock_repo_cls.assert_not_called()

    @pytest.mark.asyncio
    @patch("newsroom.dedup.ArticleRepository")
    async def test_store_hit_backfills_marker(self, mock_repo_cls) -> None:
        mock_repo_cls.return_value.find_existing = AsyncMock(return_value=uuid4())
        cache = InMemoryCache()
        gate = DedupGate(cache, ttl=3600)

        decision = await gate.check(AsyncMock(), "arstechnica", "https://x/1", url="https://x/1")

        assert decision is DedupDecision.SEEN
        assert await cache.exists("seen:arstechnica:https://x/1")

    @pytest.mark.asyncio
    @patch("newsroom.dedup.ArticleRepository")
    async def test_unknown_item_is_new(self, mock_repo_cls) -> None:
        mock_repo_cls.return_value.find_existing = AsyncMock(return_value=None)
        cache = InMemoryCache()
        gate = DedupGate(cache)

        decision = await gate.check(AsyncMock(), "reddit", "xyz", source_id="xyz")

        assert decision is DedupDecision.NEW
        assert not await cache.exists("seen:reddit:xyz")

    @pytest.mark.asyncio
    @patch("newsroom.dedup.ArticleRepository")
    async def test_cache_outage_falls_through_to_store(self, mock_repo_cls) -> None:
        mock_repo_cls.return_value.find_existing = AsyncMock(return_value=None)
        cache = MagicMock()
        cache.exists = AsyncMock(side_effect=ConnectionError("redis down"))
        cache.set = AsyncMock(side_effect=ConnectionError("redis down"))
        gate = DedupGate(cache)

        decision = await gate.check(AsyncMock(), "reddit", "xyz", source_id="xyz")

        assert decision is DedupDecision.NEW
        mock_repo_cls.return_value.find_existing.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_seen_swallows_cache_errors(self) -> None:
        cache = MagicMock()
        cache.set = AsyncMock(side_effect=ConnectionError("redis down"))
        await DedupGate(cache).mark_seen("reddit", "xyz")
