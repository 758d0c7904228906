"""Tests for newsroom.ingestion."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from newsroom.dedup import DedupDecision
from newsroom.errors import EmbeddingError
from newsroom.ingestion import IngestionService, IngestItem, clean_html, truncate
from newsroom.job_queue import InMemoryJobQueue
from newsroom.metadata import RssMetadata
from newsroom.workers.classification import CLASSIFY_JOB
from tests.conftest import make_article


def _item(**overrides) -> IngestItem:
    values = dict(
        title="Critical OpenSSL flaw patched",
        content="<p>A remote code execution bug</p><img src='x.png'><script>x()</script>",
        url="https://example.com/openssl",
        source="arstechnica",
        source_id="abc123",
        published_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        metadata=RssMetadata(source="arstechnica", rss_categories=["Security"]),
    )
    values.update(overrides)
    return IngestItem(**values)


def _dedup(decision=DedupDecision.NEW) -> MagicMock:
    dedup = MagicMock()
    dedup.check = AsyncMock(return_value=decision)
    dedup.mark_seen = AsyncMock()
    return dedup


def _repo(mock_repo_cls, article=None, create_error=None):
    repo = mock_repo_cls.return_value
    repo.create_pending = AsyncMock(return_value=article, side_effect=create_error)
    repo.set_embedding = AsyncMock()
    return repo


class TestCleanHtml:
    def test_strips_markup_and_media(self) -> None:
        text = clean_html("<p>Hello   <b>world</b></p><img src='a'><script>alert(1)</script>")
        assert text == "Hello world"

    def test_empty(self) -> None:
        assert clean_html(None) == ""
        assert clean_html("") == ""


class TestTruncate:
    def test_short_text_untouched(self) -> None:
        assert truncate("abc", 10) == "abc"

    def test_long_text_gets_ellipsis(self) -> None:
        result = truncate("x" * 600, 500)
        assert len(result) == 500
        assert result.endswith("...")


class TestIngest:
    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_stores_pending_article_and_enqueues(self, mock_repo_cls, session_factory) -> None:
        article = make_article()
        repo = _repo(mock_repo_cls, article=article)
        queue = InMemoryJobQueue("classify")
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=[0.1] * 4)
        service = IngestionService(session_factory, queue, _dedup(), embedder=embedder)

        result = await service.ingest(_item())

        assert result.stored and result.enqueued and result.embedding_stored
        kwargs = repo.create_pending.await_args.kwargs
        assert kwargs["content"] == "A remote code execution bug"
        assert kwargs["summary"] == "A remote code execution bug"
        assert kwargs["metadata"]["type"] == "rss"
        assert kwargs["metadata"]["rss_categories"] == ["Security"]
        assert "fetched_at" in kwargs["metadata"]
        repo.set_embedding.assert_awaited_once_with(article.id, [0.1] * 4)

        (job,) = queue.pending_jobs()
        assert job.name == CLASSIFY_JOB
        assert job.data == {"article_id": str(article.id)}

    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_embedding_source_text(self, mock_repo_cls, session_factory) -> None:
        article = make_article(title="Title", content="Body")
        _repo(mock_repo_cls, article=article)
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=[0.5])
        service = IngestionService(session_factory, InMemoryJobQueue("c"), _dedup(), embedder=embedder)

        await service.ingest(_item(summary="Short summary"))

        embedder.embed.assert_awaited_once_with("Title\n\nShort summary")

    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_unique_violation_is_not_stored(self, mock_repo_cls, session_factory) -> None:
        _repo(mock_repo_cls, create_error=IntegrityError("INSERT", {}, Exception("duplicate key")))
        queue = InMemoryJobQueue("c")
        service = IngestionService(session_factory, queue, _dedup())

        result = await service.ingest(_item())

        assert result.stored is False
        assert result.duplicate is True
        assert result.article is None
        assert queue.pending_jobs() == []
        session_factory.sessions[0].rollback.assert_awaited()

    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_embedding_failure_does_not_block(self, mock_repo_cls, session_factory) -> None:
        repo = _repo(mock_repo_cls, article=make_article())
        embedder = MagicMock()
        embedder.embed = AsyncMock(side_effect=EmbeddingError("provider down"))
        queue = InMemoryJobQueue("c")
        service = IngestionService(session_factory, queue, _dedup(), embedder=embedder)

        result = await service.ingest(_item())

        assert result.stored is True
        assert result.embedding_stored is False
        assert result.enqueued is True
        repo.set_embedding.assert_not_awaited()
        assert len(queue.pending_jobs()) == 1

    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_embedding_write_failure_rolls_back(self, mock_repo_cls, session_factory) -> None:
        repo = _repo(mock_repo_cls, article=make_article())
        repo.set_embedding = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("dim mismatch")))
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=[0.1])
        service = IngestionService(session_factory, InMemoryJobQueue("c"), _dedup(), embedder=embedder)

        result = await service.ingest(_item())

        assert result.stored is True
        assert result.embedding_stored is False
        session_factory.sessions[0].rollback.assert_awaited_once()

    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_enqueue_failure_is_reported_not_raised(self, mock_repo_cls, session_factory) -> None:
        _repo(mock_repo_cls, article=make_article())
        queue = MagicMock()
        queue.enqueue = AsyncMock(side_effect=ConnectionError("redis down"))
        service = IngestionService(session_factory, queue, _dedup())

        result = await service.ingest(_item())

        assert result.stored is True
        assert result.enqueued is False
        assert "redis down" in result.enqueue_error


class TestIngestItem:
    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_seen_item_short_circuits(self, mock_repo_cls, session_factory) -> None:
        repo = _repo(mock_repo_cls, article=make_article())
        dedup = _dedup(DedupDecision.SEEN)
        service = IngestionService(session_factory, InMemoryJobQueue("c"), dedup)

        result = await service.ingest_item(_item(), "https://example.com/openssl")

        assert result.duplicate is True
        repo.create_pending.assert_not_awaited()
        dedup.mark_seen.assert_not_awaited()

    @pytest.mark.asyncio
    @patch("newsroom.ingestion.ArticleRepository")
    async def test_concurrent_producers_store_once(self, mock_repo_cls, session_factory) -> None:
        article = make_article()
        repo = _repo(mock_repo_cls)
        repo.create_pending = AsyncMock(
            side_effect=[article, IntegrityError("INSERT", {}, Exception("duplicate key"))]
        )
        dedup = _dedup(DedupDecision.NEW)
        queue = InMemoryJobQueue("c")
        service = IngestionService(session_factory, queue, dedup)

        first = await service.ingest_item(_item(), "https://example.com/openssl")
        second = await service.ingest_item(_item(), "https://example.com/openssl")

        assert first.stored is True
        assert second.stored is False and second.duplicate is True
        assert len(queue.pending_jobs()) == 1
        assert dedup.mark_seen.await_count == 2
