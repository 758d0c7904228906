"""Article ingestion: clean, persist as PENDING, embed, hand off to classification."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from bs4 import BeautifulSoup
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.config import settings
from newsroom.db.models import Article
from newsroom.db.repositories.articles import ArticleRepository
from newsroom.dedup import DedupDecision, DedupGate
from newsroom.embedder import Embedder
from newsroom.job_queue import JobQueue
from newsroom.metadata import RedditMetadata, RssMetadata, UnknownMetadata
from newsroom.workers.classification import enqueue_classification

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class IngestItem:
    """Raw item handed over by a source adapter. Content may contain HTML."""

    title: str
    content: str
    url: str
    source: str
    source_id: str
    published_at: datetime
    summary: Optional[str] = None
    author: Optional[str] = None
    metadata: Union[RssMetadata, RedditMetadata, UnknownMetadata] = field(
        default_factory=UnknownMetadata
    )


@dataclass
class IngestionResult:
    """Outcome of one ingest call.

    ``stored`` is False only for duplicates. Enqueue problems are reported
    separately in ``enqueue_error`` and do not make ingestion fail.
    """

    article: Optional[Article]
    stored: bool
    duplicate: bool = False
    embedding_stored: bool = False
    enqueued: bool = False
    enqueue_error: Optional[str] = None


def clean_html(html: Optional[str]) -> str:
    """Strip markup and collapse whitespace."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["img", "script", "style"]):
        tag.decompose()
    return _WHITESPACE.sub(" ", soup.get_text(" ")).strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


class IngestionService:
    """Stores new articles without waiting on the classifier."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        classification_queue: JobQueue,
        dedup: DedupGate,
        embedder: Optional[Embedder] = None,
    ):
        self.session_factory = session_factory
        self.classification_queue = classification_queue
        self.dedup = dedup
        self.embedder = embedder

    async def ingest_item(self, item: IngestItem, identity: str) -> IngestionResult:
        """Dedup-gated ingest used by the source adapters.

        ``identity`` is the source-specific dedup key (feed link, post id).
        """
        async with self.session_factory() as session:
            decision = await self.dedup.check(
                session, item.source, identity, url=item.url, source_id=item.source_id
            )
        if decision is DedupDecision.SEEN:
            return IngestionResult(article=None, stored=False, duplicate=True)

        result = await self.ingest(item)
        await self.dedup.mark_seen(item.source, identity)
        return result

    async def ingest(self, item: IngestItem) -> IngestionResult:
        content = clean_html(item.content)
        summary_source = clean_html(item.summary) if item.summary else content
        summary = truncate(summary_source, settings.SUMMARY_MAX_CHARS) or None

        metadata = item.metadata.model_dump(mode="json", exclude_none=True)
        metadata.setdefault("fetched_at", datetime.now(timezone.utc).isoformat())

        async with self.session_factory() as session:
            repo = ArticleRepository(session)
            try:
                article = await repo.create_pending(
                    title=item.title.strip(),
                    content=content or item.title.strip(),
                    summary=summary,
                    url=item.url,
                    source=item.source,
                    source_id=item.source_id,
                    author=item.author,
                    published_at=item.published_at,
                    metadata=metadata,
                )
                await session.commit()
                session.expunge(article)
            except IntegrityError:
                await session.rollback()
                logger.debug(f"Article already exists: {item.url}")
                return IngestionResult(article=None, stored=False, duplicate=True)

            embedding_stored = await self._store_embedding(session, article, summary)

        result = IngestionResult(article=article, stored=True, embedding_stored=embedding_stored)
        try:
            await enqueue_classification(self.classification_queue, article.id)
            result.enqueued = True
        except Exception as e:
            # Article stays PENDING; backfill_pending() picks it up later
            result.enqueue_error = str(e)
            logger.warning(f"Failed to enqueue classification for article {article.id}: {e}")

        logger.info(f"Stored new article from {item.source}: {item.title[:50]}...")
        return result

    async def _store_embedding(
        self, session: AsyncSession, article: Article, summary: Optional[str]
    ) -> bool:
        if self.embedder is None:
            return False

        body = (summary or article.content)[: settings.EMBEDDING_SOURCE_CHARS]
        try:
            vector = await self.embedder.embed(f"{article.title}\n\n{body}")
        except Exception as e:
            logger.warning(f"Embedding generation failed for {article.id}, continuing without vector data: {e}")
            return False

        try:
            await ArticleRepository(session).set_embedding(article.id, vector)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.warning(f"Failed to store embedding for {article.id}: {e}")
            return False
        return True
