"""Operator actions for stuck or failed classifications."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.db.repositories.articles import ArticleRepository
from newsroom.job_queue import JobQueue
from newsroom.workers.classification import enqueue_classification

logger = logging.getLogger(__name__)


@dataclass
class PendingReport:
    with_category: int
    without_category: int
    samples: List[dict] = field(default_factory=list)


@dataclass
class FailedReport:
    articles: List[dict]
    status_counts: dict


class MaintenanceService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        classification_queue: JobQueue,
    ):
        self.session_factory = session_factory
        self.classification_queue = classification_queue

    async def retry_failed(self) -> int:
        """Reset FAILED articles to PENDING and queue them again."""
        async with self.session_factory() as session:
            repo = ArticleRepository(session)
            failed = await repo.get_failed()
            if not failed:
                logger.info("No failed articles found")
                return 0
            ids = [article.id for article in failed]
            await repo.reset_to_pending(ids)
            await session.commit()

        logger.info(f"Found {len(ids)} failed article(s) to retry")
        for article_id in ids:
            await enqueue_classification(self.classification_queue, article_id)
            logger.info(f"Re-queued article {article_id}")
        return len(ids)

    async def reconcile_pending(self) -> int:
        """PENDING rows that already hold a category become COMPLETED."""
        async with self.session_factory() as session:
            updated = await ArticleRepository(session).complete_pending_with_category()
            await session.commit()
        logger.info(f"Updated {updated} article(s) from PENDING to COMPLETED")
        return updated

    async def backfill_pending(self, limit: Optional[int] = None) -> int:
        """Queue classification for PENDING articles that have no category.

        Covers articles whose enqueue failed at ingestion time. Articles that
        already have a job will simply be classified once and then skipped.
        """
        async with self.session_factory() as session:
            pending = await ArticleRepository(session).get_pending(with_category=False, limit=limit)
            ids = [article.id for article in pending]

        for article_id in ids:
            await enqueue_classification(self.classification_queue, article_id)
        logger.info(f"Queued {len(ids)} pending article(s) for classification")
        return len(ids)

    async def check_pending(self, sample_size: int = 5) -> PendingReport:
        async with self.session_factory() as session:
            repo = ArticleRepository(session)
            anomalies = await repo.get_pending(with_category=True, limit=100)
            truly_pending = await repo.get_pending(with_category=False)

        samples = [
            {
                "id": str(article.id),
                "title": article.title[:50],
                "category": article.category.value if article.category else None,
                "category_score": article.category_score,
            }
            for article in anomalies[:sample_size]
        ]
        return PendingReport(
            with_category=len(anomalies),
            without_category=len(truly_pending),
            samples=samples,
        )

    async def list_failed(self) -> FailedReport:
        async with self.session_factory() as session:
            repo = ArticleRepository(session)
            failed = await repo.get_failed()
            counts = await repo.status_counts()
            articles = [
                {
                    "id": str(article.id),
                    "title": article.title,
                    "source": article.source,
                    "published_at": article.published_at.isoformat() if article.published_at else None,
                    "url": article.url,
                }
                for article in failed
            ]
        return FailedReport(articles=articles, status_counts=counts)
