"""Classification worker: PENDING -> COMPLETED | FAILED.

Generic failures go through the queue's capped, backed-off retries.
Provider rate limits never touch that budget: the job is replaced by a
fresh, fully budgeted job delayed by the provider's retry hint.
"""

import enum
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.classifier import LLMClassifier
from newsroom.config import settings
from newsroom.db.models import ClassificationStatus
from newsroom.db.repositories.articles import ArticleRepository
from newsroom.errors import ClassifierError, ClassifierErrorKind
from newsroom.job_queue import Job, JobQueue, create_queue
from newsroom.metadata import ClassificationEnrichment, enrich, source_hints

logger = logging.getLogger(__name__)

CLASSIFICATION_QUEUE = "article-classification"
CLASSIFY_JOB = "classify-article"


def create_classification_queue() -> JobQueue:
    return create_queue(
        settings.REDIS_URL,
        CLASSIFICATION_QUEUE,
        prefix=settings.QUEUE_PREFIX,
        default_attempts=settings.CLASSIFICATION_MAX_ATTEMPTS,
        default_backoff=settings.CLASSIFICATION_BACKOFF_SECONDS,
        lease_seconds=settings.JOB_LEASE_SECONDS,
    )


class ClassificationOutcome(str, enum.Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    MISSING = "missing"
    RESCHEDULED = "rescheduled"
    BLOCKED = "blocked"


async def enqueue_classification(
    queue: JobQueue,
    article_id: UUID | str,
    delay: float = 0.0,
    job_id: Optional[str] = None,
) -> Job:
    """Queue one classification job with the queue's full attempt budget."""
    return await queue.enqueue(
        CLASSIFY_JOB,
        {"article_id": str(article_id)},
        delay=delay,
        job_id=job_id,
    )


class ClassificationWorker:
    """Consumes classification jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        classifier: LLMClassifier,
        queue: JobQueue,
    ):
        self.session_factory = session_factory
        self.classifier = classifier
        self.queue = queue

    def register(self) -> None:
        self.queue.process(CLASSIFY_JOB, self.handle)
        self.queue.on_exhausted(CLASSIFY_JOB, self.on_exhausted)

    async def handle(self, job: Job) -> ClassificationOutcome:
        article_id = UUID(job.data["article_id"])
        logger.info(f"Processing classification for article {article_id}")

        # Read what the classifier needs, then release the session before
        # the network call.
        async with self.session_factory() as session:
            article = await ArticleRepository(session).get_by_id(article_id)
            if article is None:
                logger.error(f"Article {article_id} not found")
                return ClassificationOutcome.MISSING
            if article.classification_status == ClassificationStatus.COMPLETED:
                logger.info(f"Article {article_id} already classified")
                return ClassificationOutcome.ALREADY_COMPLETED
            title = article.title
            content = article.content
            metadata = dict(article.metadata_ or {})

        try:
            result = await self.classifier.classify(title, content, source_hints(metadata))
        except ClassifierError as e:
            if e.kind == ClassifierErrorKind.RATE_LIMITED:
                return await self._reschedule(article_id, e)
            if e.kind == ClassifierErrorKind.SAFETY_BLOCKED:
                logger.error(f"Classifier refused article {article_id}: {e}")
                await self._mark_failed(article_id)
                return ClassificationOutcome.BLOCKED
            logger.error(f"Classification failed for article {article_id}: {e}")
            raise

        enrichment = ClassificationEnrichment(
            secondary_categories=result.secondary_categories,
            classification_reasoning=result.reasoning,
            classified_at=datetime.now(timezone.utc),
        )
        async with self.session_factory() as session:
            await ArticleRepository(session).apply_classification(
                article_id,
                category=result.category,
                score=result.confidence,
                metadata=enrich(metadata, enrichment),
            )
            await session.commit()

        logger.info(f"Article {article_id} classified as {result.category.value}")
        return ClassificationOutcome.COMPLETED

    async def _reschedule(self, article_id: UUID, error: ClassifierError) -> ClassificationOutcome:
        delay = error.retry_after or self.classifier.default_retry_delay
        job = await enqueue_classification(
            self.queue,
            article_id,
            delay=delay,
            job_id=f"{article_id}-retry-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
        )
        logger.warning(
            f"Rate limit hit for article {article_id}. Retrying in {delay}s as job {job.id}"
        )
        return ClassificationOutcome.RESCHEDULED

    async def on_exhausted(self, job: Job, error: BaseException) -> None:
        article_id = UUID(job.data["article_id"])
        logger.error(f"Classification job {job.id} exhausted for article {article_id}: {error}")
        await self._mark_failed(article_id)

    async def _mark_failed(self, article_id: UUID) -> None:
        async with self.session_factory() as session:
            updated = await ArticleRepository(session).mark_failed(article_id)
            await session.commit()
        if updated:
            logger.info(f"Article {article_id} marked FAILED")
