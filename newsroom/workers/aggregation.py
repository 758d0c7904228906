"""Aggregation worker: runs the source aggregators as queued jobs."""

import logging
import time
import uuid
from typing import Dict, List, Protocol

from newsroom.config import settings
from newsroom.errors import SourceRateLimitedError
from newsroom.job_queue import Job, JobQueue, create_queue

logger = logging.getLogger(__name__)

AGGREGATION_QUEUE = "article-aggregation"
FETCH_RSS_JOB = "fetch-rss"
FETCH_REDDIT_JOB = "fetch-reddit"


def create_aggregation_queue() -> JobQueue:
    return create_queue(
        settings.REDIS_URL,
        AGGREGATION_QUEUE,
        prefix=settings.QUEUE_PREFIX,
        default_attempts=settings.AGGREGATION_MAX_ATTEMPTS,
        default_backoff=settings.AGGREGATION_BACKOFF_SECONDS,
        lease_seconds=settings.JOB_LEASE_SECONDS,
    )


class Aggregator(Protocol):
    async def aggregate_and_store(self) -> int: ...


async def enqueue_aggregation(queue: JobQueue) -> List[Job]:
    """Queue one fetch job per source kind."""
    stamp = int(time.time() * 1000)
    jobs = [
        await queue.enqueue(FETCH_REDDIT_JOB, {}, job_id=f"reddit-{stamp}"),
        await queue.enqueue(FETCH_RSS_JOB, {}, job_id=f"rss-{stamp}"),
    ]
    logger.info("Aggregation jobs queued")
    return jobs


class AggregationWorker:
    """Consumes fetch jobs; one handler per source kind."""

    def __init__(self, queue: JobQueue, rss: Aggregator, reddit: Aggregator):
        self.queue = queue
        self.aggregators: Dict[str, Aggregator] = {
            FETCH_RSS_JOB: rss,
            FETCH_REDDIT_JOB: reddit,
        }

    def register(self) -> None:
        for name in self.aggregators:
            self.queue.process(name, self.handle)

    async def handle(self, job: Job) -> dict:
        source = job.name.removeprefix("fetch-")
        logger.info(f"Processing {source} aggregation job")
        try:
            count = await self.aggregators[job.name].aggregate_and_store()
        except SourceRateLimitedError as e:
            delay = e.retry_after or settings.RATE_LIMIT_DEFAULT_DELAY
            retry_id = f"{source}-retry-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
            await self.queue.enqueue(job.name, job.data, delay=delay, job_id=retry_id)
            logger.warning(f"Rate limit hit for {source} aggregation ({e.source}). Retrying in {delay}s")
            return {"source": source, "rate_limited": True, "retry_after_seconds": delay}

        logger.info(f"{source} aggregation complete: {count} articles stored")
        return {"source": source, "articles_stored": count}
