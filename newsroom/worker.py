"""Worker process: classification and aggregation consumers plus the fetch schedule.

Usage:
    python -m newsroom.worker
"""

import asyncio
import logging
import signal
from typing import Optional

from newsroom.aggregator import RedditAggregator, RssAggregator
from newsroom.cache import create_cache
from newsroom.classifier import LLMClassifier
from newsroom.config import settings
from newsroom.db.connection import async_session_factory, close_db, init_db
from newsroom.dedup import DedupGate
from newsroom.embedder import Embedder
from newsroom.ingestion import IngestionService
from newsroom.job_queue import JobQueue
from newsroom.llm_client import create_client
from newsroom.workers.aggregation import (
    AggregationWorker,
    create_aggregation_queue,
    enqueue_aggregation,
)
from newsroom.workers.classification import ClassificationWorker, create_classification_queue

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

INITIAL_AGGREGATION_DELAY = 5.0


async def schedule_aggregation(
    queue: JobQueue,
    interval_minutes: int,
    stop: asyncio.Event,
    initial_delay: float = INITIAL_AGGREGATION_DELAY,
) -> None:
    """Queue fetch jobs shortly after start, then every ``interval_minutes``."""
    delay = initial_delay
    logger.info(f"Aggregation scheduled every {interval_minutes} minutes")
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
            break
        except asyncio.TimeoutError:
            pass
        try:
            await enqueue_aggregation(queue)
        except Exception as e:
            logger.error(f"Error queuing aggregation jobs: {e}")
        delay = interval_minutes * 60


async def run_worker(stop: Optional[asyncio.Event] = None) -> None:
    stop = stop or asyncio.Event()

    await init_db()
    cache = create_cache(settings.REDIS_URL)
    classification_queue = create_classification_queue()
    aggregation_queue = create_aggregation_queue()

    client = create_client()
    ingestion = IngestionService(
        async_session_factory,
        classification_queue,
        DedupGate(cache),
        embedder=Embedder(client),
    )
    ClassificationWorker(async_session_factory, LLMClassifier(client), classification_queue).register()
    AggregationWorker(
        aggregation_queue,
        rss=RssAggregator(ingestion),
        reddit=RedditAggregator(ingestion),
    ).register()

    tasks = [
        classification_queue.run_forever(settings.WORKER_POLL_INTERVAL, stop),
        aggregation_queue.run_forever(settings.WORKER_POLL_INTERVAL, stop),
    ]
    if settings.SCHEDULE_AGGREGATION:
        tasks.append(schedule_aggregation(aggregation_queue, settings.FETCH_INTERVAL_MINUTES, stop))

    logger.info("Workers started")
    try:
        await asyncio.gather(*tasks)
    finally:
        await classification_queue.close()
        await aggregation_queue.close()
        await cache.close()
        await client.close()
        await close_db()
        logger.info("Workers stopped")


def main() -> None:
    async def _run():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        await run_worker(stop)

    asyncio.run(_run())


if __name__ == "__main__":
    main()
