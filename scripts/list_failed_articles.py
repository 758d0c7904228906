#!/usr/bin/env python3
"""List FAILED articles and the classification status summary.

Usage:
    python scripts/list_failed_articles.py
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from newsroom.db.connection import async_session_factory, close_db
from newsroom.maintenance import MaintenanceService
from newsroom.workers.classification import create_classification_queue

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def run() -> int:
    queue = create_classification_queue()
    try:
        report = await MaintenanceService(async_session_factory, queue).list_failed()
    except Exception:
        logger.exception("Error listing failed articles")
        return 1
    finally:
        await queue.close()
        await close_db()

    if not report.articles:
        logger.info("No failed articles found")
    else:
        logger.info(f"Found {len(report.articles)} failed article(s):")
        for i, article in enumerate(report.articles, 1):
            logger.info(f"{i}. {article['title'][:70]}")
            logger.info(f"   Source: {article['source']}")
            logger.info(f"   Published: {article['published_at']}")
            logger.info(f"   ID: {article['id']}")
            logger.info(f"   URL: {article['url']}")

    logger.info("Classification Status Summary:")
    for status, count in sorted(report.status_counts.items()):
        logger.info(f"   {status}: {count}")
    return 0


if __name__ == "__main__":
    argparse.ArgumentParser(description="List FAILED articles").parse_args()
    sys.exit(asyncio.run(run()))
