#!/usr/bin/env python3
"""Report PENDING articles, separating repairable ones from truly pending.

Usage:
    python scripts/check_pending_articles.py [--samples N]
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


async def run(samples: int) -> int:
    queue = create_classification_queue()
    try:
        report = await MaintenanceService(async_session_factory, queue).check_pending(samples)
    except Exception:
        logger.exception("Error checking pending articles")
        return 1
    finally:
        await queue.close()
        await close_db()

    if report.with_category:
        logger.info(f"Found {report.with_category} PENDING articles that have a category assigned")
        for i, article in enumerate(report.samples, 1):
            logger.info(f"{i}. {article['title']}")
            logger.info(f"   Category: {article['category']} (score: {article['category_score']})")
            logger.info(f"   ID: {article['id']}")
        logger.info("To fix these, run: python scripts/fix_pending_status.py")
    else:
        logger.info("No misclassified PENDING articles found")

    logger.info("Summary:")
    logger.info(f"   - PENDING with category assigned: {report.with_category}")
    logger.info(f"   - PENDING without category (truly pending): {report.without_category}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check PENDING articles")
    parser.add_argument("--samples", type=int, default=5, help="Anomalies to print")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.samples)))
