#!/usr/bin/env python3
"""Reset FAILED articles to PENDING and queue them for classification again.

Usage:
    python scripts/retry_failed_classifications.py
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
        count = await MaintenanceService(async_session_factory, queue).retry_failed()
        logger.info(f"Successfully re-queued {count} article(s)")
        return 0
    except Exception:
        logger.exception("Error retrying failed classifications")
        return 1
    finally:
        await queue.close()
        await close_db()


if __name__ == "__main__":
    argparse.ArgumentParser(description="Retry FAILED article classifications").parse_args()
    sys.exit(asyncio.run(run()))
