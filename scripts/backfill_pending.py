#!/usr/bin/env python3
"""Queue classification for PENDING articles whose enqueue was lost.

Usage:
    python scripts/backfill_pending.py [--limit N]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from newsroom.db.connection import async_session_factory, close_db
from newsroom.maintenance import MaintenanceService
from newsroom.workers.classification import create_classification_queue

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def run(limit: Optional[int]) -> int:
    queue = create_classification_queue()
    try:
        await MaintenanceService(async_session_factory, queue).backfill_pending(limit)
        return 0
    except Exception:
        logger.exception("Error queuing pending articles")
        return 1
    finally:
        await queue.close()
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Queue PENDING articles for classification")
    parser.add_argument("--limit", type=int, default=None, help="Maximum articles to queue")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.limit)))
