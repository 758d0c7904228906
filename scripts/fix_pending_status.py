#!/usr/bin/env python3
"""Mark PENDING articles that already carry a category as COMPLETED.

Usage:
    python scripts/fix_pending_status.py
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
        updated = await MaintenanceService(async_session_factory, queue).reconcile_pending()
        if updated:
            logger.info(f"Fixed {updated} PENDING article(s) that were already classified")
        return 0
    except Exception:
        logger.exception("Error fixing pending status")
        return 1
    finally:
        await queue.close()
        await close_db()


if __name__ == "__main__":
    argparse.ArgumentParser(description="Repair PENDING articles that have a category").parse_args()
    sys.exit(asyncio.run(run()))
