"""Deduplication gate: fast cache check backed by the authoritative store."""

import enum
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.cache import AbstractCache
from newsroom.config import settings
from newsroom.db.repositories.articles import ArticleRepository

logger = logging.getLogger(__name__)


class DedupDecision(str, enum.Enum):
    SEEN = "seen"
    NEW = "new"


def marker_key(source: str, identity: str) -> str:
    return f"seen:{source}:{identity}"


class DedupGate:
    """Decides whether a source item was already ingested.

    A marker in the cache means "recently seen"; its absence proves nothing,
    so a miss falls through to the store. The store's unique constraints
    remain the final arbiter when two producers race past the gate.
    """

    def __init__(self, cache: AbstractCache, ttl: Optional[int] = None):
        self.cache = cache
        self.ttl = ttl or settings.DEDUP_TTL_SECONDS

    async def check(
        self,
        session: AsyncSession,
        source: str,
        identity: str,
        url: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> DedupDecision:
        key = marker_key(source, identity)
        try:
            if await self.cache.exists(key):
                logger.debug(f"Item {identity} already processed (cache)")
                return DedupDecision.SEEN
        except Exception as e:
            logger.warning(f"Dedup cache lookup failed, checking store: {e}")

        existing = await ArticleRepository(session).find_existing(
            source, source_id=source_id, url=url
        )
        if existing is not None:
            await self.mark_seen(source, identity)
            return DedupDecision.SEEN

        return DedupDecision.NEW

    async def mark_seen(self, source: str, identity: str) -> None:
        try:
            await self.cache.set(marker_key(source, identity), "1", self.ttl)
        except Exception as e:
            logger.warning(f"Failed to write dedup marker for {identity}: {e}")
