"""Article search: filtered listing and hybrid (full-text + vector) ranking."""

import asyncio
import hashlib
import json
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.cache import AbstractCache
from newsroom.config import settings
from newsroom.db.models import Category
from newsroom.db.repositories.articles import ArticleFilters, ArticleRepository
from newsroom.embedder import Embedder

logger = logging.getLogger(__name__)


class SearchParams(BaseModel):
    query: Optional[str] = None
    category: Optional[Category] = None
    source: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=settings.SEARCH_MAX_LIMIT)
    offset: int = Field(0, ge=0)

    @property
    def normalized_query(self) -> Optional[str]:
        if self.query is None:
            return None
        return self.query.strip() or None

    def filters(self) -> ArticleFilters:
        return ArticleFilters(
            category=self.category,
            source=self.source,
            start_date=self.start_date,
            end_date=self.end_date,
        )

    def fingerprint(self) -> str:
        """Stable hash of the normalized parameters."""
        normalized = {
            "query": self.normalized_query.lower() if self.normalized_query else None,
            "category": self.category.value if self.category else None,
            "source": self.source,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "limit": self.limit,
            "offset": self.offset,
        }
        payload = json.dumps(normalized, sort_keys=True)
        return hashlib.md5(payload.encode()).hexdigest()


class SearchResult(BaseModel):
    articles: List[dict]
    total: int
    limit: int
    offset: int


def cache_key(params: SearchParams) -> str:
    return f"search:{params.fingerprint()}"


class SearchService:
    """Read side of the article store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: AbstractCache,
        embedder: Optional[Embedder] = None,
        ttl: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.embedder = embedder
        self.ttl = ttl or settings.SEARCH_CACHE_TTL_SECONDS

    async def search(self, params: SearchParams) -> SearchResult:
        query = params.normalized_query
        if not query:
            return await self._list(params)

        key = cache_key(params)
        cached = await self._cache_get(key)
        if cached is not None:
            logger.debug(f"Search cache hit for '{query}'")
            return cached

        result = await self._ranked(query, params)
        await self._cache_set(key, result)
        return result

    async def _list(self, params: SearchParams) -> SearchResult:
        filters = params.filters()

        async def page() -> List[dict]:
            async with self.session_factory() as session:
                articles = await ArticleRepository(session).list_filtered(
                    filters, params.limit, params.offset
                )
                return [article.to_dict() for article in articles]

        async def count() -> int:
            async with self.session_factory() as session:
                return await ArticleRepository(session).count_filtered(filters)

        articles, total = await asyncio.gather(page(), count())
        return SearchResult(articles=articles, total=total, limit=params.limit, offset=params.offset)

    async def _ranked(self, query: str, params: SearchParams) -> SearchResult:
        query_embedding = await self._embed_query(query)

        async with self.session_factory() as session:
            ranked, total = await ArticleRepository(session).search_ranked(
                query,
                params.filters(),
                params.limit,
                params.offset,
                query_embedding=query_embedding,
            )
            articles = []
            for row in ranked:
                data = row.article.to_dict()
                data["text_rank"] = row.text_rank
                data["vector_score"] = row.vector_score
                data["hybrid_score"] = row.hybrid_score
                articles.append(data)

        return SearchResult(articles=articles, total=total, limit=params.limit, offset=params.offset)

    async def _embed_query(self, query: str) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        try:
            return await self.embedder.embed(query)
        except Exception as e:
            logger.warning(f"Query embedding failed, falling back to text ranking: {e}")
            return None

    async def _cache_get(self, key: str) -> Optional[SearchResult]:
        try:
            raw = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Search cache read failed: {e}")
            return None
        if raw is None:
            return None
        try:
            return SearchResult.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable search cache entry {key}: {e}")
            return None

    async def _cache_set(self, key: str, result: SearchResult) -> None:
        try:
            await self.cache.set(key, result.model_dump_json(), self.ttl)
        except Exception as e:
            logger.warning(f"Search cache write failed: {e}")

    async def get_category_stats(self) -> dict[str, int]:
        """Article count for every category, zero where none exist."""
        async with self.session_factory() as session:
            counts = await ArticleRepository(session).category_counts()
        return {category.value: counts.get(category, 0) for category in Category}

    async def get_article_by_id(self, article_id: UUID) -> Optional[dict]:
        async with self.session_factory() as session:
            article = await ArticleRepository(session).get_by_id(article_id)
            return article.to_dict() if article else None
