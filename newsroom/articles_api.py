"""REST API for article search and lookup."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query

from newsroom.config import settings
from newsroom.db.models import Category
from newsroom.dependencies import SearchServiceDep
from newsroom.search import SearchParams, SearchResult

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/articles", tags=["Articles"])


@router.post("/search", response_model=SearchResult)
async def search_articles(params: SearchParams, service: SearchServiceDep):
    """Hybrid search when a query is given, otherwise a filtered listing."""
    return await service.search(params)


@router.get("", response_model=SearchResult)
async def list_articles(
    service: SearchServiceDep,
    category: Optional[Category] = None,
    source: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=settings.SEARCH_MAX_LIMIT),
    offset: int = Query(0, ge=0),
):
    """List articles, most recent first."""
    params = SearchParams(
        category=category,
        source=source,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return await service.search(params)


@router.get("/stats/categories")
async def category_stats(service: SearchServiceDep) -> dict[str, int]:
    """Article count per category."""
    return await service.get_category_stats()


@router.get("/{article_id}")
async def get_article(article_id: UUID, service: SearchServiceDep):
    """Get a single article."""
    article = await service.get_article_by_id(article_id)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return article
