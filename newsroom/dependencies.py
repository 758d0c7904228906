"""FastAPI dependencies for the services built at startup."""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.cache import AbstractCache, create_cache
from newsroom.config import settings
from newsroom.db.connection import async_session_factory, get_session
from newsroom.embedder import Embedder
from newsroom.llm_client import create_client
from newsroom.search import SearchService


def build_embedder() -> Optional[Embedder]:
    """Embedder when an LLM key is configured, otherwise None (lexical search only)."""
    if not settings.LLM_API_KEY:
        return None
    return Embedder(create_client())


def init_services(app: FastAPI, cache: Optional[AbstractCache] = None) -> None:
    """Attach shared clients and services to the app."""
    cache = cache or create_cache(settings.REDIS_URL)
    app.state.cache = cache
    app.state.search_service = SearchService(async_session_factory, cache, build_embedder())


async def close_services(app: FastAPI) -> None:
    cache = getattr(app.state, "cache", None)
    if cache is not None:
        await cache.close()


# Session dependency
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in get_session():
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_search_service(request: Request) -> SearchService:
    """Get the search service."""
    return request.app.state.search_service


SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]
