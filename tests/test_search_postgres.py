"""Hybrid ranking against real rows.

Needs PostgreSQL with pgvector; set TEST_DATABASE_URL to a throwaway
database (tables are created and dropped here).
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from newsroom.cache import InMemoryCache
from newsroom.config import settings
from newsroom.db.models import Base
from newsroom.search import SearchParams, SearchService
from tests.conftest import make_article

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]


def _axis(index: int, sign: float = 1.0) -> list[float]:
    vector = [0.0] * settings.EMBEDDING_DIMENSIONS
    vector[index] = sign
    return vector


@pytest_asyncio.fixture
async def pg_session_factory():
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def _seed(session_factory) -> dict:
    rows = {
        "aligned": make_article(
            title="Ransomware hits hospitals",
            content="A ransomware attack took systems offline.",
            embedding=_axis(0),
        ),
        "wordy": make_article(
            title="Ransomware report",
            content="Ransomware trends: ransomware payments and ransomware groups.",
            embedding=_axis(1),
        ),
        "opposite": make_article(
            title="Ransomware roundup",
            content="Weekly ransomware news.",
            embedding=_axis(0, -1.0),
        ),
        "no_vector": make_article(
            title="Ransomware explained",
            content="What ransomware is and how it spreads.",
            embedding=None,
        ),
        "off_topic": make_article(
            title="New GPU launched",
            content="A faster graphics card.",
            embedding=_axis(0),
        ),
    }
    for n, article in enumerate(rows.values()):
        article.url = f"https://example.com/{n}"
        article.source_id = str(n)
    async with session_factory() as session:
        session.add_all(rows.values())
        await session.commit()
    return {str(article.id): name for name, article in rows.items()}


@pytest.mark.asyncio
async def test_ranked_rows_come_back_best_first(pg_session_factory) -> None:
    names = await _seed(pg_session_factory)
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=_axis(0))
    service = SearchService(pg_session_factory, InMemoryCache(), embedder=embedder)

    result = await service.search(SearchParams(query="ransomware"))

    ranked = [names[a["id"]] for a in result.articles]
    scores = {names[a["id"]]: a for a in result.articles}
    assert result.total == 4
    assert "off_topic" not in ranked
    assert ranked[0] == "aligned"
    hybrid = [a["hybrid_score"] for a in result.articles]
    assert hybrid == sorted(hybrid, reverse=True)
    assert scores["aligned"]["vector_score"] == pytest.approx(1.0)
    assert scores["opposite"]["vector_score"] == 0.0
    assert scores["no_vector"]["vector_score"] == 0.0
    assert all(0.0 <= a["vector_score"] <= 1.0 for a in result.articles)


@pytest.mark.asyncio
async def test_text_only_ranking_without_embedder(pg_session_factory) -> None:
    names = await _seed(pg_session_factory)
    service = SearchService(pg_session_factory, InMemoryCache())

    result = await service.search(SearchParams(query="ransomware"))

    ranked = [names[a["id"]] for a in result.articles]
    assert ranked[0] == "wordy"
    assert all(a["vector_score"] == 0.0 for a in result.articles)
    hybrid = [a["hybrid_score"] for a in result.articles]
    assert hybrid == sorted(hybrid, reverse=True)
