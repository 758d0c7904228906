"""Shared fakes for service tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest

from newsroom.db.models import Article, ClassificationStatus


class _SessionContext:
    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSessionFactory:
    """Stands in for async_sessionmaker; every call hands out a fresh mock session."""

    def __init__(self):
        self.sessions = []

    def __call__(self):
        session = AsyncMock()
        session.add = MagicMock()
        session.expunge = MagicMock()
        self.sessions.append(session)
        return _SessionContext(session)


def make_article(**overrides) -> Article:
    values = dict(
        id=uuid4(),
        title="Critical OpenSSL flaw patched",
        content="A remote code execution bug in OpenSSL was fixed today.",
        summary=None,
        url="https://example.com/openssl",
        source="arstechnica",
        source_id="abc123",
        author="Jane Doe",
        published_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        category=None,
        category_score=None,
        classification_status=ClassificationStatus.PENDING,
        metadata_={"type": "rss", "rss_categories": ["Security"]},
    )
    values.update(overrides)
    return Article(**values)


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


def mock_client_factory(handler):
    """httpx.AsyncClient replacement that answers every request with ``handler``."""
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    return factory
