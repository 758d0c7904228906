"""Database module for the news store."""

from .connection import async_session_factory, close_db, engine, get_session, init_db
from .models import Article, Base, Category, ClassificationStatus

__all__ = [
    "async_session_factory",
    "close_db",
    "engine",
    "get_session",
    "init_db",
    "Article",
    "Base",
    "Category",
    "ClassificationStatus",
]
