"""Repository module for database operations."""

from .articles import ArticleFilters, ArticleRepository, RankedArticle
from .base import BaseRepository

__all__ = [
    "ArticleFilters",
    "ArticleRepository",
    "BaseRepository",
    "RankedArticle",
]
