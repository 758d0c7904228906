"""Repository for articles: dedup lookups, classification state and search queries."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, literal_column, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.db.models import Article, Category, ClassificationStatus
from newsroom.db.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_TS_CONFIG = literal_column("'english'::regconfig")


@dataclass
class ArticleFilters:
    """Structured filters shared by listing, counting and ranked search."""

    category: Optional[Category] = None
    source: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def clauses(self) -> List[ColumnElement]:
        clauses = []
        if self.category is not None:
            clauses.append(Article.category == self.category)
        if self.source:
            clauses.append(Article.source == self.source)
        if self.start_date is not None:
            clauses.append(Article.published_at >= self.start_date)
        if self.end_date is not None:
            clauses.append(Article.published_at <= self.end_date)
        return clauses


@dataclass
class RankedArticle:
    """Article row with the scores it was ranked by."""

    article: Article
    text_rank: float
    vector_score: float
    hybrid_score: float


def document_vector() -> ColumnElement:
    """tsvector over title and body (matches ix_articles_fulltext)."""
    return func.to_tsvector(_TS_CONFIG, Article.title + " " + Article.content)


def text_query(query: str) -> ColumnElement:
    return func.plainto_tsquery(_TS_CONFIG, query)


class ArticleRepository(BaseRepository[Article]):
    """Repository for article operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Article)

    # -- dedup ---------------------------------------------------------------

    async def find_existing(
        self,
        source: str,
        source_id: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Optional[UUID]:
        """Return the id of an article matching the natural key or the URL."""
        conditions = []
        if source_id:
            conditions.append(and_(Article.source == source, Article.source_id == source_id))
        if url:
            conditions.append(Article.url == url)
        if not conditions:
            return None

        stmt = select(Article.id).where(or_(*conditions)).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # -- ingestion -----------------------------------------------------------

    async def create_pending(
        self,
        title: str,
        content: str,
        url: str,
        source: str,
        source_id: str,
        published_at: datetime,
        summary: Optional[str] = None,
        author: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Article:
        """Insert a PENDING article inside a savepoint.

        Raises sqlalchemy.exc.IntegrityError on a (source, source_id) or url
        conflict; the outer transaction stays usable.
        """
        async with self.session.begin_nested():
            article = Article(
                title=title,
                content=content,
                summary=summary,
                url=url,
                source=source,
                source_id=source_id,
                author=author,
                published_at=published_at,
                metadata_=metadata or {},
                category=None,
                category_score=None,
                classification_status=ClassificationStatus.PENDING,
            )
            self.session.add(article)
            await self.session.flush()
        await self.session.refresh(article)
        return article

    async def set_embedding(self, article_id: UUID, embedding: Sequence[float]) -> None:
        """Store the vector for an article."""
        stmt = (
            update(Article)
            .where(Article.id == article_id)
            .values(embedding=list(embedding))
        )
        await self.session.execute(stmt)

    # -- classification state -------------------------------------------------

    async def apply_classification(
        self,
        article_id: UUID,
        category: Category,
        score: float,
        metadata: dict,
    ) -> bool:
        """Set category, score, metadata and COMPLETED in one statement."""
        stmt = (
            update(Article)
            .where(Article.id == article_id)
            .values(
                category=category,
                category_score=score,
                classification_status=ClassificationStatus.COMPLETED,
                metadata_=metadata,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def mark_failed(self, article_id: UUID) -> bool:
        """Move an article to FAILED unless it already completed."""
        stmt = (
            update(Article)
            .where(
                and_(
                    Article.id == article_id,
                    Article.classification_status != ClassificationStatus.COMPLETED,
                )
            )
            .values(classification_status=ClassificationStatus.FAILED)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def reset_to_pending(self, article_ids: Sequence[UUID]) -> int:
        """Reset FAILED articles back to PENDING."""
        if not article_ids:
            return 0
        stmt = (
            update(Article)
            .where(
                and_(
                    Article.id.in_(list(article_ids)),
                    Article.classification_status == ClassificationStatus.FAILED,
                )
            )
            .values(classification_status=ClassificationStatus.PENDING)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def get_failed(self) -> List[Article]:
        """FAILED articles, newest first."""
        stmt = (
            select(Article)
            .where(Article.classification_status == ClassificationStatus.FAILED)
            .order_by(Article.published_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_pending(self, with_category: bool, limit: Optional[int] = None) -> List[Article]:
        """PENDING articles, either carrying a category (anomaly) or not."""
        category_clause = (
            Article.category.is_not(None) if with_category else Article.category.is_(None)
        )
        stmt = (
            select(Article)
            .where(
                and_(
                    Article.classification_status == ClassificationStatus.PENDING,
                    category_clause,
                )
            )
            .order_by(Article.fetched_at)
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def complete_pending_with_category(self) -> int:
        """Mark PENDING rows that already carry a category as COMPLETED.

        Category and score are left untouched.
        """
        stmt = (
            update(Article)
            .where(
                and_(
                    Article.classification_status == ClassificationStatus.PENDING,
                    Article.category.is_not(None),
                )
            )
            .values(classification_status=ClassificationStatus.COMPLETED)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def status_counts(self) -> dict[str, int]:
        """Article count per classification status."""
        stmt = (
            select(Article.classification_status, func.count(Article.id))
            .group_by(Article.classification_status)
        )
        result = await self.session.execute(stmt)
        return {status.value: count for status, count in result.all()}

    # -- search ----------------------------------------------------------------

    async def list_filtered(
        self, filters: ArticleFilters, limit: int, offset: int
    ) -> List[Article]:
        """Filtered listing, most recent first."""
        stmt = (
            select(Article)
            .where(*filters.clauses())
            .order_by(Article.published_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_filtered(self, filters: ArticleFilters) -> int:
        stmt = select(func.count(Article.id)).where(*filters.clauses())
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def search_ranked(
        self,
        query: str,
        filters: ArticleFilters,
        limit: int,
        offset: int,
        query_embedding: Optional[Sequence[float]] = None,
    ) -> tuple[List[RankedArticle], int]:
        """Full-text match ranked by ts_rank, blended with cosine similarity.

        The total comes from a window count over the same predicate, so page
        and total cannot drift apart under concurrent writes.
        """
        stmt = build_ranked_search(query, filters, limit, offset, query_embedding)
        result = await self.session.execute(stmt)
        rows = result.all()

        total = rows[0].total if rows else 0
        if not rows and offset > 0:
            # Page past the end: the window count has no row to ride on
            total = await self._count_matches(query, filters)

        ranked = [
            RankedArticle(
                article=row.Article,
                text_rank=float(row.text_rank or 0.0),
                vector_score=float(row.vector_score or 0.0),
                hybrid_score=float(row.hybrid_score or 0.0),
            )
            for row in rows
        ]
        return ranked, int(total)

    async def _count_matches(self, query: str, filters: ArticleFilters) -> int:
        stmt = select(func.count(Article.id)).where(
            document_vector().bool_op("@@")(text_query(query)),
            *filters.clauses(),
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def category_counts(self) -> dict[Category, int]:
        """Article count per assigned category (unclassified rows excluded)."""
        stmt = (
            select(Article.category, func.count(Article.id))
            .where(Article.category.is_not(None))
            .group_by(Article.category)
        )
        result = await self.session.execute(stmt)
        return {category: count for category, count in result.all()}


def build_ranked_search(
    query: str,
    filters: ArticleFilters,
    limit: int,
    offset: int,
    query_embedding: Optional[Sequence[float]] = None,
):
    """Build the hybrid ranking statement.

    Rows without a stored embedding get vector_score 0; negative
    similarities are clamped to 0.
    """
    tsquery = text_query(query)
    text_rank = func.ts_rank(document_vector(), tsquery)

    if query_embedding is not None:
        similarity = 1 - Article.embedding.cosine_distance(list(query_embedding))
        vector_score = func.greatest(func.coalesce(similarity, 0.0), 0.0)
        hybrid_score = text_rank + vector_score
    else:
        vector_score = literal_column("0.0")
        hybrid_score = text_rank

    return (
        select(
            Article,
            text_rank.label("text_rank"),
            vector_score.label("vector_score"),
            hybrid_score.label("hybrid_score"),
            func.count().over().label("total"),
        )
        .where(document_vector().bool_op("@@")(tsquery), *filters.clauses())
        .order_by(literal_column("hybrid_score").desc(), Article.published_at.desc())
        .offset(offset)
        .limit(limit)
    )
