"""SQLAlchemy ORM models for the news store."""

import enum
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Enum, Float, Index, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from newsroom.config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Category(str, enum.Enum):
    """Topical category assigned by the classifier."""

    CYBERSECURITY = "CYBERSECURITY"
    AI_EMERGING_TECH = "AI_EMERGING_TECH"
    SOFTWARE_DEVELOPMENT = "SOFTWARE_DEVELOPMENT"
    HARDWARE_DEVICES = "HARDWARE_DEVICES"
    TECH_INDUSTRY_BUSINESS = "TECH_INDUSTRY_BUSINESS"
    OTHER = "OTHER"


class ClassificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Article(Base):
    """News item ingested from an RSS feed or Reddit."""
    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_articles_source_source_id"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_category", "category"),
        Index("ix_articles_classification_status", "classification_status"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    source_id: Mapped[str] = mapped_column(String(200), nullable=False)
    author: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.current_timestamp()
    )

    # Classification
    category: Mapped[Optional[Category]] = mapped_column(
        Enum(Category, name="category"), nullable=True
    )
    category_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    classification_status: Mapped[ClassificationStatus] = mapped_column(
        Enum(ClassificationStatus, name="classification_status"),
        nullable=False,
        default=ClassificationStatus.PENDING,
        server_default=ClassificationStatus.PENDING.value,
    )
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict, server_default="{}")

    # Written by a separate UPDATE after insert, never loaded with the row
    embedding: Mapped[Optional[list[float]]] = mapped_column(
        Vector(settings.EMBEDDING_DIMENSIONS), nullable=True, deferred=True
    )

    def to_dict(self) -> dict:
        """Serialize without the embedding vector."""
        return {
            "id": str(self.id),
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "url": self.url,
            "source": self.source,
            "source_id": self.source_id,
            "author": self.author,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "category": self.category.value if self.category else None,
            "category_score": self.category_score,
            "classification_status": (
                self.classification_status.value if self.classification_status else None
            ),
            "metadata": self.metadata_ or {},
        }
