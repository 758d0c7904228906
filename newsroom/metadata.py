"""Article metadata: per-source variants plus the classification enrichment."""

import logging
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from newsroom.db.models import Category

logger = logging.getLogger(__name__)


class _BaseMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: Optional[str] = None
    author: Optional[str] = None
    fetched_at: Optional[str] = None


class RssMetadata(_BaseMetadata):
    """Fields carried by RSS items."""

    type: Literal["rss"] = "rss"
    feed_url: Optional[str] = None
    rss_categories: Optional[list[str]] = None
    guid: Optional[str] = None


class RedditMetadata(_BaseMetadata):
    """Fields carried by Reddit posts."""

    type: Literal["reddit"] = "reddit"
    subreddit: str
    score: Optional[int] = None
    num_comments: Optional[int] = None
    permalink: Optional[str] = None
    external_url: Optional[str] = None


class UnknownMetadata(_BaseMetadata):
    type: Literal["unknown"] = "unknown"


SourceMetadata = Annotated[
    Union[RssMetadata, RedditMetadata, UnknownMetadata],
    Field(discriminator="type"),
]

_source_adapter = TypeAdapter(SourceMetadata)


class SecondaryCategory(BaseModel):
    category: Category
    confidence: float = Field(..., ge=0, le=1)


class ClassificationEnrichment(BaseModel):
    """Added to the stored metadata once an article is classified."""

    secondary_categories: list[SecondaryCategory] = Field(default_factory=list)
    classification_reasoning: Optional[str] = None
    classified_at: datetime


def parse_source_metadata(raw: Optional[dict]) -> Union[RssMetadata, RedditMetadata, UnknownMetadata]:
    """Load stored metadata into its variant; anything unrecognised is 'unknown'."""
    if not raw:
        return UnknownMetadata()
    try:
        return _source_adapter.validate_python(raw)
    except ValidationError as e:
        logger.debug(f"Unrecognised metadata, treating as unknown: {e}")
        return UnknownMetadata(
            source=raw.get("source"),
            author=raw.get("author"),
            fetched_at=raw.get("fetched_at"),
        )


def source_hints(raw: Optional[dict]) -> list[str]:
    """Category hints a source supplied (RSS <category> tags)."""
    metadata = parse_source_metadata(raw)
    if isinstance(metadata, RssMetadata) and metadata.rss_categories:
        return [c.strip() for c in metadata.rss_categories if c and c.strip()]
    return []


def enrich(raw: Optional[dict], enrichment: ClassificationEnrichment) -> dict:
    """Merge the enrichment record into stored metadata, keeping source fields."""
    merged = dict(raw or {})
    merged["classified_at"] = enrichment.classified_at.isoformat()
    if enrichment.secondary_categories:
        merged["secondary_categories"] = [
            entry.model_dump(mode="json") for entry in enrichment.secondary_categories
        ]
    else:
        merged.pop("secondary_categories", None)
    if enrichment.classification_reasoning:
        merged["classification_reasoning"] = enrichment.classification_reasoning
    return merged
