"""RSS/Atom feed fetcher using feedparser."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import feedparser
import httpx

from newsroom.config import settings
from newsroom.errors import SourceRateLimitedError, parse_retry_after_header

logger = logging.getLogger(__name__)

USER_AGENT = "IT-News-Bot/1.0"


@dataclass
class FeedEntry:
    """Parsed feed entry."""
    title: str
    url: str
    guid: Optional[str]
    author: Optional[str]
    published: Optional[datetime]
    content: Optional[str]  # content:encoded when present, else description
    summary: Optional[str]
    categories: List[str] = field(default_factory=list)


def _entry_date(entry) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    # feedparser normalises struct_time to UTC
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def _entry_categories(entry) -> List[str]:
    terms = []
    for tag in entry.get("tags") or []:
        term = (tag.get("term") or "").strip()
        if term and term not in terms:
            terms.append(term)
    return terms


def parse_entries(raw: str) -> Tuple[Optional[List[FeedEntry]], Optional[str]]:
    """Parse feed XML into entries.

    Returns:
        Tuple of (entries or None, error message or None)
    """
    parsed = feedparser.parse(raw)

    if parsed.bozo and not parsed.entries:
        return None, f"Feed parse error: {parsed.bozo_exception}"

    entries = []
    for entry in parsed.entries:
        link = entry.get("link")
        if not link:
            continue

        summary = entry.get("summary")
        content = None
        if entry.get("content"):
            content = entry.content[0].get("value", "")
        content = content or summary

        entries.append(
            FeedEntry(
                title=(entry.get("title") or "Untitled").strip(),
                url=link,
                guid=entry.get("id") or entry.get("guid"),
                author=entry.get("author"),
                published=_entry_date(entry),
                content=content,
                summary=summary,
                categories=_entry_categories(entry),
            )
        )

    return entries, None


async def fetch_feed(
    feed_url: str, timeout: Optional[float] = None
) -> Tuple[Optional[List[FeedEntry]], Optional[str]]:
    """
    Fetch and parse an RSS/Atom feed.

    Returns:
        Tuple of (entries or None, error message or None)

    Raises:
        SourceRateLimitedError: the feed host answered 429.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout or settings.FETCH_TIMEOUT_SECONDS) as client:
            response = await client.get(
                feed_url,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
            if response.status_code == 429:
                raise SourceRateLimitedError(
                    feed_url,
                    parse_retry_after_header(
                        response.headers.get("Retry-After"), settings.RATE_LIMIT_DEFAULT_DELAY
                    ),
                )
            response.raise_for_status()
            raw = response.text
    except httpx.HTTPError as e:
        return None, f"HTTP error: {e}"

    try:
        return parse_entries(raw)
    except Exception as e:
        logger.exception(f"Error parsing feed {feed_url}")
        return None, f"Error: {e}"
