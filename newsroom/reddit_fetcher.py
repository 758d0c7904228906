"""Reddit fetcher for the public JSON listing (no OAuth)."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import httpx

from newsroom.config import settings
from newsroom.errors import SourceRateLimitedError, parse_retry_after_header

logger = logging.getLogger(__name__)

LISTING_URL = "https://www.reddit.com/r/{subreddit}/new.json"


@dataclass
class RedditPost:
    """One post from a subreddit listing."""
    id: str
    title: str
    selftext: str
    url: str
    permalink: str  # absolute
    author: Optional[str]
    created_at: datetime
    score: int
    num_comments: int
    subreddit: str

    @property
    def is_external(self) -> bool:
        """True when the post links somewhere other than reddit itself."""
        return bool(self.url) and "reddit.com" not in self.url


def parse_listing(payload: dict, subreddit: str) -> List[RedditPost]:
    posts = []
    for child in payload.get("data", {}).get("children", []):
        data = child.get("data") or {}
        if not data.get("id") or not data.get("title"):
            continue
        permalink = f"https://reddit.com{data.get('permalink', '')}"
        posts.append(
            RedditPost(
                id=data["id"],
                title=data["title"].strip(),
                selftext=data.get("selftext") or "",
                url=data.get("url") or permalink,
                permalink=permalink,
                author=data.get("author"),
                created_at=datetime.fromtimestamp(data.get("created_utc", 0), tz=timezone.utc),
                score=data.get("score", 0),
                num_comments=data.get("num_comments", 0),
                subreddit=data.get("subreddit") or subreddit,
            )
        )
    return posts


async def fetch_subreddit(
    subreddit: str,
    limit: Optional[int] = None,
    timeout: Optional[float] = None,
) -> Tuple[Optional[List[RedditPost]], Optional[str]]:
    """
    Fetch the newest posts of a subreddit.

    Returns:
        Tuple of (posts or None, error message or None)

    Raises:
        SourceRateLimitedError: reddit answered 429.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout or settings.FETCH_TIMEOUT_SECONDS) as client:
            response = await client.get(
                LISTING_URL.format(subreddit=subreddit),
                params={"limit": limit or settings.REDDIT_POSTS_PER_FETCH},
                headers={"User-Agent": settings.REDDIT_USER_AGENT},
                follow_redirects=True,
            )
            if response.status_code == 429:
                raise SourceRateLimitedError(
                    f"r/{subreddit}",
                    parse_retry_after_header(
                        response.headers.get("Retry-After"), settings.RATE_LIMIT_DEFAULT_DELAY
                    ),
                )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as e:
        return None, f"HTTP error: {e}"
    except ValueError as e:
        return None, f"Invalid JSON from r/{subreddit}: {e}"

    return parse_listing(payload, subreddit), None
