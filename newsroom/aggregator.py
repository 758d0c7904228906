"""Pull items from the configured sources and hand them to ingestion."""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from newsroom.config import settings
from newsroom.errors import SourceRateLimitedError
from newsroom.ingestion import IngestionService, IngestItem, truncate
from newsroom.metadata import RedditMetadata, RssMetadata
from newsroom.reddit_fetcher import RedditPost, fetch_subreddit
from newsroom.rss_fetcher import FeedEntry, fetch_feed

logger = logging.getLogger(__name__)

REDDIT_SOURCE = "reddit"


class RssAggregator:
    """Fetches every configured feed and stores unseen entries."""

    def __init__(self, ingestion: IngestionService, feeds: Optional[Dict[str, str]] = None):
        self.ingestion = ingestion
        self.feeds = feeds if feeds is not None else settings.rss_feed_map()

    def build_item(self, entry: FeedEntry, source: str) -> IngestItem:
        return IngestItem(
            title=entry.title,
            content=entry.content or entry.summary or "",
            summary=entry.summary,
            url=entry.url,
            source=source,
            source_id=hashlib.md5(entry.url.encode()).hexdigest(),
            author=entry.author,
            published_at=entry.published or datetime.now(timezone.utc),
            metadata=RssMetadata(
                source=source,
                author=entry.author,
                feed_url=self.feeds.get(source),
                rss_categories=entry.categories or None,
                guid=entry.guid,
            ),
        )

    async def aggregate_and_store(self) -> int:
        """Store new entries from every feed.

        Feeds live on different hosts, so a throttled feed does not stop the
        others; the longest rate-limit wait is raised once all feeds ran.
        """
        stored_count = 0
        throttled: Optional[SourceRateLimitedError] = None
        for name, url in self.feeds.items():
            logger.info(f"Fetching RSS feed: {url}")
            try:
                entries, error = await fetch_feed(url)
            except SourceRateLimitedError as e:
                logger.warning(f"Feed {name} is rate limiting us, retry after {e.retry_after}s")
                if throttled is None or e.retry_after > throttled.retry_after:
                    throttled = e
                continue
            if error:
                logger.error(f"Failed to aggregate from {name}: {error}")
                continue

            stored_here = 0
            for entry in entries:
                if await self._store(entry, name):
                    stored_here += 1
            stored_count += stored_here
            logger.info(f"Processed {len(entries)} items from {name}, stored {stored_here} new articles")

        if throttled is not None:
            logger.info(f"Stored {stored_count} new articles before rate limit")
            raise throttled
        return stored_count

    async def _store(self, entry: FeedEntry, source: str) -> bool:
        try:
            result = await self.ingestion.ingest_item(self.build_item(entry, source), entry.url)
        except Exception as e:
            logger.error(f"Error storing feed item {entry.url}: {e}")
            return False
        return result.stored


class RedditAggregator:
    """Fetches the newest posts of each configured subreddit."""

    def __init__(self, ingestion: IngestionService, subreddits: Optional[List[str]] = None):
        self.ingestion = ingestion
        self.subreddits = subreddits if subreddits is not None else list(settings.REDDIT_SUBREDDITS)

    def build_item(self, post: RedditPost) -> IngestItem:
        # Self posts carry their text; link posts fall back to the title
        content = post.selftext or post.title
        return IngestItem(
            title=post.title,
            content=content,
            summary=truncate(content, settings.SUMMARY_MAX_CHARS),
            url=post.permalink,
            source=REDDIT_SOURCE,
            source_id=post.id,
            author=post.author or "deleted",
            published_at=post.created_at,
            metadata=RedditMetadata(
                source=REDDIT_SOURCE,
                author=post.author,
                subreddit=post.subreddit,
                score=post.score,
                num_comments=post.num_comments,
                permalink=post.permalink,
                external_url=post.url if post.is_external else None,
            ),
        )

    async def aggregate_and_store(self) -> int:
        stored_count = 0
        for subreddit in self.subreddits:
            logger.info(f"Fetching posts from r/{subreddit}")
            # SourceRateLimitedError propagates: every subreddit shares one host
            posts, error = await fetch_subreddit(subreddit)
            if error:
                logger.error(f"Failed to aggregate from r/{subreddit}: {error}")
                continue

            stored_here = 0
            for post in posts:
                if await self._store(post):
                    stored_here += 1
            stored_count += stored_here
            logger.info(f"Processed {len(posts)} posts from r/{subreddit}, stored {stored_here} new articles")

        return stored_count

    async def _store(self, post: RedditPost) -> bool:
        try:
            result = await self.ingestion.ingest_item(self.build_item(post), post.id)
        except Exception as e:
            logger.error(f"Error storing post {post.id}: {e}")
            return False
        return result.stored
