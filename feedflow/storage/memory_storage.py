"""
In-memory storage backend, used for tests and one-shot command runs.
"""

from typing import Dict, Iterable, List, Sequence, Set

from .base import StoragePort
from ..database.models import ArticleRecord, FeedDescriptor, FeedUpdate
from ..utils.exceptions import StorageError
from ..utils.logging import get_logger_for_component


class InMemoryStorage(StoragePort):
    """Dictionary-backed storage keyed by feed URL."""

    def __init__(self, feeds: Iterable[FeedDescriptor] = ()):
        self.logger = get_logger_for_component("memory_storage")
        self._feeds: Dict[str, FeedDescriptor] = {}
        self._articles: Dict[str, List[ArticleRecord]] = {}
        self.commit_count = 0
        self.add_feeds(feeds)

    def add_feed(self, feed: FeedDescriptor) -> bool:
        """Add a feed; returns False if the URL is already subscribed."""
        if feed.url in self._feeds:
            return False
        self._feeds[feed.url] = feed
        self._articles.setdefault(feed.url, [])
        return True

    def add_feeds(self, feeds: Iterable[FeedDescriptor]) -> int:
        return sum(1 for feed in feeds if self.add_feed(feed))

    def get_feed(self, url: str):
        return self._feeds.get(url)

    def list_feeds(self) -> List[FeedDescriptor]:
        return list(self._feeds.values())

    def known_article_urls(self, feed_url: str) -> Set[str]:
        return {article.url for article in self._articles.get(feed_url, [])}

    def articles_for(self, feed_url: str) -> List[ArticleRecord]:
        return list(self._articles.get(feed_url, []))

    def apply_refresh(
        self,
        feed_updates: Sequence[FeedUpdate],
        new_articles: Sequence[ArticleRecord],
    ) -> None:
        for update in feed_updates:
            if update.feed_url not in self._feeds:
                raise StorageError(
                    f"Unknown feed: {update.feed_url}", operation="apply_refresh"
                )

        for update in feed_updates:
            self._feeds[update.feed_url] = update.apply_to(self._feeds[update.feed_url])

        inserted = 0
        for article in new_articles:
            stored = self._articles.setdefault(article.feed_url, [])
            if any(existing.url == article.url for existing in stored):
                continue
            stored.append(article)
            inserted += 1

        self.commit_count += 1
        self.logger.debug(
            f"Applied {len(feed_updates)} feed updates and {inserted} new articles"
        )
