"""
Storage Port
============

The three operations the refresh pipeline needs from a storage backend.
Implementations raise StorageError from apply_refresh when the batch
cannot be committed.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence, Set

from ..database.models import ArticleRecord, FeedDescriptor, FeedUpdate


class StoragePort(ABC):
    """Storage backend consumed by the refresh manager."""

    @abstractmethod
    def list_feeds(self) -> List[FeedDescriptor]:
        """Return every subscribed feed."""

    @abstractmethod
    def known_article_urls(self, feed_url: str) -> Set[str]:
        """Return the article URLs already stored for a feed."""

    @abstractmethod
    def apply_refresh(
        self,
        feed_updates: Sequence[FeedUpdate],
        new_articles: Sequence[ArticleRecord],
    ) -> None:
        """Persist feed metadata updates and new articles as one batch.

        Raises:
            StorageError: If the batch cannot be committed
        """
