"""
SQLite Storage
==============

Persistent storage backend used by the command line tool. Feed metadata
updates and new articles from a refresh are written in one transaction.
"""

import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set

from .base import StoragePort
from ..database.connection import DatabaseConnection
from ..database.models import ArticleRecord, FeedDescriptor, FeedUpdate
from ..database.schema import DatabaseSchema
from ..utils.exceptions import StorageError, ErrorCode
from ..utils.logging import get_logger_for_component


def _to_db(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SQLiteStorage(StoragePort):
    """Storage port backed by the feeds/articles SQLite schema."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize storage and create the schema if needed.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("sqlite_storage")
        try:
            DatabaseSchema(self.db).create_tables()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create schema: {e}", operation="create_tables") from e

    @classmethod
    def from_path(cls, db_path: str) -> "SQLiteStorage":
        return cls(DatabaseConnection(db_path))

    # Feed management

    def add_feed(self, feed: FeedDescriptor) -> bool:
        """Add a feed subscription.

        Returns:
            True if the feed was inserted, False if it already existed

        Raises:
            StorageError: If the database operation fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO feeds (
                        url, title, site_url, icon_url, folder, last_fetched_at, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        feed.url,
                        feed.title,
                        feed.site_url,
                        feed.icon_url,
                        feed.folder,
                        _to_db(feed.last_fetched_at),
                        _to_db(feed.created_at),
                    ),
                )
                conn.commit()

            if cursor.rowcount > 0:
                self.logger.info(f"Added feed {feed.url}")
                return True
            return False

        except sqlite3.Error as e:
            self.logger.error(f"Failed to add feed {feed.url}: {e}")
            raise StorageError(f"Failed to add feed: {e}", operation="add_feed") from e

    def add_feeds(self, feeds: Iterable[FeedDescriptor]) -> int:
        return sum(1 for feed in feeds if self.add_feed(feed))

    def remove_feed(self, url: str) -> bool:
        """Delete a feed and its articles."""
        try:
            with self.db.transaction() as conn:
                conn.execute("DELETE FROM articles WHERE feed_url = ?", (url,))
                cursor = conn.execute("DELETE FROM feeds WHERE url = ?", (url,))

            if cursor.rowcount > 0:
                self.logger.info(f"Removed feed {url}")
                return True
            self.logger.warning(f"No feed found with URL {url}")
            return False

        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove feed: {e}", operation="remove_feed") from e

    def get_feed(self, url: str) -> Optional[FeedDescriptor]:
        try:
            row = self.db.execute_one("SELECT * FROM feeds WHERE url = ?", (url,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to get feed: {e}", operation="get_feed") from e
        return self._row_to_feed(row) if row else None

    def list_feeds(self) -> List[FeedDescriptor]:
        try:
            rows = self.db.execute_query("SELECT * FROM feeds ORDER BY created_at, url")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list feeds: {e}", operation="list_feeds") from e
        return [self._row_to_feed(row) for row in rows]

    # Articles

    def known_article_urls(self, feed_url: str) -> Set[str]:
        try:
            rows = self.db.execute_query(
                "SELECT url FROM articles WHERE feed_url = ?", (feed_url,)
            )
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to read article URLs: {e}", operation="known_article_urls"
            ) from e
        return {row["url"] for row in rows}

    def get_articles(
        self, feed_url: Optional[str] = None, limit: int = 50
    ) -> List[ArticleRecord]:
        """Most recent articles, optionally for a single feed."""
        query = "SELECT * FROM articles"
        params: tuple = ()
        if feed_url:
            query += " WHERE feed_url = ?"
            params = (feed_url,)
        query += " ORDER BY COALESCE(published_at, created_at) DESC LIMIT ?"
        params += (limit,)

        try:
            rows = self.db.execute_query(query, params)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to get articles: {e}", operation="get_articles") from e
        return [self._row_to_article(row) for row in rows]

    def apply_refresh(
        self,
        feed_updates: Sequence[FeedUpdate],
        new_articles: Sequence[ArticleRecord],
    ) -> None:
        try:
            with self.db.transaction() as conn:
                for update in feed_updates:
                    row = conn.execute(
                        "SELECT * FROM feeds WHERE url = ?", (update.feed_url,)
                    ).fetchone()
                    if row is None:
                        raise StorageError(
                            f"Unknown feed: {update.feed_url}",
                            operation="apply_refresh",
                            error_code=ErrorCode.STORAGE_CONSTRAINT,
                        )
                    feed = update.apply_to(self._row_to_feed(row))
                    conn.execute(
                        """
                        UPDATE feeds
                        SET title = ?, site_url = ?, icon_url = ?, last_fetched_at = ?
                        WHERE url = ?
                    """,
                        (
                            feed.title,
                            feed.site_url,
                            feed.icon_url,
                            _to_db(feed.last_fetched_at),
                            feed.url,
                        ),
                    )

                conn.executemany(
                    """
                    INSERT OR IGNORE INTO articles (
                        id, feed_url, guid, title, url, content, summary,
                        author, published_at, image_url, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    [
                        (
                            article.id,
                            article.feed_url,
                            article.guid,
                            article.title,
                            article.url,
                            article.content,
                            article.summary,
                            article.author,
                            _to_db(article.published_at),
                            article.image_url,
                            _to_db(article.created_at),
                        )
                        for article in new_articles
                    ],
                )

            self.logger.debug(
                f"Committed {len(feed_updates)} feed updates and {len(new_articles)} articles"
            )

        except sqlite3.Error as e:
            self.logger.error(f"Failed to apply refresh: {e}")
            raise StorageError(f"Failed to apply refresh: {e}", operation="apply_refresh") from e

    def _row_to_feed(self, row) -> FeedDescriptor:
        return FeedDescriptor(
            url=row["url"],
            title=row["title"] or "",
            site_url=row["site_url"],
            icon_url=row["icon_url"],
            folder=row["folder"],
            last_fetched_at=row["last_fetched_at"],
            created_at=row["created_at"],
        )

    def _row_to_article(self, row) -> ArticleRecord:
        return ArticleRecord(
            id=row["id"],
            feed_url=row["feed_url"],
            guid=row["guid"],
            title=row["title"],
            url=row["url"],
            content=row["content"],
            summary=row["summary"],
            author=row["author"],
            published_at=row["published_at"],
            image_url=row["image_url"],
            created_at=row["created_at"],
        )
