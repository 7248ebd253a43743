"""
FeedFlow Database Schema
========================

SQLite schema for the persistent storage adapter:
- feeds: subscriptions keyed by feed URL
- articles: stored articles, unique per (feed_url, url)
"""

import sqlite3
import logging

from .connection import DatabaseConnection

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the FeedFlow SQLite database."""

    TABLES = ("feeds", "articles")

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def create_tables(self) -> None:
        """Create all database tables and indexes."""
        with self.db.get_connection() as conn:
            self._create_feeds_table(conn)
            self._create_articles_table(conn)
            self._create_indexes(conn)
            conn.commit()
            logger.debug("Database schema created")

    def _create_feeds_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                url TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                site_url TEXT,
                icon_url TEXT,
                folder TEXT,
                last_fetched_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_articles_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id TEXT PRIMARY KEY,
                feed_url TEXT NOT NULL,
                guid TEXT NOT NULL,
                title TEXT NOT NULL,
                url TEXT NOT NULL,
                content TEXT,
                summary TEXT,
                author TEXT,
                published_at TIMESTAMP,
                image_url TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (feed_url, url),
                FOREIGN KEY (feed_url) REFERENCES feeds(url) ON DELETE CASCADE
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_articles_feed ON articles(feed_url)",
            "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at)",
            "CREATE INDEX IF NOT EXISTS idx_feeds_folder ON feeds(folder)",
        ]
        for index_sql in indexes:
            conn.execute(index_sql)

    def verify_schema(self) -> bool:
        """Check that every expected table exists."""
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        existing = {row["name"] for row in rows}
        missing = [table for table in self.TABLES if table not in existing]
        if missing:
            logger.error(f"Missing database tables: {', '.join(missing)}")
            return False
        return True
