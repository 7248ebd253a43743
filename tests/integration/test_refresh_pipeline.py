"""
End-to-End Refresh Pipeline Tests
=================================

OPML import into SQLite, concurrent refresh through the normalizer,
metadata backfill, OPML export and scheduled refreshes.
"""

import asyncio

import pytest

from feedflow.database.models import FeedDescriptor
from feedflow.ingestion.content_extractor import ContentExtractor
from feedflow.ingestion.feed_normalizer import FeedNormalizer
from feedflow.ingestion.opml import OPMLCodec
from feedflow.processing.refresh_manager import RefreshManager
from feedflow.storage.sqlite_storage import SQLiteStorage

pytestmark = pytest.mark.integration

SUBSCRIPTIONS = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="1.0">
  <head><title>Reader export</title></head>
  <body>
    <outline type="rss" xmlUrl="https://example.com/feed.xml"/>
    <outline text="Blogs">
      <outline type="rss" text="My Atom Feed" xmlUrl="https://example.org/feed.atom"
               htmlUrl="https://example.org/"/>
    </outline>
    <outline type="rss" text="" xmlUrl="https://json.example.com/feed.json"/>
  </body>
</opml>
"""


@pytest.fixture
def storage(tmp_path):
    return SQLiteStorage.from_path(str(tmp_path / "pipeline.db"))


@pytest.fixture
def imported(storage):
    codec = OPMLCodec()
    document = codec.parse(SUBSCRIPTIONS)
    storage.add_feeds(document.to_descriptors())
    return document


class TestRefreshPipeline:
    """Full pipeline over the SQLite storage."""

    def test_import_uses_host_placeholders(self, imported, storage):
        assert imported.title == "Reader export"
        feeds = {feed.url: feed for feed in storage.list_feeds()}

        assert feeds["https://example.com/feed.xml"].title == "example.com"
        assert feeds["https://example.org/feed.atom"].folder == "Blogs"
        assert feeds["https://json.example.com/feed.json"].title == "json.example.com"

    @pytest.mark.asyncio
    async def test_refresh_backfill_and_export(self, imported, storage, served_feeds):
        manager = RefreshManager(storage, FeedNormalizer(served_feeds))

        report = await manager.refresh_all()
        assert report.succeeded == 3
        assert report.new_articles == 6

        feeds = {feed.url: feed for feed in storage.list_feeds()}
        assert feeds["https://example.com/feed.xml"].title == "Example Blog"
        assert feeds["https://example.org/feed.atom"].title == "My Atom Feed"
        assert feeds["https://json.example.com/feed.json"].title == "JSON Example"
        assert feeds["https://example.com/feed.xml"].site_url == "https://example.com/"
        assert all(feed.last_fetched_at is not None for feed in feeds.values())

        exported = OPMLCodec().export(OPMLCodec.from_descriptors(storage.list_feeds()), "Backup")
        reimported = OPMLCodec().parse(exported)

        assert reimported.title == "Backup"
        assert {(feed.title, feed.feed_url, feed.folder) for feed in reimported.feeds} == {
            ("Example Blog", "https://example.com/feed.xml", None),
            ("My Atom Feed", "https://example.org/feed.atom", "Blogs"),
            ("JSON Example", "https://json.example.com/feed.json", None),
        }

    @pytest.mark.asyncio
    async def test_second_refresh_is_idempotent(self, imported, storage, served_feeds):
        manager = RefreshManager(storage, FeedNormalizer(served_feeds))
        await manager.refresh_all()
        first_fetch = storage.get_feed("https://example.com/feed.xml").last_fetched_at

        report = await manager.refresh_all()

        assert report.new_articles == 0
        assert len(storage.get_articles(limit=100)) == 6
        assert storage.get_feed("https://example.com/feed.xml").last_fetched_at >= first_fetch

    @pytest.mark.asyncio
    async def test_partial_failure_commits_the_rest(self, imported, storage, served_feeds):
        served_feeds.fail("https://json.example.com/feed.json")
        manager = RefreshManager(storage, FeedNormalizer(served_feeds))

        report = await manager.refresh_all()

        assert report.succeeded == 2
        assert report.failed == 1
        assert storage.get_feed("https://json.example.com/feed.json").last_fetched_at is None
        assert storage.get_articles(feed_url="https://json.example.com/feed.json") == []
        assert len(storage.get_articles(feed_url="https://example.com/feed.xml")) == 2

    @pytest.mark.asyncio
    async def test_articles_newest_first(self, imported, storage, served_feeds):
        await RefreshManager(storage, FeedNormalizer(served_feeds)).refresh_all()

        dated = [
            article.published_at
            for article in storage.get_articles(limit=100)
            if article.published_at is not None
        ]
        assert dated == sorted(dated, reverse=True)

    @pytest.mark.asyncio
    async def test_extract_stored_article(self, imported, storage, served_feeds):
        await RefreshManager(storage, FeedNormalizer(served_feeds)).refresh_all()
        article = next(
            a for a in storage.get_articles(feed_url="https://example.com/feed.xml") if a.guid == "post-1"
        )
        served_feeds.add(
            article.url,
            "<html><body><nav>Home</nav><article><h1>First Post</h1>"
            "<p>The complete first post, long enough to be recognised as the article body.</p>"
            "<p>It continues with a second paragraph.</p></article></body></html>",
            content_type="text/html; charset=utf-8",
        )

        content = await ContentExtractor(served_feeds).extract_from_url(article.url)

        assert content.startswith("# First Post\n\nThe complete first post")
        assert "Home" not in content

    @pytest.mark.asyncio
    async def test_background_refresh_picks_up_new_subscription(
        self, imported, storage, served_feeds, rss_builder
    ):
        manager = RefreshManager(storage, FeedNormalizer(served_feeds))
        manager.start_background_refresh(0.01)

        late_url = "https://late.example.com/rss"
        served_feeds.add(late_url, rss_builder("Late Feed", [("Hi", "https://late.example.com/hi", "x")]))
        storage.add_feed(FeedDescriptor(url=late_url))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 3
        while storage.get_feed(late_url).last_fetched_at is None:
            assert loop.time() < deadline, "new subscription was never refreshed"
            await asyncio.sleep(0.01)

        await asyncio.wait_for(manager.stop_background_refresh(), timeout=2)

        assert storage.get_feed(late_url).title == "Late Feed"
        assert [a.url for a in storage.get_articles(feed_url=late_url)] == ["https://late.example.com/hi"]
