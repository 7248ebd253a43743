"""
Unit Tests for the Feed Normalizer
==================================

RSS 2.0, Atom and JSON Feed normalization, fallback chains and fetching.
"""

import xml.sax

import pytest
from datetime import datetime, timezone

from feedflow.config.settings import get_settings
from feedflow.ingestion.feed_normalizer import (
    FeedNormalizer,
    ParsedFeed,
    fetch_feed,
    first_available,
    parse_feed,
)
from feedflow.utils.exceptions import ErrorCode, FeedParseError, NetworkError


@pytest.fixture
def normalizer(fake_fetcher):
    return FeedNormalizer(fake_fetcher)


class TestFirstAvailable:
    """Test the fallback helper."""

    def test_skips_none_and_blank_strings(self):
        assert first_available(None, "", "   ", "value", "later") == "value"

    def test_returns_none_when_nothing_available(self):
        assert first_available() is None
        assert first_available(None, " \n") is None

    def test_non_string_values_are_returned(self):
        assert first_available(None, 0) == 0
        assert first_available(None, {"a": 1}) == {"a": 1}


class TestRSSNormalization:
    """Test RSS 2.0 feeds."""

    def test_feed_level_fields(self, normalizer, rss_bytes):
        feed = normalizer.parse(rss_bytes, base_url="https://example.com/feed.xml")

        assert feed.feed_format == "rss"
        assert feed.title == "Example Blog"
        assert feed.site_url == "https://example.com/"
        assert feed.icon_url == "https://example.com/icon.png"

    def test_entries_without_link_are_dropped(self, normalizer, rss_bytes):
        feed = normalizer.parse(rss_bytes, base_url="https://example.com/feed.xml")

        assert [article.title for article in feed.articles] == ["First Post", "Second Post"]

    def test_full_entry_mapping(self, normalizer, rss_bytes):
        article = normalizer.parse(rss_bytes, base_url="https://example.com/feed.xml").articles[0]

        assert article.id == "post-1"
        assert article.url == "https://example.com/posts/1"
        assert "Full body of the first post" in article.content
        assert article.summary == "Summary one"
        assert article.author == "Alice"
        assert article.published_at == datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)
        assert article.image_url == "https://example.com/img1.jpg"

    def test_relative_link_and_fallbacks(self, normalizer, rss_bytes):
        article = normalizer.parse(rss_bytes, base_url="https://example.com/feed.xml").articles[1]

        assert article.url == "https://example.com/posts/2"
        # No guid: the URL is the identifier
        assert article.id == article.url
        # No content: the summary stands in
        assert article.content == "Summary two"
        assert article.author is None
        assert article.published_at is None
        assert article.image_url == "https://example.com/img2.png"

    def test_title_falls_back_to_summary_prefix(self, normalizer):
        description = "x" * 150
        data = (
            '<?xml version="1.0"?><rss version="2.0"><channel><title>T</title>'
            f"<item><link>https://example.com/a</link><description>{description}</description></item>"
            "</channel></rss>"
        )
        article = normalizer.parse(data).articles[0]

        assert article.title == "x" * 100

    def test_relative_links_resolve_against_base(self, normalizer, rss_builder):
        data = rss_builder("Blog", [("Post", "/2024/post", "body")], link="/")
        feed = normalizer.parse(data, base_url="https://blog.example.net/feed")

        assert feed.articles[0].url == "https://blog.example.net/2024/post"
        assert feed.site_url == "https://blog.example.net/"

    def test_relative_link_without_base_is_dropped(self, normalizer, rss_builder):
        data = rss_builder("Blog", [("Post", "/2024/post", "body")])

        assert normalizer.parse(data).articles == []

    def test_non_http_links_are_dropped(self, normalizer, rss_builder):
        data = rss_builder(
            "Blog",
            [
                ("Mail", "mailto:someone@example.com", "body"),
                ("Web", "https://example.com/web", "body"),
            ],
        )
        feed = normalizer.parse(data, base_url="https://example.com/feed")

        assert [article.title for article in feed.articles] == ["Web"]

    def test_empty_channel(self, normalizer, rss_builder):
        feed = normalizer.parse(rss_builder("Quiet", []))

        assert feed.title == "Quiet"
        assert feed.articles == []

    def test_missing_title_uses_placeholder(self, normalizer):
        data = '<?xml version="1.0"?><rss version="2.0"><channel><link>https://e.com/</link></channel></rss>'

        assert normalizer.parse(data).title == "Untitled Feed"

    def test_text_input_is_accepted(self, normalizer, rss_bytes):
        feed = normalizer.parse(rss_bytes.decode("utf-8"), base_url="https://example.com/feed.xml")
        assert len(feed.articles) == 2


class TestAtomNormalization:
    """Test Atom feeds."""

    def test_feed_level_fields(self, normalizer, atom_bytes):
        feed = normalizer.parse(atom_bytes, base_url="https://example.org/feed.atom")

        assert feed.feed_format == "atom"
        assert feed.title == "Atom Example"
        assert feed.description == "Entries from the Atom example"
        assert feed.site_url == "https://example.org/"
        assert feed.icon_url == "https://example.org/favicon.ico"

    def test_alternate_link_preferred(self, normalizer, atom_bytes):
        article = normalizer.parse(atom_bytes, base_url="https://example.org/feed.atom").articles[0]

        assert article.url == "https://example.org/entries/1"
        assert article.image_url == "https://example.org/pic.jpg"
        assert article.author == "Bob"
        assert article.content == "Entry one summary"

    def test_updated_used_when_published_missing(self, normalizer, atom_bytes):
        articles = normalizer.parse(atom_bytes, base_url="https://example.org/feed.atom").articles

        assert articles[0].published_at == datetime(2024, 9, 6, 8, 0, tzinfo=timezone.utc)
        assert articles[1].published_at == datetime(2024, 9, 5, 10, 0, tzinfo=timezone.utc)

    def test_link_without_rel_and_content(self, normalizer, atom_bytes):
        article = normalizer.parse(atom_bytes, base_url="https://example.org/feed.atom").articles[1]

        assert article.url == "https://example.org/entries/2"
        assert "Two body" in article.content
        assert article.image_url is None

    def test_entry_ids_are_unique(self, normalizer, atom_bytes):
        articles = normalizer.parse(atom_bytes, base_url="https://example.org/feed.atom").articles

        assert len({article.id for article in articles}) == 2
        assert all(article.id for article in articles)


class TestJSONFeedNormalization:
    """Test JSON Feed documents."""

    def test_feed_level_fields(self, normalizer, json_feed_bytes):
        feed = normalizer.parse(json_feed_bytes, base_url="https://json.example.com/feed.json")

        assert feed.feed_format == "json"
        assert feed.title == "JSON Example"
        assert feed.site_url == "https://json.example.com/"
        assert feed.icon_url == "https://json.example.com/favicon.png"

    def test_items_without_url_are_dropped(self, normalizer, json_feed_bytes):
        feed = normalizer.parse(json_feed_bytes)

        assert [article.id for article in feed.articles] == ["1", "2"]

    def test_full_item_mapping(self, normalizer, json_feed_bytes):
        article = normalizer.parse(json_feed_bytes).articles[0]

        assert article.title == "JSON One"
        assert article.url == "https://json.example.com/1"
        assert article.content == "<p>one</p>"
        assert article.summary == "first summary"
        # Feed-level author applies when the item has none
        assert article.author == "Feed Author"
        assert article.published_at == datetime(2024, 9, 5, 10, 0, tzinfo=timezone.utc)
        assert article.image_url == "https://json.example.com/1.png"

    def test_item_fallbacks(self, normalizer, json_feed_bytes):
        article = normalizer.parse(json_feed_bytes).articles[1]

        assert article.title == "Only summary text"
        assert article.url == "https://elsewhere.example.com/2"
        assert article.content == "Only summary text"
        assert article.author == "Item Author"
        assert article.published_at is None
        assert article.image_url == "https://json.example.com/banner.png"

    def test_detected_by_content_type(self, normalizer):
        data = b'  \n{"version": "https://jsonfeed.org/version/1", "title": "J", "items": []}'
        feed = normalizer.parse(data, content_type="application/feed+json")

        assert feed.feed_format == "json"
        assert feed.title == "J"

    def test_naive_dates_are_utc(self, normalizer):
        data = (
            b'{"title": "J", "items": [{"id": "a", "title": "A", '
            b'"url": "https://j.example.com/a", "date_published": "2024-03-01T09:30:00"}]}'
        )
        article = normalizer.parse(data).articles[0]

        assert article.published_at == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_unparseable_date_is_ignored(self, normalizer):
        data = (
            b'{"title": "J", "items": [{"id": "a", "title": "A", '
            b'"url": "https://j.example.com/a", "date_published": "yesterday-ish"}]}'
        )
        assert normalizer.parse(data).articles[0].published_at is None

    def test_legacy_single_author(self, normalizer):
        data = (
            b'{"title": "J", "author": {"name": "Solo"}, "items": '
            b'[{"id": "a", "title": "A", "url": "https://j.example.com/a"}]}'
        )
        assert normalizer.parse(data).articles[0].author == "Solo"

    def test_missing_title_uses_placeholder(self, normalizer):
        assert normalizer.parse(b'{"items": []}').title == "Untitled Feed"


class TestParseErrors:
    """Test unparseable payloads."""

    @pytest.mark.parametrize("data", [b"", b"this is not a feed", b"<html><body>page</body></html>"])
    def test_unrecognized_payload(self, normalizer, data):
        with pytest.raises(FeedParseError):
            normalizer.parse(data, base_url="https://example.com/feed")

    def test_invalid_json(self, normalizer):
        with pytest.raises(FeedParseError) as exc_info:
            normalizer.parse(b'{"title": broken')

        assert exc_info.value.error_code == ErrorCode.FEED_PARSE_ERROR

    def test_json_without_items_list(self, normalizer):
        with pytest.raises(FeedParseError) as exc_info:
            normalizer.parse(b'{"title": "x", "items": "nope"}')

        assert exc_info.value.error_code == ErrorCode.FEED_UNSUPPORTED_FORMAT

    @pytest.mark.parametrize(
        "data",
        [
            '<?xml version="1.0"?><rss version="2.0"><channel><title>T</title>'
            "<item><title>A</title><link>https://e.com/a</link></item>"
            "<item><title>B</title><link>https://e.com/b",
            '<?xml version="1.0"?><feed xmlns="http://www.w3.org/2005/Atom"><title>T</title>'
            '<entry><title>A</title><link href="https://e.com/a"/></entry>'
            "<entry><title>B</title>",
        ],
        ids=["rss", "atom"],
    )
    def test_truncated_document(self, normalizer, data):
        with pytest.raises(FeedParseError) as exc_info:
            normalizer.parse(data, base_url="https://e.com/feed")

        cause = exc_info.value.__cause__
        assert exc_info.value.error_code == ErrorCode.FEED_PARSE_ERROR
        assert isinstance(cause, xml.sax.SAXException)
        assert str(cause) in str(exc_info.value)

    def test_unclosed_tag_inside_item(self, normalizer):
        data = (
            '<?xml version="1.0"?><rss version="2.0"><channel><title>T</title>'
            "<item><title>A<link>https://e.com/a</link></item></channel></rss>"
        )
        with pytest.raises(FeedParseError):
            normalizer.parse(data)

    def test_charset_override_still_parses(self, normalizer):
        # text/xml without a charset means us-ascii; the bytes are UTF-8
        data = (
            '<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel>'
            "<title>Café</title><item><title>Crème</title><link>https://e.com/a</link></item>"
            "</channel></rss>"
        ).encode("utf-8")

        feed = normalizer.parse(data, base_url="https://e.com/feed", content_type="text/xml")

        assert feed.title == "Café"
        assert [article.title for article in feed.articles] == ["Crème"]


class TestFetchFeed:
    """Test fetching through the fetch port."""

    @pytest.mark.asyncio
    async def test_fetch_sends_feed_headers(self, normalizer, served_feeds):
        feed = await normalizer.fetch_feed("https://example.com/feed.xml")

        assert isinstance(feed, ParsedFeed)
        assert feed.title == "Example Blog"

        url, headers, timeout = served_feeds.requests[0]
        settings = get_settings()
        assert url == "https://example.com/feed.xml"
        assert headers["User-Agent"] == settings.fetch.user_agent
        assert headers["Accept"] == settings.fetch.feed_accept
        assert timeout == settings.fetch.request_timeout

    @pytest.mark.asyncio
    async def test_fetch_json_by_content_type(self, normalizer, served_feeds):
        feed = await normalizer.fetch_feed("https://json.example.com/feed.json")

        assert feed.feed_format == "json"
        assert len(feed.articles) == 2

    @pytest.mark.asyncio
    async def test_non_2xx_status_fails(self, normalizer, fake_fetcher, rss_bytes):
        fake_fetcher.add("https://example.com/gone.xml", rss_bytes, status=404)

        with pytest.raises(FeedParseError) as exc_info:
            await normalizer.fetch_feed("https://example.com/gone.xml")

        assert exc_info.value.error_code == ErrorCode.FEED_HTTP_STATUS

    @pytest.mark.asyncio
    async def test_network_failure_propagates(self, normalizer):
        with pytest.raises(NetworkError):
            await normalizer.fetch_feed("https://unreachable.example.com/feed")

    @pytest.mark.asyncio
    async def test_module_level_helpers(self, served_feeds, atom_bytes):
        feed = await fetch_feed("https://example.org/feed.atom", fetcher=served_feeds)
        assert feed.feed_format == "atom"

        assert parse_feed(atom_bytes, base_url="https://example.org/feed.atom").title == "Atom Example"
