"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedFlow tests.

No test touches the network: feeds and pages are served by FakeFetcher,
an in-process implementation of the fetch port.
"""

import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "feedflow_tests"
os.environ["FEEDFLOW_DATABASE__PATH"] = str(_TEST_DIR / "feedflow_test.db")
os.environ["FEEDFLOW_LOGGING__FILE_PATH"] = ""

from feedflow.database.models import FeedDescriptor  # noqa: E402
from feedflow.ingestion.fetcher import FetchPort, FetchResponse  # noqa: E402
from feedflow.storage.memory_storage import InMemoryStorage  # noqa: E402
from feedflow.utils.exceptions import NetworkError  # noqa: E402


# ============================================================================
# Fake network
# ============================================================================


class FakeFetcher(FetchPort):
    """Fetch port serving canned responses keyed by URL.

    Unknown URLs fail with NetworkError. A registered exception is raised
    instead of returning a response. When `gate` is set, every fetch waits
    for it before answering.
    """

    def __init__(self):
        self.responses = {}
        self.requests = []
        self.gate = None

    def add(self, url, body, status=200, content_type="application/xml"):
        if isinstance(body, str):
            body = body.encode("utf-8")
        headers = {"Content-Type": content_type} if content_type else {}
        self.responses[url] = FetchResponse(url=url, status=status, body=body, headers=headers)

    def fail(self, url, error=None):
        self.responses[url] = error or NetworkError("Connection refused", url=url)

    def requested_urls(self):
        return [url for url, _, _ in self.requests]

    async def fetch(self, url, headers=None, timeout=None):
        self.requests.append((url, dict(headers or {}), timeout))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        result = self.responses.get(url)
        if result is None:
            raise NetworkError("Name or service not known", url=url)
        if isinstance(result, Exception):
            raise result
        return result

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


# ============================================================================
# Sample payloads
# ============================================================================


def make_rss(title, items, link="https://example.com/"):
    """Build a small RSS 2.0 document from (title, link, description) tuples."""
    rendered = "".join(
        f"<item><title>{item_title}</title><link>{item_link}</link>"
        f"<description>{description}</description></item>"
        for item_title, item_link, description in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<rss version="2.0"><channel><title>{title}</title><link>{link}</link>'
        f"<description>{title} posts</description>{rendered}</channel></rss>"
    )


SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example Blog</title>
    <link>https://example.com/</link>
    <description>Posts from the example blog</description>
    <image>
      <url>https://example.com/icon.png</url>
      <title>Example Blog</title>
    </image>
    <item>
      <title>First Post</title>
      <link>https://example.com/posts/1</link>
      <guid isPermaLink="false">post-1</guid>
      <description>Summary one</description>
      <content:encoded><![CDATA[<p>Full body of the first post</p>]]></content:encoded>
      <dc:creator>Alice</dc:creator>
      <pubDate>Thu, 05 Sep 2024 12:00:00 GMT</pubDate>
      <media:content url="https://example.com/img1.jpg" medium="image" />
    </item>
    <item>
      <title>Second Post</title>
      <link>/posts/2</link>
      <description>Summary two</description>
      <enclosure url="https://example.com/img2.png" type="image/png" length="1024" />
    </item>
    <item>
      <description>An item without any link is dropped</description>
    </item>
  </channel>
</rss>
"""

SAMPLE_ATOM = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <subtitle>Entries from the Atom example</subtitle>
  <link rel="self" href="https://example.org/feed.atom" />
  <link rel="alternate" type="text/html" href="https://example.org/" />
  <icon>https://example.org/favicon.ico</icon>
  <id>urn:example:feed</id>
  <updated>2024-09-07T00:00:00Z</updated>
  <entry>
    <title>Entry One</title>
    <link rel="related" href="https://other.example.com/related" />
    <link rel="alternate" href="https://example.org/entries/1" />
    <link rel="enclosure" type="image/jpeg" href="https://example.org/pic.jpg" />
    <id>urn:example:entry:1</id>
    <updated>2024-09-06T08:00:00Z</updated>
    <summary>Entry one summary</summary>
    <author><name>Bob</name></author>
  </entry>
  <entry>
    <title>Entry Two</title>
    <link href="https://example.org/entries/2" />
    <id>urn:example:entry:2</id>
    <published>2024-09-05T10:00:00Z</published>
    <updated>2024-09-06T10:00:00Z</updated>
    <content type="html">&lt;p&gt;Two body&lt;/p&gt;</content>
  </entry>
</feed>
"""

SAMPLE_JSON_FEED = """{
  "version": "https://jsonfeed.org/version/1.1",
  "title": "JSON Example",
  "home_page_url": "https://json.example.com/",
  "favicon": "https://json.example.com/favicon.png",
  "authors": [{"name": "Feed Author"}],
  "items": [
    {
      "id": "1",
      "title": "JSON One",
      "url": "https://json.example.com/1",
      "content_html": "<p>one</p>",
      "summary": "first summary",
      "date_published": "2024-09-05T12:00:00+02:00",
      "image": "https://json.example.com/1.png"
    },
    {
      "id": "2",
      "external_url": "https://elsewhere.example.com/2",
      "summary": "Only summary text",
      "authors": [{"name": "Item Author"}],
      "banner_image": "https://json.example.com/banner.png"
    },
    {
      "id": "3",
      "title": "No URL at all"
    }
  ]
}
"""


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_fetcher():
    """Fetch port with no registered URLs."""
    return FakeFetcher()


@pytest.fixture
def rss_bytes():
    return SAMPLE_RSS.encode("utf-8")


@pytest.fixture
def atom_bytes():
    return SAMPLE_ATOM.encode("utf-8")


@pytest.fixture
def json_feed_bytes():
    return SAMPLE_JSON_FEED.encode("utf-8")


@pytest.fixture
def sample_feeds():
    """Three subscriptions, titled with the placeholder, a custom title and nothing."""
    return [
        FeedDescriptor(url="https://example.com/feed.xml", title="example.com"),
        FeedDescriptor(url="https://example.org/feed.atom", title="My Atom Feed"),
        FeedDescriptor(url="https://json.example.com/feed.json"),
    ]


@pytest.fixture
def served_feeds(fake_fetcher):
    """FakeFetcher serving the three sample feeds at the sample_feeds URLs."""
    fake_fetcher.add("https://example.com/feed.xml", SAMPLE_RSS, content_type="application/rss+xml")
    fake_fetcher.add("https://example.org/feed.atom", SAMPLE_ATOM, content_type="application/atom+xml")
    fake_fetcher.add(
        "https://json.example.com/feed.json", SAMPLE_JSON_FEED, content_type="application/feed+json"
    )
    return fake_fetcher


@pytest.fixture
def memory_storage(sample_feeds):
    """In-memory storage pre-loaded with the sample feeds."""
    return InMemoryStorage(sample_feeds)


@pytest.fixture
def rss_builder():
    """Builder for ad-hoc RSS documents: rss_builder(title, [(title, link, description)])."""
    return make_rss
