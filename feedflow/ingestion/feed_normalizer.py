"""
Feed Normalizer
===============

Turns RSS 2.0, Atom and JSON Feed payloads into one ParsedFeed shape.

RSS and Atom go through feedparser; JSON Feed is decoded directly because
feedparser only recognises it from the response content type. Every
optional field is resolved through an ordered fallback chain, and entries
whose URL cannot be resolved to an absolute http(s) URL are dropped.
"""

import json
import xml.sax
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import feedparser
from dateutil.parser import parse as parse_date

from ..config.settings import get_settings
from ..utils.exceptions import FeedParseError, ErrorCode
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from .fetcher import FetchPort

UNTITLED_FEED = "Untitled Feed"
TITLE_FROM_SUMMARY_LENGTH = 100


@dataclass
class ParsedArticle:
    """A normalized feed entry."""

    id: str
    title: str
    url: str
    content: Optional[str] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None


@dataclass
class ParsedFeed:
    """A normalized feed. Produced fresh on every fetch, never persisted."""

    title: str = UNTITLED_FEED
    description: Optional[str] = None
    site_url: Optional[str] = None
    icon_url: Optional[str] = None
    articles: List[ParsedArticle] = field(default_factory=list)
    feed_format: str = "rss"


def first_available(*values: Any) -> Any:
    """Return the first value that is neither None nor a blank string."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str):
            if value.strip():
                return value
            continue
        return value
    return None


def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items:
        return items[0] or {}
    return {}


def _struct_to_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _looks_like_json(data: bytes, content_type: Optional[str]) -> bool:
    if content_type and "json" in content_type.lower():
        return True
    return data.lstrip(b"\xef\xbb\xbf \t\r\n").startswith(b"{")


class FeedNormalizer:
    """Parse feed payloads of any supported dialect into ParsedFeed."""

    def __init__(self, fetcher: Optional[FetchPort] = None):
        self.settings = get_settings()
        self.logger = get_logger_for_component("feed_normalizer")
        self._fetcher = fetcher

    @property
    def fetcher(self) -> FetchPort:
        if self._fetcher is None:
            from .fetcher import HttpFetcher
            self._fetcher = HttpFetcher()
        return self._fetcher

    async def fetch_feed(self, url: str) -> ParsedFeed:
        """Fetch a feed URL and normalize the payload.

        Raises:
            NetworkError: If the request itself fails
            FeedParseError: On non-2xx status or an unparseable payload
        """
        headers = {
            "User-Agent": self.settings.fetch.user_agent,
            "Accept": self.settings.fetch.feed_accept,
        }
        response = await self.fetcher.fetch(
            url, headers=headers, timeout=self.settings.fetch.request_timeout
        )

        if not response.ok:
            raise FeedParseError(
                f"HTTP {response.status} fetching feed",
                feed_url=url,
                error_code=ErrorCode.FEED_HTTP_STATUS,
            )

        return self.parse(
            response.body,
            base_url=response.url or url,
            content_type=response.content_type,
        )

    def parse(
        self,
        data: Union[bytes, str],
        base_url: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> ParsedFeed:
        """Parse raw feed bytes.

        Args:
            data: Feed payload
            base_url: URL the payload came from, used to resolve relative links
            content_type: Response Content-Type, if known

        Raises:
            FeedParseError: If the format cannot be detected or the payload is malformed
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        if _looks_like_json(data, content_type):
            feed = self._parse_json(data, base_url)
        else:
            feed = self._parse_xml(data, base_url, content_type)

        self.logger.debug(
            f"Parsed {feed.feed_format} feed '{feed.title}' with {len(feed.articles)} articles",
            extra={"feed_url": base_url},
        )
        return feed

    # RSS / Atom

    def _parse_xml(
        self, data: bytes, base_url: Optional[str], content_type: Optional[str]
    ) -> ParsedFeed:
        response_headers = {}
        if base_url:
            response_headers["content-location"] = base_url
        if content_type:
            response_headers["content-type"] = content_type

        parsed = feedparser.parse(data, response_headers=response_headers)
        version = parsed.get("version") or ""
        cause = parsed.get("bozo_exception")

        if isinstance(cause, xml.sax.SAXException):
            # Not well-formed; feedparser's loose fallback would return a partial feed
            raise FeedParseError(
                str(cause), feed_url=base_url, error_code=ErrorCode.FEED_PARSE_ERROR
            ) from cause

        if not version:
            raise FeedParseError(
                str(cause) if cause else "Unrecognized feed format",
                feed_url=base_url,
                error_code=ErrorCode.FEED_UNSUPPORTED_FORMAT,
            )

        if parsed.get("bozo"):
            # Encoding overrides and non-XML content types only
            self.logger.warning(
                f"Feed parsed with warnings: {cause}",
                extra={"feed_url": base_url},
            )

        is_atom = version.startswith("atom")
        feed_info = parsed.get("feed", {})

        articles = []
        for entry in parsed.get("entries", []):
            article = self._convert_entry(entry, base_url, is_atom)
            if article is not None:
                articles.append(article)

        if is_atom:
            site_url = self._atom_site_url(feed_info.get("links") or [])
            icon_url = first_available(
                feed_info.get("icon"),
                feed_info.get("logo"),
                (feed_info.get("image") or {}).get("href"),
            )
        else:
            site_url = feed_info.get("link")
            icon_url = (feed_info.get("image") or {}).get("href")

        return ParsedFeed(
            title=(first_available(feed_info.get("title")) or UNTITLED_FEED).strip(),
            description=first_available(feed_info.get("subtitle")),
            site_url=URLValidator.resolve_absolute_url(site_url, base_url),
            icon_url=URLValidator.resolve_absolute_url(icon_url, base_url),
            articles=articles,
            feed_format="atom" if is_atom else "rss",
        )

    def _convert_entry(
        self, entry: Dict[str, Any], base_url: Optional[str], is_atom: bool
    ) -> Optional[ParsedArticle]:
        summary = first_available(entry.get("summary"))
        title = first_available(entry.get("title"), summary and summary[:TITLE_FROM_SUMMARY_LENGTH])
        if not title:
            return None

        links = entry.get("links") or []
        if is_atom:
            alternate = next((link for link in links if link.get("rel") == "alternate"), None)
            raw_url = (alternate or _first(links)).get("href")
        else:
            raw_url = entry.get("link")

        url = URLValidator.resolve_absolute_url(raw_url, base_url)
        if url is None:
            self.logger.debug(f"Dropping entry without usable link: {title[:60]}")
            return None

        published = _struct_to_datetime(entry.get("published_parsed"))
        if published is None and is_atom:
            published = _struct_to_datetime(entry.get("updated_parsed"))

        return ParsedArticle(
            id=first_available(entry.get("id"), url),
            title=title.strip(),
            url=url,
            content=first_available(_first(entry.get("content")).get("value"), summary),
            summary=summary,
            author=first_available(
                (entry.get("author_detail") or {}).get("name"), entry.get("author")
            ),
            published_at=published,
            image_url=URLValidator.resolve_absolute_url(
                self._entry_image(entry, links, is_atom), base_url
            ),
        )

    @staticmethod
    def _entry_image(entry: Dict[str, Any], links: List[Dict[str, Any]], is_atom: bool) -> Optional[str]:
        candidates = [
            _first(entry.get("media_content")).get("url"),
            _first(entry.get("media_thumbnail")).get("url"),
        ]
        if is_atom:
            image_links = [link for link in links if (link.get("type") or "").startswith("image/")]
            candidates.append(_first(image_links).get("href"))
        else:
            enclosures = [
                enclosure
                for enclosure in entry.get("enclosures") or []
                if (enclosure.get("type") or "").startswith("image/")
            ]
            enclosure = _first(enclosures)
            candidates.append(first_available(enclosure.get("href"), enclosure.get("url")))
        return first_available(*candidates)

    @staticmethod
    def _atom_site_url(links: List[Dict[str, Any]]) -> Optional[str]:
        preferred = (
            next((link for link in links if link.get("rel") == "alternate"), None)
            or next((link for link in links if link.get("type") == "text/html"), None)
            or _first(links)
        )
        return preferred.get("href") if preferred else None

    # JSON Feed

    def _parse_json(self, data: bytes, base_url: Optional[str]) -> ParsedFeed:
        try:
            document = json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, ValueError) as e:
            raise FeedParseError(f"Invalid JSON feed: {e}", feed_url=base_url) from e

        if not isinstance(document, dict) or not isinstance(document.get("items", []), list):
            raise FeedParseError(
                "JSON document is not a JSON Feed",
                feed_url=base_url,
                error_code=ErrorCode.FEED_UNSUPPORTED_FORMAT,
            )

        feed_author = self._json_author(document)
        articles = []
        for item in document.get("items", []):
            if not isinstance(item, dict):
                continue
            article = self._convert_json_item(item, base_url, feed_author)
            if article is not None:
                articles.append(article)

        title = first_available(document.get("title"))
        return ParsedFeed(
            title=title.strip() if isinstance(title, str) else UNTITLED_FEED,
            description=first_available(document.get("description")),
            site_url=URLValidator.resolve_absolute_url(document.get("home_page_url"), base_url),
            icon_url=URLValidator.resolve_absolute_url(
                first_available(document.get("icon"), document.get("favicon")), base_url
            ),
            articles=articles,
            feed_format="json",
        )

    def _convert_json_item(
        self, item: Dict[str, Any], base_url: Optional[str], feed_author: Optional[str]
    ) -> Optional[ParsedArticle]:
        summary = first_available(item.get("summary"))
        title = first_available(item.get("title"), summary and summary[:TITLE_FROM_SUMMARY_LENGTH])
        if not title:
            return None

        url = URLValidator.resolve_absolute_url(
            first_available(item.get("url"), item.get("external_url")), base_url
        )
        if url is None:
            return None

        item_id = item.get("id")
        return ParsedArticle(
            id=str(item_id) if item_id not in (None, "") else url,
            title=title.strip(),
            url=url,
            content=first_available(item.get("content_html"), item.get("content_text"), summary),
            summary=summary,
            author=first_available(self._json_author(item), feed_author),
            published_at=self._json_date(item.get("date_published")),
            image_url=URLValidator.resolve_absolute_url(
                first_available(item.get("image"), item.get("banner_image")), base_url
            ),
        )

    @staticmethod
    def _json_author(obj: Dict[str, Any]) -> Optional[str]:
        author = obj.get("author")
        if not isinstance(author, dict):
            authors = obj.get("authors")
            author = authors[0] if isinstance(authors, list) and authors else None
        if isinstance(author, dict):
            return first_available(author.get("name"))
        return None

    @staticmethod
    def _json_date(value: Any) -> Optional[datetime]:
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            parsed = parse_date(value)
        except (ValueError, OverflowError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


def parse_feed(
    data: Union[bytes, str],
    base_url: Optional[str] = None,
    content_type: Optional[str] = None,
) -> ParsedFeed:
    """Parse feed bytes with a default normalizer."""
    return FeedNormalizer().parse(data, base_url=base_url, content_type=content_type)


async def fetch_feed(url: str, fetcher: Optional[FetchPort] = None) -> ParsedFeed:
    """Fetch and parse a feed with a default normalizer."""
    return await FeedNormalizer(fetcher).fetch_feed(url)
