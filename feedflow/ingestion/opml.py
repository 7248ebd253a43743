"""
OPML Codec
==========

Import and export of feed subscriptions in OPML 2.0.

Parsing is event-driven (xml.sax). Folder membership follows a stack that
is pushed when a folder outline opens and popped when ANY outline closes,
so only the first leaf under a folder inherits its label when the folder
holds several leaves. Existing OPML consumers depend on those tuples.
"""

import io
import xml.sax
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
from xml.sax.handler import ContentHandler, feature_external_ges, feature_namespaces
from xml.sax.saxutils import escape

from ..config.settings import get_settings
from ..database.models import FeedDescriptor
from ..utils.exceptions import OPMLParseError, ErrorCode
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator

UNTITLED_FEED = "Untitled Feed"

_ATTR_ENTITIES = {'"': "&quot;", "'": "&apos;"}
_INDENT = "    "


@dataclass(frozen=True)
class OPMLFeed:
    """A feed subscription as carried in an OPML outline."""

    title: str
    feed_url: str
    site_url: Optional[str] = None
    folder: Optional[str] = None


@dataclass
class OPMLDocument:
    """Parsed OPML document: optional head title plus flattened feeds."""

    title: Optional[str] = None
    feeds: List[OPMLFeed] = field(default_factory=list)

    def to_descriptors(self) -> List[FeedDescriptor]:
        """Convert to feed descriptors, skipping feeds with unusable URLs."""
        descriptors = []
        for feed in self.feeds:
            if not URLValidator.is_valid_url(feed.feed_url):
                continue
            descriptors.append(
                FeedDescriptor(
                    url=feed.feed_url,
                    title=feed.title,
                    site_url=feed.site_url,
                    folder=feed.folder,
                )
            )
        return descriptors


def _escape_attr(value: str) -> str:
    return escape(value, _ATTR_ENTITIES)


class _OutlineHandler(ContentHandler):
    """SAX handler collecting the head title and the flattened outlines."""

    def __init__(self):
        super().__init__()
        self.document_title: Optional[str] = None
        self.feeds: List[OPMLFeed] = []
        self._folder_stack: List[str] = []
        self._in_head = False
        self._in_title = False
        self._title_text: List[str] = []

    def startElement(self, name, attrs):
        tag = name.lower()
        if tag == "head":
            self._in_head = True
        elif tag == "title":
            if self._in_head:
                self._in_title = True
                self._title_text = []
        elif tag == "outline":
            self._open_outline({key.lower(): value for key, value in attrs.items()})

    def endElement(self, name):
        tag = name.lower()
        if tag == "head":
            self._in_head = False
        elif tag == "title":
            if self._in_head and self._in_title:
                self.document_title = "".join(self._title_text).strip()
                self._in_title = False
        elif tag == "outline":
            if self._folder_stack:
                self._folder_stack.pop()

    def characters(self, content):
        if self._in_title:
            self._title_text.append(content)

    def _open_outline(self, attrs: Dict[str, str]) -> None:
        feed_url = (attrs.get("xmlurl") or "").strip()

        if not feed_url:
            label = attrs.get("title") or attrs.get("text")
            if label:
                self._folder_stack.append(label)
            return

        title = (
            attrs.get("title")
            or attrs.get("text")
            or URLValidator.host_of(feed_url)
            or UNTITLED_FEED
        )
        site_url = (attrs.get("htmlurl") or "").strip() or None
        folder = self._folder_stack[-1] if self._folder_stack else None

        self.feeds.append(
            OPMLFeed(title=title, feed_url=feed_url, site_url=site_url, folder=folder)
        )


class OPMLCodec:
    """Bidirectional conversion between OPML and flat feed lists."""

    def __init__(self, default_title: Optional[str] = None):
        self.default_title = default_title or get_settings().opml.default_title
        self.logger = get_logger_for_component("opml")

    def parse(self, data: Union[bytes, str]) -> OPMLDocument:
        """Parse an OPML document.

        Args:
            data: Raw OPML bytes (or text)

        Returns:
            OPMLDocument with the head title (None when absent) and feeds

        Raises:
            OPMLParseError: If the XML is malformed or truncated
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        handler = _OutlineHandler()
        parser = xml.sax.make_parser()
        parser.setFeature(feature_namespaces, False)
        parser.setFeature(feature_external_ges, False)
        parser.setContentHandler(handler)

        try:
            parser.parse(io.BytesIO(data))
        except xml.sax.SAXParseException as e:
            self.logger.warning(f"OPML parse failed: {e.getMessage()}")
            raise OPMLParseError(e.getMessage()) from e
        except xml.sax.SAXException as e:
            raise OPMLParseError(
                str(e), error_code=ErrorCode.OPML_INVALID_DATA
            ) from e

        self.logger.info(f"Parsed OPML with {len(handler.feeds)} feeds")
        return OPMLDocument(title=handler.document_title, feeds=handler.feeds)

    def parse_file(self, path: Union[str, Path]) -> OPMLDocument:
        """Parse an OPML file from disk."""
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise OPMLParseError(
                f"Cannot read {path}: {e}",
                source=str(path),
                error_code=ErrorCode.OPML_INVALID_DATA,
            ) from e
        return self.parse(data)

    def export(
        self,
        feeds: Iterable[OPMLFeed],
        title: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> str:
        """Serialize feeds to an OPML 2.0 document.

        Feeds without a folder come first in input order, then one folder
        outline per label in ascending label order.
        """
        title = self.default_title if title is None else title
        created_at = created_at or datetime.now(timezone.utc)

        root_feeds: List[OPMLFeed] = []
        folders: "OrderedDict[str, List[OPMLFeed]]" = OrderedDict()
        for feed in feeds:
            if feed.folder:
                folders.setdefault(feed.folder, []).append(feed)
            else:
                root_feeds.append(feed)

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<opml version="2.0">',
            f"{_INDENT}<head>",
            f"{_INDENT * 2}<title>{escape(title)}</title>",
            f"{_INDENT * 2}<dateCreated>{format_datetime(created_at)}</dateCreated>",
            f"{_INDENT}</head>",
            f"{_INDENT}<body>",
        ]

        for feed in root_feeds:
            lines.append(f"{_INDENT * 2}{self._outline(feed)}")

        for label in sorted(folders):
            escaped = _escape_attr(label)
            lines.append(f'{_INDENT * 2}<outline text="{escaped}" title="{escaped}">')
            for feed in folders[label]:
                lines.append(f"{_INDENT * 3}{self._outline(feed)}")
            lines.append(f"{_INDENT * 2}</outline>")

        lines.append(f"{_INDENT}</body>")
        lines.append("</opml>")
        return "\n".join(lines) + "\n"

    def export_to_file(
        self,
        feeds: Iterable[OPMLFeed],
        path: Union[str, Path],
        title: Optional[str] = None,
    ) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export(feeds, title), encoding="utf-8")
        self.logger.info(f"Exported OPML to {path}")
        return path

    @staticmethod
    def from_descriptors(feeds: Iterable[FeedDescriptor]) -> List[OPMLFeed]:
        """Convert stored feeds to exportable OPML feeds."""
        return [
            OPMLFeed(
                title=feed.display_title,
                feed_url=feed.url,
                site_url=feed.site_url,
                folder=feed.folder,
            )
            for feed in feeds
        ]

    @staticmethod
    def _outline(feed: OPMLFeed) -> str:
        title = _escape_attr(feed.title)
        attributes = [
            'type="rss"',
            f'text="{title}"',
            f'title="{title}"',
            f'xmlUrl="{_escape_attr(feed.feed_url)}"',
        ]
        if feed.site_url:
            attributes.append(f'htmlUrl="{_escape_attr(feed.site_url)}"')
        return f"<outline {' '.join(attributes)}/>"


def import_opml(data: Union[bytes, str]) -> OPMLDocument:
    """Parse OPML bytes with default settings."""
    return OPMLCodec().parse(data)


def export_opml(feeds: Iterable[OPMLFeed], title: Optional[str] = None) -> str:
    """Serialize feeds to OPML with default settings."""
    return OPMLCodec().export(feeds, title)
