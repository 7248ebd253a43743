"""
Content Extractor
=================

Readable-text extraction from article pages.

This module provides:
- Unconditional removal of navigation, ads, comments and other page chrome
- Main-content lookup through an ordered selector list (first match wins)
- Serialization of the chosen subtree to lightweight markdown
- Charset detection for fetched pages
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from ..config.settings import get_settings
from ..utils.exceptions import ContentParseError, EncodingError, NoContentError
from ..utils.logging import get_logger_for_component
from .fetcher import FetchPort


class ContentExtractor:
    """Extract the main article text from HTML pages."""

    # Main content containers, in order of preference
    CONTENT_SELECTORS = [
        "article",
        "[role=main]",
        ".post-content",
        ".article-content",
        ".entry-content",
        ".post-body",
        ".article-body",
        ".story-body",
        ".content-body",
        ".markdown-body",
        ".blog-post-content",
        "#article-content",
        "#post-content",
        "#main-content",
        ".content",
        "main",
    ]

    # Page chrome removed before any content lookup
    REMOVE_SELECTORS = [
        "script",
        "style",
        "nav",
        "header",
        "footer",
        "aside",
        "noscript",
        "iframe",
        "form",
        ".ads",
        ".ad",
        ".advertisement",
        ".social-share",
        ".share-buttons",
        ".comments",
        ".comment-section",
        ".sidebar",
        ".related-posts",
        ".related-articles",
        ".newsletter",
        ".subscription",
        ".popup",
        ".modal",
        "[role=navigation]",
        "[role=banner]",
        "[role=complementary]",
        "[aria-hidden=true]",
    ]

    HEADING_PREFIXES = {"h1": "#", "h2": "##", "h3": "###", "h4": "####", "h5": "####", "h6": "####"}
    CONTAINER_TAGS = {"div", "section", "article", "main", "span", "figure"}

    WHITESPACE_PATTERN = re.compile(r"\s+")
    EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")
    CHARSET_UTF8_PATTERN = re.compile(r"charset=\"?utf-8")

    def __init__(self, fetcher: Optional[FetchPort] = None):
        self.settings = get_settings()
        self.logger = get_logger_for_component("content_extractor")
        self._fetcher = fetcher

    @property
    def fetcher(self) -> FetchPort:
        if self._fetcher is None:
            from .fetcher import HttpFetcher
            self._fetcher = HttpFetcher()
        return self._fetcher

    async def extract_from_url(self, url: str) -> str:
        """Fetch an article page and extract its readable content.

        Raises:
            NetworkError: If the page cannot be fetched
            EncodingError: If the bytes cannot be decoded
            ContentParseError: If the HTML cannot be parsed
            NoContentError: If nothing readable is found
        """
        headers = {
            "User-Agent": self.settings.fetch.browser_user_agent,
            "Accept": self.settings.fetch.html_accept,
        }
        response = await self.fetcher.fetch(
            url, headers=headers, timeout=self.settings.fetch.request_timeout
        )
        if not response.ok:
            self.logger.warning(
                f"HTTP {response.status} for {url}, extracting anyway",
                extra={"article_url": url},
            )

        encoding = self.determine_encoding(response.content_type, response.body)
        try:
            html = response.body.decode(encoding)
        except UnicodeDecodeError as e:
            raise EncodingError(
                f"Could not decode {url} as {encoding}: {e}", encoding=encoding
            ) from e

        return self.extract_from_html(html)

    def extract_from_html(self, html: str) -> str:
        """Extract readable content from raw HTML.

        Raises:
            ContentParseError: If the HTML cannot be parsed
            NoContentError: If there is no body or it serializes to nothing
        """
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as e:
            raise ContentParseError(f"Failed to parse HTML: {e}") from e

        for element in soup.select(", ".join(self.REMOVE_SELECTORS)):
            element.extract()

        min_length = self.settings.extraction.min_content_length
        for selector in self.CONTENT_SELECTORS:
            candidate = soup.select_one(selector)
            if candidate is None:
                continue
            content = self.serialize(candidate)
            if len(content) > min_length:
                self.logger.debug(f"Content found with selector '{selector}'")
                return content

        body = soup.body
        if body is not None:
            content = self.serialize(body)
            if content:
                return content

        raise NoContentError()

    def determine_encoding(self, content_type: Optional[str], data: bytes) -> str:
        """Pick a codec name for a fetched page.

        The Content-Type header wins when it names UTF-8 or Latin-1; then a
        charset hint in the first bytes of the document; else UTF-8.
        """
        if content_type:
            lowered = content_type.lower()
            if "utf-8" in lowered:
                return "utf-8"
            if "iso-8859-1" in lowered or "latin1" in lowered:
                return "latin-1"

        head = data[: self.settings.extraction.encoding_sniff_bytes]
        sniffed = head.decode("ascii", errors="ignore").lower()
        if self.CHARSET_UTF8_PATTERN.search(sniffed):
            return "utf-8"
        if "charset=iso-8859-1" in sniffed:
            return "latin-1"

        return "utf-8"

    # Serialization

    def serialize(self, element: Tag) -> str:
        """Serialize an element's children to markdown-flavoured text."""
        parts: List[str] = []
        self._process_children(element, parts)
        result = self.EXCESS_NEWLINES_PATTERN.sub("\n\n", "".join(parts))
        return result.strip()

    def _text(self, element: Tag, separator: str = "") -> str:
        return self.WHITESPACE_PATTERN.sub(" ", element.get_text(separator)).strip()

    def _process_children(self, element: Tag, parts: List[str]) -> None:
        for node in element.children:
            if isinstance(node, Tag):
                self._process_element(node, parts)
            elif isinstance(node, NavigableString) and not isinstance(node, PreformattedString):
                text = self.WHITESPACE_PATTERN.sub(" ", str(node)).strip()
                if text:
                    parts.append(text + " ")

    def _process_element(self, element: Tag, parts: List[str]) -> None:
        tag = element.name.lower()

        if tag == "p":
            text = self._text(element)
            if text:
                parts.append(text + "\n\n")

        elif tag in self.HEADING_PREFIXES:
            text = self._text(element)
            if text:
                parts.append(f"{self.HEADING_PREFIXES[tag]} {text}\n\n")

        elif tag in ("ul", "ol"):
            index = 1
            for item in element.find_all("li", recursive=False):
                text = self._text(item)
                if not text:
                    continue
                if tag == "ul":
                    parts.append(f"- {text}\n")
                else:
                    parts.append(f"{index}. {text}\n")
                    index += 1
            parts.append("\n")

        elif tag == "blockquote":
            text = self._text(element)
            if text:
                for line in text.splitlines():
                    parts.append(f"> {line}\n")
                parts.append("\n")

        elif tag == "pre":
            text = element.get_text()
            if text:
                parts.append(f"```\n{text}\n```\n\n")

        elif tag == "code":
            parent = element.parent
            if parent is None or parent.name.lower() != "pre":
                text = element.get_text()
                if text:
                    parts.append(f"`{text}`")

        elif tag == "br":
            parts.append("\n")

        elif tag == "hr":
            parts.append("\n---\n\n")

        elif tag == "a":
            text = self._text(element)
            href = element.get("href") or ""
            if text:
                if href and not href.startswith("#") and not href.startswith("javascript:"):
                    parts.append(f"[{text}]({href})")
                else:
                    parts.append(text)

        elif tag in ("strong", "b"):
            text = self._text(element)
            if text:
                parts.append(f"**{text}**")

        elif tag in ("em", "i"):
            text = self._text(element)
            if text:
                parts.append(f"*{text}*")

        elif tag == "img":
            src = element.get("src") or ""
            if src:
                alt = element.get("alt") or "image"
                parts.append(f"![{alt}]({src})\n\n")

        elif tag == "figcaption":
            text = self._text(element)
            if text:
                parts.append(f"*{text}*\n\n")

        elif tag in self.CONTAINER_TAGS:
            self._process_children(element, parts)

        elif tag == "table":
            text = self._text(element, " ")
            if text:
                parts.append(text + "\n\n")

        elif element.find(True) is None:
            text = self._text(element)
            if text:
                parts.append(text + " ")

        else:
            self._process_children(element, parts)


async def extract_content(url: str, fetcher: Optional[FetchPort] = None) -> str:
    """Extract readable content from a URL with a default extractor."""
    return await ContentExtractor(fetcher).extract_from_url(url)
