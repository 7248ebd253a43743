"""
FeedFlow Data Models
====================

Pydantic models for the persisted feed and article records, plus the
per-feed update produced by a refresh run. These correspond to the
SQLite schema and are also what the in-memory storage keeps.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import uuid

from pydantic import BaseModel, Field, field_validator

from ..utils.exceptions import ValidationError
from ..utils.validators import URLValidator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedDescriptor(BaseModel):
    """A feed subscription. The URL is the feed's identity."""
    url: str = Field(..., description="Feed URL")
    title: str = Field(default="", description="Display title")
    site_url: Optional[str] = Field(default=None, description="Home page of the feed's site")
    icon_url: Optional[str] = Field(default=None, description="Feed icon or logo")
    folder: Optional[str] = Field(default=None, description="OPML folder label")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last successful refresh")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        try:
            return URLValidator.validate_feed_url(v)
        except ValidationError as e:
            raise ValueError(e.user_message) from e

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        return (v or "").strip()

    @property
    def host(self) -> Optional[str]:
        return URLValidator.host_of(self.url)

    def has_placeholder_title(self) -> bool:
        """True when the title is empty or still the feed host placeholder."""
        return not self.title or self.title == self.host

    @property
    def display_title(self) -> str:
        return self.title or self.host or self.url

    def __str__(self) -> str:
        return f"Feed({self.display_title})"


class ArticleRecord(BaseModel):
    """Article stored for a feed. Unique per (feed_url, url)."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique article ID")
    feed_url: str = Field(..., min_length=1, description="Owning feed URL")
    guid: str = Field(..., description="Entry id as published by the feed")
    title: str = Field(..., min_length=1, description="Article title")
    url: str = Field(..., min_length=1, description="Absolute article URL")
    content: Optional[str] = Field(default=None, description="Article body, or summary when absent")
    summary: Optional[str] = Field(default=None)
    author: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None)
    image_url: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    def __str__(self) -> str:
        return f"Article({self.title[:50]})"


@dataclass
class FeedUpdate:
    """Metadata gathered for one feed during a refresh.

    Backfill values only fill fields that are still unset on the stored
    descriptor; `last_fetched_at` is always written.
    """
    feed_url: str
    last_fetched_at: datetime
    title: Optional[str] = None
    site_url: Optional[str] = None
    icon_url: Optional[str] = None

    def apply_to(self, feed: FeedDescriptor) -> FeedDescriptor:
        changes = {"last_fetched_at": self.last_fetched_at}
        if self.title and feed.has_placeholder_title():
            changes["title"] = self.title
        if self.site_url and not feed.site_url:
            changes["site_url"] = self.site_url
        if self.icon_url and not feed.icon_url:
            changes["icon_url"] = self.icon_url
        return feed.model_copy(update=changes)
