"""
FeedFlow Input Validators
=========================

URL validation and resolution helpers shared by the feed normalizer, the
OPML codec and the storage models.
"""

from urllib.parse import urljoin, urlparse, urlunparse
from typing import Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and resolution utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed subscription URL.

        Scheme and host are lower-cased; path, query and fragment are kept
        as given so the URL stays usable as an identity key.

        Raises:
            ValidationError: If URL is not an absolute http(s) URL
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}", field_name="url"
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                field_name="url",
            )

        if not parsed.netloc:
            raise ValidationError("URL must include a hostname", field_name="url")

        return urlunparse(
            parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower())
        )

    @classmethod
    def resolve_absolute_url(
        cls, candidate: Optional[str], base_url: Optional[str] = None
    ) -> Optional[str]:
        """Resolve a possibly-relative URL to an absolute http(s) URL.

        Args:
            candidate: URL as found in the document
            base_url: Base to resolve relative references against

        Returns:
            The absolute URL, or None if it cannot be resolved
        """
        if not candidate or not isinstance(candidate, str):
            return None

        candidate = candidate.strip()
        if not candidate:
            return None

        try:
            resolved = urljoin(base_url, candidate) if base_url else candidate
            parsed = urlparse(resolved)
        except ValueError:
            return None

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES or not parsed.netloc:
            return None

        return resolved

    @classmethod
    def is_valid_url(cls, url: Optional[str]) -> bool:
        return cls.resolve_absolute_url(url) is not None

    @staticmethod
    def host_of(url: Optional[str]) -> Optional[str]:
        """Return the host part of a URL, or None."""
        if not url:
            return None
        try:
            return urlparse(url).hostname
        except ValueError:
            return None
