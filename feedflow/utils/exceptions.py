"""
FeedFlow Custom Exceptions
==========================

Exception hierarchy for the ingestion pipeline with error codes, context
information, and user-friendly error messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Network errors (N001-N099)
    NETWORK_ERROR = "N001"
    NETWORK_TIMEOUT = "N002"

    # Feed parsing errors (F001-F099)
    FEED_PARSE_ERROR = "F001"
    FEED_UNSUPPORTED_FORMAT = "F002"
    FEED_HTTP_STATUS = "F003"

    # OPML errors (O001-O099)
    OPML_PARSE_ERROR = "O001"
    OPML_INVALID_DATA = "O002"

    # Content extraction errors (P001-P099)
    CONTENT_PARSE_ERROR = "P001"
    CONTENT_ENCODING_ERROR = "P002"
    CONTENT_NOT_FOUND = "P003"

    # Storage errors (D001-D099)
    STORAGE_ERROR = "D001"
    STORAGE_CONSTRAINT = "D002"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"


class FeedFlowError(Exception):
    """Base exception for all FeedFlow errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedFlow error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the caller may retry the operation
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(FeedFlowError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class ValidationError(FeedFlowError):
    """Input validation errors (URLs, feed descriptors)."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class NetworkError(FeedFlowError):
    """Fetch, timeout and DNS failures. Retryable by the caller."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        """Initialize network error.

        Args:
            message: Error message
            url: URL that was being fetched
            **kwargs: Additional arguments for FeedFlowError
        """
        context = kwargs.get("context", {})
        if url:
            context["url"] = url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Network error: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ParseError(FeedFlowError):
    """Malformed feed, OPML or HTML input. Not retryable."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        """Initialize parse error.

        Args:
            message: Error message, usually carrying the decoder's own message
            source: URL or file the input came from
            **kwargs: Additional arguments for FeedFlowError
        """
        context = kwargs.get("context", {})
        if source:
            context["source"] = source

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_PARSE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Failed to parse: {message}"),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedParseError(ParseError):
    """RSS, Atom or JSON Feed payload could not be parsed."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_PARSE_ERROR)
        kwargs.setdefault("user_message", f"Failed to parse feed: {message}")
        super().__init__(message, source=feed_url, **kwargs)


class OPMLParseError(ParseError):
    """OPML document could not be parsed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.OPML_PARSE_ERROR)
        kwargs.setdefault("user_message", f"Failed to parse OPML: {message}")
        super().__init__(message, **kwargs)


class ContentParseError(ParseError):
    """HTML document could not be parsed for extraction."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.CONTENT_PARSE_ERROR)
        kwargs.setdefault("user_message", f"Parse error: {message}")
        super().__init__(message, **kwargs)


class EncodingError(FeedFlowError):
    """Fetched bytes could not be decoded with the detected encoding."""

    def __init__(self, message: str, encoding: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if encoding:
            context["encoding"] = encoding

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_ENCODING_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Could not decode HTML content"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class NoContentError(FeedFlowError):
    """Extraction found no usable article content."""

    def __init__(self, message: str = "No article content found", **kwargs):
        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_NOT_FOUND),
            context=kwargs.get("context"),
            user_message=kwargs.get("user_message", "Could not find article content"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class StorageError(FeedFlowError):
    """Errors surfaced from a storage port implementation."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        """Initialize storage error.

        Args:
            message: Error message
            operation: Storage operation that failed
            **kwargs: Additional arguments for FeedFlowError
        """
        context = kwargs.get("context", {})
        if operation:
            context["operation"] = operation

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.STORAGE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Storage operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> FeedFlowError:
    """Convert generic exceptions to FeedFlow exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        FeedFlow exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, FeedFlowError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = NetworkError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.NETWORK_TIMEOUT
            if isinstance(exception, TimeoutError)
            else ErrorCode.NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
        )

    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            message=f"Required file not found during {operation}: {str(exception)}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="File not found",
        )

    elif isinstance(exception, UnicodeError):
        error = EncodingError(
            message=f"Decoding failed during {operation}: {str(exception)}",
            context=context,
        )

    else:
        error = FeedFlowError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: FeedFlowError) -> bool:
    """Check if an error is worth retrying by the caller.

    Args:
        exception: FeedFlow exception to check

    Returns:
        True if the error is potentially retryable
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.NETWORK_TIMEOUT,
        ErrorCode.STORAGE_ERROR,
    }

    return exception.error_code in retryable_codes


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, FeedFlowError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
