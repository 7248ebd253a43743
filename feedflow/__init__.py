"""
FeedFlow - Feed Ingestion Pipeline
==================================

Subscription management and refresh pipeline for RSS, Atom and JSON feeds.

Main Components:
- OPML codec: subscription import/export
- Feed normalizer: one article shape across feed dialects
- Content extractor: readable text from article pages
- Refresh manager: concurrent refresh with batched storage commits
"""

__version__ = "1.0.0"
__author__ = "FeedFlow Development Team"
__description__ = "RSS/Atom/JSON feed ingestion pipeline"

from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedFlowError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedFlowError",
]
