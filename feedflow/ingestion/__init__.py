"""
FeedFlow Ingestion Module
=========================

Feed and page ingestion components.

This module handles:
- HTTP fetching behind a swappable fetch port
- RSS, Atom and JSON Feed normalization
- Readable content extraction from article pages
- OPML subscription import and export
"""
