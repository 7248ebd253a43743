"""
FeedFlow Processing Module
==========================

Refresh orchestration: concurrent per-feed refresh, batched commit and
the background refresh schedule.
"""

from .refresh_manager import RefreshManager, RefreshReport, FeedRefreshResult

__all__ = [
    "RefreshManager",
    "RefreshReport",
    "FeedRefreshResult",
]
