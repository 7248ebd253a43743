"""
Refresh Manager
===============

Concurrent refresh of many feeds with a single batched commit.

Each feed is refreshed in its own task that fetches, normalizes and
computes the new articles without touching storage; the manager waits for
every task, then hands all feed updates and articles to the storage port
in one call. Failures of individual feeds are counted and reported, never
raised.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..config.settings import get_settings
from ..database.models import ArticleRecord, FeedDescriptor, FeedUpdate
from ..ingestion.feed_normalizer import FeedNormalizer
from ..storage.base import StoragePort
from ..utils.exceptions import FeedFlowError, handle_exception
from ..utils.logging import get_logger_for_component, PerformanceLogger

FeedsProvider = Callable[[], Union[Sequence[FeedDescriptor], Awaitable[Sequence[FeedDescriptor]]]]


@dataclass
class FeedRefreshResult:
    """Outcome of refreshing one feed, before it is committed."""

    feed_url: str
    update: Optional[FeedUpdate] = None
    new_articles: List[ArticleRecord] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RefreshReport:
    """Aggregate result of a refresh run."""

    attempted: int = 0
    succeeded: int = 0
    new_articles: int = 0
    last_error: Optional[Exception] = None
    failures: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)
    completed_at: Optional[datetime] = None

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def success(self) -> bool:
        return self.last_error is None

    @property
    def last_error_message(self) -> Optional[str]:
        return str(self.last_error) if self.last_error else None


class RefreshManager:
    """Coordinates bulk, single-feed and scheduled feed refreshes."""

    def __init__(
        self,
        storage: StoragePort,
        normalizer: Optional[FeedNormalizer] = None,
        interval_seconds: Optional[float] = None,
    ):
        """Initialize refresh manager.

        Args:
            storage: Storage port providing feeds and receiving refresh batches
            normalizer: Feed normalizer used to fetch feeds (default uses HTTP)
            interval_seconds: Background refresh interval (default from config)
        """
        self.settings = get_settings()
        self.logger = get_logger_for_component("refresh_manager")
        self.storage = storage
        self.normalizer = normalizer or FeedNormalizer()
        self.interval_seconds = interval_seconds or self.settings.refresh.interval_seconds

        self.is_refreshing = False
        self.refreshing_count = 0
        self.total_to_refresh = 0
        self.last_error: Optional[Exception] = None
        self.last_refresh_date: Optional[datetime] = None

        self._background_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def refresh_progress(self) -> float:
        """Completed fraction of the current run, between 0 and 1."""
        if self.total_to_refresh <= 0:
            return 0.0
        return self.refreshing_count / self.total_to_refresh

    @property
    def is_background_refresh_active(self) -> bool:
        return (
            self._background_task is not None
            and not self._background_task.done()
            and not (self._stop_event and self._stop_event.is_set())
        )

    async def refresh_all(
        self, feeds: Optional[Sequence[FeedDescriptor]] = None
    ) -> Optional[RefreshReport]:
        """Refresh every feed concurrently and commit once.

        Args:
            feeds: Feeds to refresh; defaults to every feed in storage

        Returns:
            RefreshReport, or None when another bulk refresh is already running
        """
        if self.is_refreshing:
            self.logger.info("Refresh already in progress, ignoring request")
            return None

        self._begin_run(0)
        try:
            if feeds is None:
                feeds = self.storage.list_feeds()
            feeds = list(feeds)
            self.total_to_refresh = len(feeds)

            with PerformanceLogger(self.logger, "bulk refresh", feed_count=len(feeds)):
                outcomes = await asyncio.gather(
                    *(self._refresh_counted(feed) for feed in feeds),
                    return_exceptions=True,
                )
                results = [
                    self._as_result(feed, outcome) for feed, outcome in zip(feeds, outcomes)
                ]
                report = self._commit(results)

            self.logger.info(
                f"Refreshed {report.succeeded}/{report.attempted} feeds, "
                f"{report.new_articles} new articles"
            )
            return report

        except Exception as e:
            # Listing feeds failed before any task ran
            self.last_error = handle_exception(e, self.logger, "bulk refresh")
            return RefreshReport(
                last_error=self.last_error, completed_at=datetime.now(timezone.utc)
            )

        finally:
            self._end_run()

    async def refresh_feed(self, feed: FeedDescriptor) -> RefreshReport:
        """Refresh a single feed and commit its changes.

        Not subject to the bulk-refresh guard. When no refresh is running it
        holds the refresh flag and progress counters for its own one-feed
        run, so a bulk refresh requested meanwhile is rejected; during a bulk
        refresh it leaves them untouched.
        """
        standalone = not self.is_refreshing
        if standalone:
            self._begin_run(1)

        try:
            refresh = self._refresh_counted if standalone else self._refresh_single_feed
            try:
                outcome = await refresh(feed)
            except Exception as e:
                outcome = e
            report = self._commit([self._as_result(feed, outcome)])
        finally:
            if standalone:
                self._end_run()

        self.last_refresh_date = report.completed_at
        return report

    def start_background_refresh(
        self,
        interval: Optional[float] = None,
        feeds_provider: Optional[FeedsProvider] = None,
    ) -> asyncio.Task:
        """Start the recurring refresh loop on the running event loop.

        The feed list is obtained from `feeds_provider` at every wake-up,
        so feeds added after the loop started are picked up.

        Args:
            interval: Seconds between refreshes (default from config)
            feeds_provider: Callable returning the feeds to refresh (default: storage)
        """
        self.stop_background_refresh()

        interval = interval or self.interval_seconds
        provider = feeds_provider or self.storage.list_feeds
        self._stop_event = asyncio.Event()
        self._background_task = asyncio.get_running_loop().create_task(
            self._background_loop(interval, provider, self._stop_event)
        )
        self.logger.info(f"Background refresh started, every {interval}s")
        return self._background_task

    def stop_background_refresh(self) -> Optional[asyncio.Task]:
        """Stop the recurring loop at its next sleep boundary.

        An in-flight refresh is allowed to finish. Returns the loop task so
        callers can await its completion.
        """
        task = self._background_task
        if self._stop_event is not None:
            self._stop_event.set()
        self._background_task = None
        self._stop_event = None
        if task is not None:
            self.logger.info("Background refresh stopped")
        return task

    async def _background_loop(
        self, interval: float, provider: FeedsProvider, stop_event: asyncio.Event
    ) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                feeds = provider()
                if inspect.isawaitable(feeds):
                    feeds = await feeds
            except Exception as e:
                self.last_error = handle_exception(e, self.logger, "load scheduled feeds")
                continue

            try:
                await self.refresh_all(feeds)
            except Exception as e:
                self.last_error = handle_exception(e, self.logger, "scheduled refresh")

    async def _refresh_single_feed(self, feed: FeedDescriptor) -> FeedRefreshResult:
        """Fetch one feed and compute its update and new articles."""
        try:
            known_urls = set(self.storage.known_article_urls(feed.url))
            parsed = await self.normalizer.fetch_feed(feed.url)
            now = datetime.now(timezone.utc)

            new_articles = []
            for article in parsed.articles:
                if article.url in known_urls:
                    continue
                known_urls.add(article.url)
                new_articles.append(
                    ArticleRecord(
                        feed_url=feed.url,
                        guid=article.id,
                        title=article.title,
                        url=article.url,
                        content=article.content or article.summary,
                        summary=article.summary,
                        author=article.author,
                        published_at=article.published_at,
                        image_url=article.image_url,
                    )
                )

            update = FeedUpdate(
                feed_url=feed.url,
                last_fetched_at=now,
                title=parsed.title,
                site_url=parsed.site_url,
                icon_url=parsed.icon_url,
            )
            self.logger.debug(
                f"{len(new_articles)} new articles", extra={"feed_url": feed.url}
            )
            return FeedRefreshResult(feed.url, update=update, new_articles=new_articles)

        except FeedFlowError as e:
            self.last_error = e
            self.logger.warning(
                f"Failed to refresh feed '{feed.display_title}': {e}",
                extra={"feed_url": feed.url},
            )
            return FeedRefreshResult(feed.url, error=e)

    async def _refresh_counted(self, feed: FeedDescriptor) -> FeedRefreshResult:
        try:
            return await self._refresh_single_feed(feed)
        finally:
            self.refreshing_count += 1

    def _as_result(self, feed: FeedDescriptor, outcome) -> FeedRefreshResult:
        if isinstance(outcome, FeedRefreshResult):
            return outcome
        # Unexpected exception escaped the task
        error = handle_exception(outcome, self.logger, "refresh_feed", {"feed_url": feed.url})
        self.last_error = error
        return FeedRefreshResult(feed.url, error=error)

    def _commit(self, results: List[FeedRefreshResult]) -> RefreshReport:
        """Write all successful results to storage in one batch."""
        report = RefreshReport(attempted=len(results))
        updates: List[FeedUpdate] = []
        articles: List[ArticleRecord] = []

        for result in results:
            if result.success:
                report.succeeded += 1
                updates.append(result.update)
                articles.extend(result.new_articles)
            else:
                report.failures[result.feed_url] = str(result.error)
                report.errors[result.feed_url] = result.error

        report.new_articles = len(articles)
        if updates or articles:
            try:
                self.storage.apply_refresh(updates, articles)
            except Exception as e:
                self.last_error = handle_exception(e, self.logger, "apply_refresh")

        report.last_error = self.last_error
        report.completed_at = datetime.now(timezone.utc)
        return report

    def _begin_run(self, total: int) -> None:
        self.is_refreshing = True
        self.total_to_refresh = total
        self.refreshing_count = 0
        self.last_error = None

    def _end_run(self) -> None:
        self.is_refreshing = False
        self.refreshing_count = 0
        self.total_to_refresh = 0
        self.last_refresh_date = datetime.now(timezone.utc)
