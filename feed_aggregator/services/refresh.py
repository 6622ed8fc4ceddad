"""Refresh orchestrator.

Fans a refresh of many feed sources out to concurrent fetches and joins them
back into a single completion. Progress is published through a RefreshStatus
object that callers can poll, subscribe to, or await.
"""

import asyncio
from typing import Callable, Iterable, List, Optional

from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.models.schemas import FeedSource, FetchResult, RefreshSummary
from feed_aggregator.services.fetcher import (
    CompletionCallback,
    NotifyCallback,
    create_http_client,
    fetch_one,
)


StatusCallback = Callable[[bool], None]
SummaryCallback = Callable[[RefreshSummary], None]


class RefreshStatus:
    """Busy/idle state of refreshes in progress.

    Overlapping refreshes nest: the status only goes idle when the last one
    ends. Subscribers are called with the new value on every transition.
    """

    def __init__(self) -> None:
        self._active = 0
        self._subscribers: List[StatusCallback] = []
        self._idle_waiters: List[asyncio.Future] = []

    @property
    def busy(self) -> bool:
        return self._active > 0

    def subscribe(self, callback: StatusCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: StatusCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def begin(self) -> None:
        self._active += 1
        if self._active == 1:
            self._publish()

    def end(self) -> None:
        if self._active == 0:
            return
        self._active -= 1
        if self._active == 0:
            self._publish()
            waiters, self._idle_waiters = self._idle_waiters, []
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(None)

    async def wait_idle(self) -> None:
        """Return once no refresh is in progress."""
        if not self.busy:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter

    def _publish(self) -> None:
        busy = self.busy
        for callback in list(self._subscribers):
            callback(busy)


class RefreshOrchestrator:
    """Refreshes feed sources concurrently.

    Args:
        status: Shared busy/idle state (a private one is created if omitted)
        notify: Called with a source and its new articles after each fetch
            that added something
    """

    def __init__(
        self,
        status: Optional[RefreshStatus] = None,
        notify: Optional[NotifyCallback] = None,
    ) -> None:
        self.status = status or RefreshStatus()
        self.notify = notify

    async def fetch_one(
        self,
        source: FeedSource,
        on_complete: Optional[CompletionCallback] = None,
    ) -> FetchResult:
        """Refresh one source, marking the status busy while it runs."""
        self.status.begin()
        try:
            return await fetch_one(source, notify=self.notify, on_complete=on_complete)
        finally:
            self.status.end()

    async def refresh_all(
        self,
        sources: Iterable[FeedSource],
        on_complete: Optional[SummaryCallback] = None,
    ) -> RefreshSummary:
        """Refresh every source and join on all of them.

        ``on_complete`` runs once, on the event loop, after every fetch has
        settled. A failing source never prevents it.

        Args:
            sources: Feed sources to refresh
            on_complete: Optional callback receiving the summary

        Returns:
            RefreshSummary with one FetchResult per source
        """
        logger = UnifiedLogger.get_logger(__name__)
        sources = list(sources)

        if not sources:
            summary = RefreshSummary()
            if on_complete is not None:
                on_complete(summary)
            return summary

        logger.info(f"Refreshing {len(sources)} feeds")
        self.status.begin()
        try:
            async with create_http_client() as client:
                outcomes = await asyncio.gather(
                    *(fetch_one(source, client=client, notify=self.notify) for source in sources),
                    return_exceptions=True,
                )
        finally:
            self.status.end()

        results: List[FetchResult] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Error refreshing {source.name}: {outcome}")
                outcome = FetchResult(source_name=source.name, error=str(outcome))
            results.append(outcome)

        summary = RefreshSummary(results=results)
        logger.info(
            f"Refreshed {summary.sources_refreshed} feeds, "
            f"{summary.total_new_articles} new articles"
        )

        if on_complete is not None:
            on_complete(summary)
        return summary
