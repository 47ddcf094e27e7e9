"""Feed synchronization pipeline, separated from the daemon entry point for testability."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from rich.console import Console

from .article_state import ArticleStateStore
from .enhancer import ContentEnhancer, needs_enhancement
from .errors import SyncError, describe_error
from .fetchers.rss import FeedParser
from .models import Feed, FeedError, FeedItem, now_ms, parse_iso
from .observability import log as obs_log
from .settings_store import SettingsRepository
from .storage import FeedStorage
from .summarizer import ArticleSummarizer
from .transcriber import YouTubeTranscriber

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SyncState(str, Enum):
    """Stages of one feed-sync attempt. FAILED is reachable from any stage."""

    PENDING = "pending"
    FETCHING = "fetching"
    FILTERING = "filtering"
    ENHANCING = "enhancing"
    WRITING = "writing"
    CLEANING_UP = "cleaning_up"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of one feed sync."""

    feed_id: str
    feed_title: str
    state: SyncState = SyncState.PENDING
    items_fetched: int = 0
    items_selected: int = 0
    items_written: int = 0
    files_cleaned: int = 0
    error: Optional[str] = None
    failed_at: Optional[SyncState] = None

    @property
    def succeeded(self) -> bool:
        return self.state == SyncState.SUCCEEDED


@dataclass
class SyncSummary:
    """Outcome of an all-feeds sync."""

    results: List[SyncResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    states_pruned: int = 0

    @property
    def succeeded(self) -> List[SyncResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> List[SyncResult]:
        return [r for r in self.results if r.state == SyncState.FAILED]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def filter_new_items(
    items: List[FeedItem],
    last_update: Optional[str],
    filter_duplicates: bool,
    cap: int,
    is_deleted: Callable[[FeedItem], bool] = lambda item: False,
) -> List[FeedItem]:
    """Select the items a sync pass should materialize.

    Order: watermark (strictly newer than last_update), then tombstoned
    articles dropped, then the first ``cap`` survivors in upstream order.
    """
    if filter_duplicates:
        watermark = parse_iso(last_update) or EPOCH
        items = [item for item in items if _as_utc(item.pub_date) > watermark]

    items = [item for item in items if not is_deleted(item)]
    return items[: max(cap, 0)]


class SyncEngine:
    """Runs fetch -> filter -> enhance -> write -> clean-up for feeds."""

    def __init__(
        self,
        repository: SettingsRepository,
        parser: FeedParser,
        storage: FeedStorage,
        enhancer: Optional[ContentEnhancer] = None,
        summarizer: Optional[ArticleSummarizer] = None,
        transcriber: Optional[YouTubeTranscriber] = None,
        console: Optional[Console] = None,
    ):
        """Initialize engine with dependencies.

        Args:
            repository: Shared settings repository (feeds, states, globals)
            parser: Feed fetcher/parser
            storage: Vault file storage
            enhancer: Optional full-page content enhancer
            summarizer: Optional LLM summarizer; None disables summarize/rewrite
            transcriber: Optional YouTube transcriber; None disables transcribe
            console: Optional Rich console for output
        """
        self.repository = repository
        self.parser = parser
        self.storage = storage
        self.enhancer = enhancer
        self.summarizer = summarizer
        self.transcriber = transcriber
        self.article_states = ArticleStateStore(repository)
        self.console = console or Console()

    @property
    def settings(self):
        return self.repository.settings

    async def sync_feed(self, feed: Feed) -> SyncResult:
        """Sync one feed end to end.

        On success the feed's watermark and last_successful_fetch advance and
        last_error is cleared. On failure last_error is recorded and persisted.

        Raises:
            SyncError: Wrapping the underlying failure, with the feed id
        """
        # Apply bookkeeping to the live record, not a stale copy
        feed = self.settings.find_feed(feed.id) or feed
        result = SyncResult(feed_id=feed.id, feed_title=feed.title)
        start_time = time.time()

        try:
            result.state = SyncState.FETCHING
            normalized = await self.parser.fetch(feed.url)
            result.items_fetched = len(normalized.items)

            result.state = SyncState.FILTERING
            cap = feed.max_articles or self.settings.max_articles
            items = filter_new_items(
                normalized.items,
                feed.last_update,
                feed.filter_duplicates,
                cap,
                is_deleted=lambda item: self.article_states.is_deleted(feed.url, item.link),
            )
            result.items_selected = len(items)

            result.state = SyncState.ENHANCING
            items = [await self._prepare_item(feed, item) for item in items]

            result.state = SyncState.WRITING
            result.items_written = self.storage.write_feed(feed, items, self.settings)

            result.state = SyncState.CLEANING_UP
            if self.settings.retention_days > 0:
                result.files_cleaned = self.storage.clean_old(
                    feed, self.settings.rss_folder, self.settings.retention_days
                )

        except Exception as e:
            result.failed_at = result.state
            result.state = SyncState.FAILED
            result.error = describe_error(e)

            feed.last_error = FeedError(message=result.error, timestamp=now_ms())
            await self._save_quietly()

            obs_log(
                "sync.feed.error",
                feed_id=feed.id,
                feed_url=feed.url,
                stage=result.failed_at.value,
                error=result.error,
                duration_ms=int((time.time() - start_time) * 1000),
                status="error",
            )
            raise SyncError(
                feed.id, f"Sync failed for {feed.title} during {result.failed_at.value}: {result.error}"
            ) from e

        feed.last_update = datetime.now(timezone.utc).isoformat()
        feed.last_successful_fetch = now_ms()
        feed.last_error = None
        await self.repository.save()

        result.state = SyncState.SUCCEEDED
        obs_log(
            "sync.feed.complete",
            feed_id=feed.id,
            feed_url=feed.url,
            items_fetched=result.items_fetched,
            items_written=result.items_written,
            files_cleaned=result.files_cleaned,
            duration_ms=int((time.time() - start_time) * 1000),
            status="success",
        )
        return result

    async def sync_all_feeds(self) -> SyncSummary:
        """Sync every active feed; one feed's failure never stops the others.

        Also prunes article states past the retention window.
        """
        summary = SyncSummary()
        start_time = time.time()

        self.settings.last_fetch = now_ms()
        await self.repository.save()

        feeds = list(self.settings.feeds)
        self.console.print(f"[bold]Syncing {len(feeds)} feeds[/bold]")

        for feed in feeds:
            if not feed.id or not feed.url:
                logger.warning(f"Skipping malformed feed record: {feed!r}")
                summary.skipped.append(feed.id or feed.url or "<unknown>")
                continue
            if not feed.is_active:
                logger.debug(f"Skipping paused feed {feed.title}")
                summary.skipped.append(feed.id)
                continue

            try:
                result = await self.sync_feed(feed)
                self.console.print(
                    f"  📰 {feed.title}: {result.items_written} new of {result.items_fetched}"
                )
            except Exception as e:
                logger.error(f"Error syncing feed {feed.title}: {e}")
                self.console.print(f"  [red]❌ {feed.title}: {describe_error(e)}[/red]")
                result = SyncResult(
                    feed_id=feed.id,
                    feed_title=feed.title,
                    state=SyncState.FAILED,
                    error=describe_error(e),
                )
            summary.results.append(result)

        if self.settings.retention_days > 0:
            summary.states_pruned = self.article_states.prune(self.settings.retention_days)
            if summary.states_pruned:
                await self.repository.save()

        obs_log(
            "sync.all.complete",
            feeds_total=len(feeds),
            feeds_succeeded=len(summary.succeeded),
            feeds_failed=len(summary.failed),
            feeds_skipped=len(summary.skipped),
            states_pruned=summary.states_pruned,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return summary

    async def _prepare_item(self, feed: Feed, item: FeedItem) -> FeedItem:
        """Enhance and apply feature toggles; each step is best effort."""
        if self.enhancer and needs_enhancement(item):
            item = await self.enhancer.enhance(item)

        if feed.transcribe and self.transcriber:
            item = await self._best_effort("transcribe", self.transcriber.transcribe, item)
        if feed.rewrite and self.summarizer:
            item = await self._best_effort("rewrite", self.summarizer.rewrite, item)
        if feed.summarize and self.summarizer:
            item = await self._best_effort("summarize", self.summarizer.summarize, item)
        return item

    async def _best_effort(self, action: str, step, item: FeedItem) -> FeedItem:
        try:
            return await step(item)
        except Exception as e:
            logger.warning(f"{action} failed for {item.link}: {e}")
            return item

    async def _save_quietly(self) -> None:
        # Keep the original sync failure as the raised error
        try:
            await self.repository.save()
        except Exception as e:
            logger.error(f"Failed to persist feed error state: {e}")
