"""Global heartbeat and per-feed timers on top of APScheduler."""

import logging
from datetime import timedelta
from enum import Enum
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .models import Feed, FetchFrequency, now_ms
from .observability import log as obs_log
from .settings_store import SettingsRepository
from .sync import SyncEngine

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000
DAY_MS = 86_400_000

HEARTBEAT_JOB_ID = "heartbeat"
INITIAL_JOB_ID = "initial_sync"
FEED_JOB_PREFIX = "feed:"


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def is_due(frequency: FetchFrequency, last_fetch: int, now: int) -> bool:
    """Whether the global cadence calls for an all-feeds sync.

    "startup" feeds are only synced once when the scheduler starts.
    """
    elapsed = now - last_fetch
    if frequency == FetchFrequency.DAILY:
        return elapsed >= DAY_MS
    if frequency == FetchFrequency.HOURLY:
        return elapsed >= HOUR_MS
    return False


def feed_job_id(feed_id: str) -> str:
    return f"{FEED_JOB_PREFIX}{feed_id}"


def _interval_minutes(feed: Feed) -> int:
    return max(int(feed.update_interval), 1)


class FeedScheduler:
    """Owns one heartbeat job plus one interval job per active feed.

    Job callbacks receive the feed id and re-read the feed at fire time, so a
    paused, edited or removed feed is never synced from a stale copy. A fresh
    AsyncIOScheduler is created on every start() so stop/start cycles work.
    """

    def __init__(
        self,
        repository: SettingsRepository,
        engine: SyncEngine,
        heartbeat_seconds: int = 60,
    ):
        self.repository = repository
        self.engine = engine
        self.heartbeat_seconds = heartbeat_seconds
        self.state = SchedulerState.STOPPED
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    async def start(self) -> None:
        """Start the heartbeat and per-feed jobs (no-op if already running).

        Must be called from within a running event loop.
        """
        if self.state != SchedulerState.STOPPED:
            logger.warning(f"Scheduler start requested while {self.state.value}")
            return

        self._set_state(SchedulerState.STARTING)
        self._scheduler = AsyncIOScheduler()
        self._scheduler.start()

        settings = self.repository.settings
        if settings.fetch_frequency == FetchFrequency.STARTUP:
            self._scheduler.add_job(
                func=self._run_all,
                trigger="date",  # Run once immediately
                id=INITIAL_JOB_ID,
                name="Initial sync on startup",
            )

        self._scheduler.add_job(
            func=self._heartbeat,
            trigger=IntervalTrigger(seconds=self.heartbeat_seconds),
            id=HEARTBEAT_JOB_ID,
            name="Global fetch-frequency check",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        for feed in settings.feeds:
            self.schedule_feed(feed)

        self._set_state(SchedulerState.RUNNING)
        logger.info(
            f"Scheduler started: heartbeat every {self.heartbeat_seconds}s, "
            f"{len(self.scheduled_feed_ids())} feed timers"
        )

    def stop(self) -> None:
        """Remove every job and shut down. Safe to call when already stopped.

        Syncs already in flight are not cancelled.
        """
        if self.state == SchedulerState.STOPPED or self._scheduler is None:
            self.state = SchedulerState.STOPPED
            return

        self._set_state(SchedulerState.STOPPING)
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._set_state(SchedulerState.STOPPED)

    def schedule_feed(self, feed: Feed) -> bool:
        """(Re)create a feed's timer; only active feeds get one.

        Calling it twice never leaves two timers for the same feed.

        Returns:
            True if a timer is now live for the feed
        """
        self.unschedule_feed(feed.id)

        if self._scheduler is None or not feed.is_active:
            return False

        interval = _interval_minutes(feed)
        self._scheduler.add_job(
            func=self._run_feed,
            args=[feed.id],
            trigger=IntervalTrigger(minutes=interval),
            id=feed_job_id(feed.id),
            name=f"Sync {feed.title}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.debug(f"Scheduled {feed.title} every {interval} minutes")
        return True

    def unschedule_feed(self, feed_id: str) -> None:
        """Remove a feed's timer; a no-op if it has none."""
        if self.is_scheduled(feed_id):
            self._scheduler.remove_job(feed_job_id(feed_id))
            logger.debug(f"Unscheduled feed {feed_id}")

    def reschedule_all(self) -> None:
        """Bring feed timers in line with the current settings.

        Runs after another process changed the settings. Timers whose feed is
        still active with the same interval are left alone and keep their phase.
        """
        if self._scheduler is None:
            return

        feeds = {feed.id: feed for feed in self.repository.settings.feeds}
        for feed_id in self.scheduled_feed_ids():
            if feed_id not in feeds:
                self.unschedule_feed(feed_id)

        for feed in feeds.values():
            job = self._scheduler.get_job(feed_job_id(feed.id))
            if (
                job is None
                or not feed.is_active
                or job.trigger.interval != timedelta(minutes=_interval_minutes(feed))
            ):
                self.schedule_feed(feed)

    def is_scheduled(self, feed_id: str) -> bool:
        return (
            self._scheduler is not None
            and self._scheduler.get_job(feed_job_id(feed_id)) is not None
        )

    def scheduled_feed_ids(self) -> List[str]:
        if self._scheduler is None:
            return []
        return [
            job.id[len(FEED_JOB_PREFIX):]
            for job in self._scheduler.get_jobs()
            if job.id.startswith(FEED_JOB_PREFIX)
        ]

    async def _run_feed(self, feed_id: str) -> None:
        await self._refresh_settings()
        feed = self.repository.settings.find_feed(feed_id)
        if feed is None or not feed.is_active:
            logger.info(f"Feed {feed_id} gone or paused, dropping its timer")
            self.unschedule_feed(feed_id)
            return

        try:
            await self.engine.sync_feed(feed)
        except Exception as e:
            # The job stays scheduled; next tick retries
            logger.error(f"Scheduled sync failed for {feed.title}: {e}")

    async def _heartbeat(self) -> None:
        await self._refresh_settings()
        settings = self.repository.settings
        if is_due(settings.fetch_frequency, settings.last_fetch, now_ms()):
            logger.info(f"Global {settings.fetch_frequency.value} sync is due")
            await self._run_all()

    async def _refresh_settings(self) -> None:
        # CLI commands edit the same settings file from other processes
        try:
            if await self.repository.refresh():
                self.reschedule_all()
        except Exception as e:
            logger.error(f"Settings refresh failed: {e}")

    async def _run_all(self) -> None:
        try:
            await self.engine.sync_all_feeds()
        except Exception as e:
            logger.error(f"All-feeds sync failed: {e}")

    def _set_state(self, state: SchedulerState) -> None:
        self.state = state
        obs_log("scheduler.state", state=state.value)
