"""Subscription lifecycle: add, remove, pause, toggle, edit and move feeds."""

import logging
from typing import List, Optional

from .errors import DuplicateFeedError, FeedNotFoundError, MissingCredentialsError
from .fetchers.rss import FeedParser
from .models import Feed, FeedStatus, FeedType
from .settings_store import SettingsRepository
from .storage import FeedStorage

logger = logging.getLogger(__name__)

FEATURES = ("summarize", "transcribe", "rewrite")
EDITABLE_FIELDS = ("title", "max_articles", "update_interval", "filter_duplicates", "type")


class FeedManager:
    """Mutates the feed list and keeps disk output and timers consistent with it.

    Every operation persists through the shared SettingsRepository. When a
    scheduler is attached, ``status=active`` always means a live timer.
    """

    def __init__(
        self,
        repository: SettingsRepository,
        storage: FeedStorage,
        parser: FeedParser,
        scheduler=None,
        has_llm_credentials: bool = False,
        default_update_interval: int = 60,
    ):
        self.repository = repository
        self.storage = storage
        self.parser = parser
        self.scheduler = scheduler
        self.has_llm_credentials = has_llm_credentials
        self.default_update_interval = default_update_interval

    @property
    def settings(self):
        return self.repository.settings

    def list_feeds(self, group: Optional[str] = None) -> List[Feed]:
        if group is None:
            return list(self.settings.feeds)
        return [feed for feed in self.settings.feeds if feed.group == group]

    def get_feed(self, feed_id: str) -> Feed:
        """Look up a feed by id or unambiguous id prefix.

        Raises:
            FeedNotFoundError: If no single feed matches
        """
        feed = self.settings.find_feed(feed_id)
        if feed is not None:
            return feed

        matches = [f for f in self.settings.feeds if f.id.startswith(feed_id)]
        if feed_id and len(matches) == 1:
            return matches[0]
        raise FeedNotFoundError(feed_id)

    async def add_feed(
        self,
        url: str,
        title: Optional[str] = None,
        group: str = "",
        feed_type: FeedType = FeedType.MULTIPLE,
        validate: bool = True,
    ) -> Feed:
        """Subscribe to a feed.

        Args:
            url: Feed address
            title: Display name (taken from the feed document if omitted)
            group: Optional group, created if unknown
            feed_type: Multi-file or single-file output
            validate: Fetch the feed first so bad URLs are rejected

        Raises:
            DuplicateFeedError: URL already subscribed (case-insensitive)
            FetchError: Validation fetch failed
            ParseError: URL is not an RSS or Atom feed
        """
        url = url.strip()
        if self.settings.find_feed_by_url(url):
            raise DuplicateFeedError(f"Feed already exists: {url}")

        feed_title = title
        if validate:
            normalized = await self.parser.fetch(url)
            feed_title = feed_title or normalized.title

        feed = Feed(
            url=url,
            title=feed_title or url,
            group=group,
            type=feed_type,
            update_interval=self.default_update_interval,
        )

        if group and group not in self.settings.groups:
            self.settings.groups.append(group)
        if feed.type == FeedType.MULTIPLE:
            self.storage.ensure_folder(
                self.storage.folder_for(feed, self.settings.rss_folder)
            )

        self.settings.feeds.append(feed)
        await self.repository.save()

        if self.scheduler is not None:
            self.scheduler.schedule_feed(feed)

        logger.info(f"Added feed {feed.title} ({feed.url})")
        return feed

    async def remove_feed(self, feed_id: str, delete_files: bool = True) -> Feed:
        """Unsubscribe, optionally deleting the feed's folder or aggregate file."""
        feed = self.get_feed(feed_id)

        if self.scheduler is not None:
            self.scheduler.unschedule_feed(feed.id)
        if delete_files:
            self.storage.remove_output(feed, self.settings.rss_folder)

        self.settings.feeds = [f for f in self.settings.feeds if f.id != feed.id]
        await self.repository.save()

        logger.info(f"Removed feed {feed.title}")
        return feed

    async def set_status(self, feed_id: str, status: FeedStatus) -> Feed:
        """Pause or resume a feed and bring its timer in line."""
        feed = self.get_feed(feed_id)
        feed.status = FeedStatus(status)
        await self.repository.save()

        if self.scheduler is not None:
            self.scheduler.schedule_feed(feed)
        return feed

    async def set_feature(self, feed_id: str, feature: str, enabled: bool) -> Feed:
        """Toggle summarize, transcribe or rewrite.

        Raises:
            ValueError: Unknown feature name
            MissingCredentialsError: Enabling without LLM credentials configured
        """
        if feature not in FEATURES:
            raise ValueError(f"Unknown feature '{feature}', expected one of {', '.join(FEATURES)}")

        feed = self.get_feed(feed_id)
        if enabled and not self.has_llm_credentials:
            raise MissingCredentialsError(
                f"Cannot enable {feature}: configure an LLM API key in config.toml first"
            )

        setattr(feed, feature, enabled)
        await self.repository.save()
        return feed

    async def update_feed(self, feed_id: str, **changes) -> Feed:
        """Edit feed fields; a title change renames the on-disk output.

        Switching between single-file and multi-file output is only allowed
        before the feed has written any articles.

        Raises:
            ValueError: Unknown field, invalid value, or a type switch with existing output
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        feed = self.get_feed(feed_id)

        if "update_interval" in changes and int(changes["update_interval"]) < 1:
            raise ValueError("update_interval must be at least 1 minute")
        if changes.get("max_articles") is not None and int(changes["max_articles"]) < 1:
            raise ValueError("max_articles must be at least 1")

        rss_folder = self.settings.rss_folder
        new_type = FeedType(changes["type"]) if "type" in changes else feed.type
        if new_type != feed.type and self.storage.has_output(feed, rss_folder):
            raise ValueError(
                f"Cannot switch {feed.title} to {new_type.value} output while "
                f"{self.storage.output_path(feed, rss_folder)} holds articles"
            )

        new_title = changes.get("title")
        if new_title and new_title != feed.title:
            old_path = self.storage.output_path(feed, rss_folder)
            feed.title = new_title
            self.storage.move_output(old_path, self.storage.output_path(feed, rss_folder))

        if "max_articles" in changes:
            value = changes["max_articles"]
            feed.max_articles = int(value) if value is not None else None
        if "update_interval" in changes:
            feed.update_interval = int(changes["update_interval"])
        if "filter_duplicates" in changes:
            feed.filter_duplicates = bool(changes["filter_duplicates"])
        if new_type != feed.type:
            # Only an empty folder can be left behind here
            self.storage.remove_output(feed, rss_folder)
            feed.type = new_type
            if feed.type == FeedType.MULTIPLE:
                self.storage.ensure_folder(self.storage.folder_for(feed, rss_folder))

        await self.repository.save()

        if self.scheduler is not None and "update_interval" in changes:
            self.scheduler.schedule_feed(feed)
        return feed

    async def move_feed(self, feed_id: str, group: str) -> Feed:
        """Move a feed to another group, relocating its folder or file."""
        feed = self.get_feed(feed_id)
        if feed.group == group:
            return feed

        rss_folder = self.settings.rss_folder
        self.storage.move_output(
            self.storage.output_path(feed, rss_folder),
            self.storage.output_path(feed, rss_folder, group=group),
        )
        feed.group = group
        if group and group not in self.settings.groups:
            self.settings.groups.append(group)

        await self.repository.save()
        logger.info(f"Moved {feed.title} to group '{group or '(none)'}'")
        return feed

    async def add_group(self, name: str) -> None:
        name = name.strip()
        if not name:
            raise ValueError("Group name cannot be empty")
        if name in self.settings.groups:
            raise ValueError(f"Group already exists: {name}")

        self.storage.ensure_folder(self.storage.group_folder(self.settings.rss_folder, name))
        self.settings.groups.append(name)
        await self.repository.save()

    async def remove_group(self, name: str) -> List[Feed]:
        """Delete a group; its feeds move to no group before its folder is removed.

        Returns:
            The feeds that were moved out of the group
        """
        if name not in self.settings.groups:
            raise ValueError(f"Unknown group: {name}")

        moved = []
        for feed in self.list_feeds(group=name):
            moved.append(await self.move_feed(feed.id, ""))

        self.storage.remove_folder(self.storage.group_folder(self.settings.rss_folder, name))
        self.settings.groups = [g for g in self.settings.groups if g != name]
        await self.repository.save()
        return moved
