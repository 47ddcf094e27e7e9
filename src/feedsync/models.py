"""Data models for feedsync."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)

# Composite article ids are feed_url + ARTICLE_ID_SEPARATOR + link
ARTICLE_ID_SEPARATOR = "::"


class FeedType(str, Enum):
    """How a feed's articles are materialized on disk."""

    MULTIPLE = "multiple"  # One file per article
    SINGLE = "single"  # One append-only file per feed


class FeedStatus(str, Enum):
    """Whether a feed is scheduled and synced."""

    ACTIVE = "active"
    PAUSED = "paused"


class FetchFrequency(str, Enum):
    """Global polling cadence checked by the scheduler heartbeat."""

    STARTUP = "startup"
    HOURLY = "hourly"
    DAILY = "daily"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp into a timezone-aware datetime.

    Naive values are assumed to be UTC. Returns None for empty or invalid input.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Could not parse ISO timestamp: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class FeedItem:
    """One entry of a fetched feed (ephemeral, lives for one sync pass)."""

    title: str
    link: str
    pub_date: datetime
    content: str = ""
    description: str = ""
    guid: str = ""
    author: Optional[str] = None
    categories: List[str] = field(default_factory=list)

    # Filled in by the content enhancer
    excerpt: Optional[str] = None
    site_name: Optional[str] = None
    language: Optional[str] = None
    reading_time: Optional[int] = None

    @property
    def body(self) -> str:
        """The text used for rendering and for the enhancement threshold."""
        return self.content or self.description


@dataclass
class NormalizedFeed:
    """A parsed RSS or Atom document."""

    title: str
    description: str
    link: str
    items: List[FeedItem] = field(default_factory=list)


@dataclass
class FeedError:
    """Last failure recorded on a feed."""

    message: str
    timestamp: int  # epoch millis

    def to_dict(self) -> dict:
        return {"message": self.message, "timestamp": self.timestamp}


@dataclass
class Feed:
    """A configured subscription to one RSS/Atom source.

    The on-disk folder is derived from the global rss folder, the group and
    the title (see FeedStorage.folder_for); it is never stored here.
    """

    url: str
    title: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    group: str = ""
    type: FeedType = FeedType.MULTIPLE
    status: FeedStatus = FeedStatus.ACTIVE
    filter_duplicates: bool = True
    max_articles: Optional[int] = None  # None = global default
    update_interval: int = 60  # minutes between per-feed syncs
    summarize: bool = False
    transcribe: bool = False
    rewrite: bool = False
    last_update: Optional[str] = None  # ISO timestamp, duplicate-filter watermark
    last_successful_fetch: Optional[int] = None  # epoch millis
    last_error: Optional[FeedError] = None

    @property
    def is_active(self) -> bool:
        return self.status == FeedStatus.ACTIVE

    def to_dict(self) -> dict:
        """Convert to dictionary for settings persistence."""
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "group": self.group,
            "type": self.type.value,
            "status": self.status.value,
            "filter_duplicates": self.filter_duplicates,
            "max_articles": self.max_articles,
            "update_interval": self.update_interval,
            "summarize": self.summarize,
            "transcribe": self.transcribe,
            "rewrite": self.rewrite,
            "last_update": self.last_update,
            "last_successful_fetch": self.last_successful_fetch,
            "last_error": self.last_error.to_dict() if self.last_error else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feed":
        """Build a Feed from persisted data.

        Raises:
            ValueError: If required fields (id, url) are missing or enums are invalid
        """
        if not isinstance(data, dict):
            raise ValueError(f"Feed record must be an object, got {type(data).__name__}")
        if not data.get("url") or not data.get("id"):
            raise ValueError("Feed record requires 'id' and 'url'")

        last_error = data.get("last_error")
        return cls(
            id=data["id"],
            url=data["url"],
            title=data.get("title") or data["url"],
            group=data.get("group") or "",
            type=FeedType(data.get("type", FeedType.MULTIPLE.value)),
            status=FeedStatus(data.get("status", FeedStatus.ACTIVE.value)),
            filter_duplicates=bool(data.get("filter_duplicates", True)),
            max_articles=data.get("max_articles"),
            update_interval=int(data.get("update_interval", 60)),
            summarize=bool(data.get("summarize", False)),
            transcribe=bool(data.get("transcribe", False)),
            rewrite=bool(data.get("rewrite", False)),
            last_update=data.get("last_update"),
            last_successful_fetch=data.get("last_successful_fetch"),
            last_error=FeedError(**last_error) if last_error else None,
        )


@dataclass
class ArticleState:
    """Read/deleted flags for one article, keyed by composite article id."""

    read: bool = False
    deleted: bool = False
    last_update: int = 0  # epoch millis, retention clock

    def to_dict(self) -> dict:
        return {"read": self.read, "deleted": self.deleted, "last_update": self.last_update}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArticleState":
        if not isinstance(data, dict):
            raise ValueError(f"Article state must be an object, got {type(data).__name__}")
        return cls(
            read=bool(data.get("read", False)),
            deleted=bool(data.get("deleted", False)),
            last_update=int(data.get("last_update", 0)),
        )


DEFAULT_TEMPLATE = """# {{title}}

Status: ◯ Unread
Date: {{pubDate}}
Link: {{link}}

{{content}}
"""


@dataclass
class Settings:
    """Process-wide mutable state persisted as one JSON blob."""

    rss_folder: str = "RSS"
    max_articles: int = 50
    retention_days: int = 30
    fetch_frequency: FetchFrequency = FetchFrequency.STARTUP
    template: str = DEFAULT_TEMPLATE
    groups: List[str] = field(default_factory=list)
    feeds: List[Feed] = field(default_factory=list)
    article_states: Dict[str, ArticleState] = field(default_factory=dict)
    last_fetch: int = 0  # epoch millis of the last all-feeds sync

    def find_feed(self, feed_id: str) -> Optional[Feed]:
        """Return the feed with the given id, or None."""
        for feed in self.feeds:
            if feed.id == feed_id:
                return feed
        return None

    def find_feed_by_url(self, url: str) -> Optional[Feed]:
        """Return the feed whose URL matches case-insensitively, or None."""
        wanted = url.strip().lower()
        for feed in self.feeds:
            if feed.url.strip().lower() == wanted:
                return feed
        return None

    def to_dict(self) -> dict:
        return {
            "rss_folder": self.rss_folder,
            "max_articles": self.max_articles,
            "retention_days": self.retention_days,
            "fetch_frequency": self.fetch_frequency.value,
            "template": self.template,
            "groups": list(self.groups),
            "feeds": [feed.to_dict() for feed in self.feeds],
            "article_states": {
                key: state.to_dict() for key, state in self.article_states.items()
            },
            "last_fetch": self.last_fetch,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        """Build Settings from a persisted blob, filling defaults.

        Malformed feed records are dropped with a warning rather than failing
        the whole load.
        """
        data = data or {}
        defaults = cls()

        feeds = []
        for raw in data.get("feeds", []):
            try:
                feeds.append(Feed.from_dict(raw))
            except (ValueError, TypeError, KeyError) as e:
                logger.warning(f"Skipping malformed feed record {raw!r}: {e}")

        states = {}
        raw_states = data.get("article_states") or {}
        if not isinstance(raw_states, dict):
            logger.warning(f"Ignoring article_states of type {type(raw_states).__name__}")
            raw_states = {}
        for key, raw in raw_states.items():
            try:
                states[key] = ArticleState.from_dict(raw)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed article state {key}: {e}")

        try:
            frequency = FetchFrequency(
                data.get("fetch_frequency", defaults.fetch_frequency.value)
            )
        except ValueError:
            logger.warning(
                f"Unknown fetch_frequency {data.get('fetch_frequency')!r}, using startup"
            )
            frequency = FetchFrequency.STARTUP

        return cls(
            rss_folder=data.get("rss_folder", defaults.rss_folder),
            max_articles=int(data.get("max_articles", defaults.max_articles)),
            retention_days=int(data.get("retention_days", defaults.retention_days)),
            fetch_frequency=frequency,
            template=data.get("template", defaults.template),
            groups=[g for g in data.get("groups", []) if isinstance(g, str)],
            feeds=feeds,
            article_states=states,
            last_fetch=int(data.get("last_fetch", 0)),
        )
