"""RSS/Atom fetcher producing normalized feeds."""

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Union

import feedparser
import httpx

from ..config import DEFAULT_USER_AGENT
from ..errors import FetchError, ParseError, classify_exception, kind_for_status
from ..models import FeedItem, NormalizedFeed

logger = logging.getLogger(__name__)

FEED_ACCEPT = (
    "application/atom+xml,application/xml,text/xml,application/rss+xml,*/*"
)


def build_client(
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared HTTP client used for feeds, pages and OPML validation.

    Args:
        user_agent: Browser-like agent; some servers reject default agents
        timeout: Request timeout in seconds, None keeps the httpx default
        transport: Optional transport override (tests use httpx.MockTransport)
    """
    kwargs = {
        "follow_redirects": True,
        "headers": {"User-Agent": user_agent, "Accept": FEED_ACCEPT},
    }
    if timeout is not None:
        kwargs["timeout"] = timeout
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(**kwargs)


def _struct_to_datetime(value) -> Optional[datetime]:
    # feedparser normalizes parsed dates to UTC time tuples
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        logger.debug(f"Could not convert parsed date {value}: {e}")
        return None


class FeedParser:
    """Fetches a feed URL and maps it to a NormalizedFeed.

    Only the network call has side effects; nothing is written. Failures
    surface as FetchError (transport/HTTP) or ParseError (not RSS or Atom)
    and are never retried here.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: Optional[float] = None,
    ):
        """Initialize the parser.

        Args:
            client: Shared AsyncClient (one is created and owned if omitted)
            user_agent: User agent for an owned client
            timeout: Timeout in seconds for an owned client
        """
        self._owns_client = client is None
        self.client = client or build_client(user_agent, timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(self, url: str) -> NormalizedFeed:
        """Fetch and parse a feed.

        Args:
            url: Feed address

        Returns:
            NormalizedFeed with items in upstream order

        Raises:
            FetchError: Network failure or non-success HTTP status
            ParseError: Body is not a recognizable RSS or Atom document
        """
        start_time = time.time()
        logger.info(f"Fetching feed: {url}")

        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            kind = classify_exception(e)
            logger.warning(f"Fetch failed for {url}: {kind.value} ({e})")
            raise FetchError(url, kind) from e

        if response.status_code >= 400:
            raise FetchError(
                url,
                kind_for_status(response.status_code),
                status_code=response.status_code,
            )

        feed = self.parse(response.content, url)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Parsed {len(feed.items)} items from {url} in {duration_ms}ms")
        return feed

    def parse(self, document: Union[bytes, str], url: str = "") -> NormalizedFeed:
        """Parse a feed document already in memory.

        Raw bytes let feedparser honour the encoding declared in the XML prolog.

        Raises:
            ParseError: If the document is neither RSS nor Atom
        """
        parsed = feedparser.parse(document)

        # feedparser leaves version empty when no feed/channel root was recognized
        if not parsed.get("version"):
            reason = parsed.get("bozo_exception") or "no RSS channel or Atom feed element"
            raise ParseError(url, f"Not a valid RSS or Atom document: {reason}")

        if parsed.bozo:
            logger.warning(f"Feed parsing issues for {url}: {parsed.bozo_exception}")

        info = parsed.feed
        is_atom = parsed.version.startswith("atom")
        map_entry = self._map_atom_entry if is_atom else self._map_rss_entry

        items = []
        for entry in parsed.entries:
            try:
                items.append(map_entry(entry))
            except Exception as e:
                logger.error(
                    f"Error mapping entry '{entry.get('title', 'Unknown')}' from {url}: {e}"
                )
                continue

        return NormalizedFeed(
            title=(info.get("title") or "").strip(),
            description=(info.get("subtitle") or info.get("description") or "").strip(),
            link=info.get("link") or "",
            items=items,
        )

    def _map_atom_entry(self, entry) -> FeedItem:
        link = self._alternate_link(entry)

        content = ""
        if entry.get("content"):
            content = (entry.content[0].get("value") or "").strip()
        summary = (entry.get("summary") or "").strip()

        pub_date = (
            _struct_to_datetime(entry.get("updated_parsed"))
            or _struct_to_datetime(entry.get("published_parsed"))
            or datetime.now(timezone.utc)
        )

        return FeedItem(
            title=(entry.get("title") or "").strip(),
            link=link,
            pub_date=pub_date,
            content=content or summary,
            description=summary,
            guid=entry.get("id") or link,
            author=entry.get("author") or None,
            categories=self._categories(entry),
        )

    def _map_rss_entry(self, entry) -> FeedItem:
        link = entry.get("link") or ""

        content = ""
        if entry.get("content"):
            # content:encoded
            content = entry.content[0].get("value") or ""

        pub_date = (
            _struct_to_datetime(entry.get("published_parsed"))
            or _struct_to_datetime(entry.get("updated_parsed"))
            or datetime.now(timezone.utc)
        )

        return FeedItem(
            title=entry.get("title") or "",
            link=link,
            pub_date=pub_date,
            content=content,
            description=entry.get("summary") or "",
            guid=entry.get("id") or link,
            author=entry.get("author") or None,
            categories=self._categories(entry),
        )

    @staticmethod
    def _alternate_link(entry) -> str:
        """First link whose rel is alternate or absent (skips self/edit/enclosure)."""
        for link in entry.get("links", []):
            if link.get("rel") in (None, "alternate") and link.get("href"):
                return link["href"]
        return entry.get("link") or ""

    @staticmethod
    def _categories(entry) -> list:
        return [tag["term"] for tag in entry.get("tags", []) if tag.get("term")]
