"""OPML import/export of feed subscriptions."""

import html
import logging
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional, Tuple
from urllib.parse import unquote, urlparse

import httpx

from .errors import FetchError, OpmlError, classify_exception, kind_for_status
from .models import Feed, FeedStatus, FeedType
from .observability import log as obs_log
from .settings_store import SettingsRepository

logger = logging.getLogger(__name__)

# "&" not starting an entity or character reference
_STRAY_AMPERSAND = re.compile(r"&(?!(?:[A-Za-z][A-Za-z0-9]*|#[0-9]+|#x[0-9A-Fa-f]+);)")
_FEED_MARKERS = ("<rss", "<feed", "<?xml", "<rdf:rdf")


@dataclass
class OpmlOutline:
    """One feed-bearing outline from an OPML document."""

    url: str
    title: str = ""
    category: str = ""
    status: str = ""
    save_type: str = ""


@dataclass
class ImportIssue:
    title: str
    url: str
    error: str


@dataclass
class OpmlImportResult:
    """Reconciliation summary of an OPML import."""

    success: bool = False
    imported: int = 0
    errors: List[ImportIssue] = field(default_factory=list)
    duplicates: List[ImportIssue] = field(default_factory=list)
    feeds: List[Feed] = field(default_factory=list)


def normalize_url(raw: str) -> str:
    """Undo HTML escaping and whole-URL percent encoding left by some exporters."""
    url = html.unescape(raw.strip())
    if url.lower().startswith(("http%3a", "https%3a")):
        url = unquote(url)
    return url


def _bool_attr(value: bool) -> str:
    return "true" if value else "false"


class OpmlCodec:
    """Builds OPML from the feed list and imports OPML with live validation."""

    def __init__(
        self,
        repository: SettingsRepository,
        client: httpx.AsyncClient,
        scheduler=None,
        default_update_interval: int = 60,
    ):
        """Initialize the codec.

        Args:
            repository: Shared settings repository
            client: HTTP client used for validation fetches
            scheduler: Optional FeedScheduler notified of imported feeds
            default_update_interval: Minutes between syncs for imported feeds
        """
        self.repository = repository
        self.client = client
        self.scheduler = scheduler
        self.default_update_interval = default_update_interval

    def export(self) -> str:
        """Serialize every feed as an OPML 2.0 document."""
        root = ET.Element("opml", version="2.0")
        head = ET.SubElement(root, "head")
        ET.SubElement(head, "title").text = "feedsync subscriptions"
        ET.SubElement(head, "dateCreated").text = format_datetime(datetime.now(timezone.utc))
        body = ET.SubElement(root, "body")

        for feed in self.repository.settings.feeds:
            ET.SubElement(
                body,
                "outline",
                text=feed.title,
                title=feed.title,
                type="rss",
                xmlUrl=feed.url,
                category=feed.group,
                status=feed.status.value,
                saveType=feed.type.value,
                summarize=_bool_attr(feed.summarize),
                transcribe=_bool_attr(feed.transcribe),
            )

        ET.indent(root)
        return ET.tostring(root, encoding="UTF-8", xml_declaration=True).decode("utf-8")

    @staticmethod
    def parse_outlines(xml_text: str) -> List[OpmlOutline]:
        """Extract feed outlines, inheriting category from enclosing folders.

        Raises:
            OpmlError: If the document is not parseable OPML
        """
        cleaned = _STRAY_AMPERSAND.sub("&amp;", xml_text.strip())
        try:
            root = ET.fromstring(cleaned)
        except ET.ParseError as e:
            raise OpmlError(f"Invalid OPML document: {e}") from e

        body = root.find("body") if root.tag.lower() == "opml" else None
        if body is None:
            raise OpmlError("Invalid OPML document: missing <opml><body>")

        outlines: List[OpmlOutline] = []

        def walk(element: ET.Element, parent_label: str) -> None:
            for outline in element.findall("outline"):
                url = outline.get("xmlUrl") or outline.get("xmlurl")
                label = outline.get("text") or outline.get("title") or ""
                if url:
                    outlines.append(
                        OpmlOutline(
                            url=url,
                            title=outline.get("title") or outline.get("text") or "",
                            category=outline.get("category") or parent_label,
                            status=outline.get("status") or "",
                            save_type=outline.get("saveType") or "",
                        )
                    )
                walk(outline, label)

        walk(body, "")
        return outlines

    async def validate_feed_url(self, url: str) -> Tuple[bool, Optional[str]]:
        """Fetch a candidate and check the response looks like a feed.

        Returns:
            Tuple of (is_valid, error_message)
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False, f"Invalid feed URL: {url}"

        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            return False, FetchError(url, classify_exception(e)).user_message

        if response.status_code >= 400:
            error = FetchError(
                url, kind_for_status(response.status_code), status_code=response.status_code
            )
            return False, error.user_message

        content_type = response.headers.get("content-type", "").lower()
        body = response.text[:4096].lower()
        if "xml" in content_type or any(marker in body for marker in _FEED_MARKERS):
            return True, None

        return False, "The URL does not point to an RSS or Atom feed."

    async def import_opml(self, xml_text: str) -> OpmlImportResult:
        """Import feeds from OPML; bad entries never stop the rest.

        Duplicates (case-insensitive URL) and failed validations are reported
        separately from the imported count.

        Raises:
            OpmlError: Only when the document itself cannot be parsed
        """
        start_time = time.time()
        outlines = self.parse_outlines(xml_text)
        result = OpmlImportResult()
        settings = self.repository.settings

        if not outlines:
            logger.warning("No feed outlines found in OPML document")

        for outline in outlines:
            url = normalize_url(outline.url)
            title = outline.title or url

            try:
                if settings.find_feed_by_url(url):
                    result.duplicates.append(
                        ImportIssue(title, url, "Feed already subscribed")
                    )
                    continue

                ok, error = await self.validate_feed_url(url)
                if not ok:
                    result.errors.append(ImportIssue(title, url, error or "Invalid feed"))
                    continue

                feed = Feed(
                    url=url,
                    title=title,
                    group=outline.category,
                    type=FeedType(outline.save_type)
                    if outline.save_type in (t.value for t in FeedType)
                    else FeedType.MULTIPLE,
                    status=FeedStatus(outline.status)
                    if outline.status in (s.value for s in FeedStatus)
                    else FeedStatus.ACTIVE,
                    update_interval=self.default_update_interval,
                )
            except Exception as e:
                logger.error(f"Error importing {url}: {e}")
                result.errors.append(ImportIssue(title, url, f"Unexpected error: {e}"))
                continue

            settings.feeds.append(feed)
            if feed.group and feed.group not in settings.groups:
                settings.groups.append(feed.group)
            result.feeds.append(feed)
            result.imported += 1
            logger.info(f"Imported feed {title} ({url})")

        if result.imported:
            await self.repository.save()
            if self.scheduler is not None:
                for feed in result.feeds:
                    self.scheduler.schedule_feed(feed)

        result.success = result.imported > 0
        obs_log(
            "opml.import.complete",
            outlines=len(outlines),
            imported=result.imported,
            duplicates=len(result.duplicates),
            errors=len(result.errors),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return result
