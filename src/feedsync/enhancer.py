"""Full-page content extraction for items whose feed text is truncated."""

import asyncio
import json
import logging
import math
import re
from dataclasses import replace
from typing import Optional

import httpx
from trafilatura import extract

from .models import FeedItem

logger = logging.getLogger(__name__)

# Feeds shorter than this are assumed to truncate their articles
ENHANCE_THRESHOLD = 500
WORDS_PER_MINUTE = 200

_TAG_RE = re.compile(r"<[^>]+>")


def needs_enhancement(item: FeedItem, threshold: int = ENHANCE_THRESHOLD) -> bool:
    """Whether an item's feed-provided text is short enough to warrant a page fetch."""
    return bool(item.link) and len(item.body) < threshold


def estimate_reading_time(text: str) -> int:
    """Minutes to read text at 200 words per minute, rounded up."""
    words = len(_TAG_RE.sub(" ", text).split())
    return math.ceil(words / WORDS_PER_MINUTE)


class ContentEnhancer:
    """Fetches an article page and overlays the extracted main content.

    enhance() never raises: any fetch or extraction failure returns the
    original item unchanged.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def enhance(self, item: FeedItem) -> FeedItem:
        """Return item enriched with full page content where extraction succeeds."""
        try:
            extracted = await self._extract(item.link)
        except Exception as e:
            logger.warning(f"Content enhancement failed for {item.link}: {e}")
            return item

        if not extracted:
            logger.debug(f"No usable content extracted from {item.link}")
            return item

        text = (extracted.get("text") or "").strip()
        if not text:
            return item

        content = text if len(text) > len(item.body) else item.body
        enhanced = replace(
            item,
            content=content,
            excerpt=item.excerpt or extracted.get("excerpt") or None,
            author=item.author or extracted.get("author") or None,
            site_name=item.site_name
            or extracted.get("sitename")
            or extracted.get("source-hostname")
            or None,
            language=item.language or extracted.get("language") or None,
            reading_time=estimate_reading_time(content),
        )
        logger.debug(f"Enhanced {item.link}: {len(item.body)} -> {len(content)} chars")
        return enhanced

    async def _extract(self, url: str) -> Optional[dict]:
        response = await self.client.get(url, headers={"Accept": "text/html,*/*"})
        response.raise_for_status()

        html = response.text
        if not html:
            return None

        # trafilatura is synchronous and CPU bound
        result = await asyncio.to_thread(
            extract,
            html,
            url=url,
            output_format="json",
            with_metadata=True,
            include_comments=False,
            include_tables=True,
        )
        if not result:
            return None
        return json.loads(result)
