"""Per-article read/deleted state with retention-based pruning."""

import logging
from typing import Optional

from .models import ARTICLE_ID_SEPARATOR, ArticleState, now_ms
from .settings_store import SettingsRepository

logger = logging.getLogger(__name__)

DAY_MS = 86_400_000


def article_id(feed_url: str, link: str) -> str:
    """Composite identity of an article: feed URL + "::" + article link."""
    return f"{feed_url}{ARTICLE_ID_SEPARATOR}{link}"


class ArticleStateStore:
    """Read/deleted flags keyed by composite article id.

    The mapping lives inside the shared settings blob; this class only mutates
    it in memory. Callers persist with ``SettingsRepository.save()``.

    "Deleted" is a logical tombstone consulted before re-materializing an
    article; it never removes the article's file.
    """

    def __init__(self, repository: SettingsRepository):
        self.repository = repository

    @property
    def _states(self) -> dict:
        return self.repository.settings.article_states

    def get(self, feed_url: str, link: str) -> Optional[ArticleState]:
        return self._states.get(article_id(feed_url, link))

    def is_deleted(self, feed_url: str, link: str) -> bool:
        state = self.get(feed_url, link)
        return bool(state and state.deleted)

    def mark_read(
        self, feed_url: str, link: str, now: Optional[int] = None
    ) -> ArticleState:
        """Mark an article read, keeping any other flags."""
        return self._upsert(feed_url, link, now, read=True)

    def mark_deleted(
        self, feed_url: str, link: str, now: Optional[int] = None
    ) -> ArticleState:
        """Tombstone an article so future syncs never recreate it."""
        return self._upsert(feed_url, link, now, deleted=True)

    def _upsert(
        self, feed_url: str, link: str, now: Optional[int], **flags: bool
    ) -> ArticleState:
        key = article_id(feed_url, link)
        state = self._states.get(key)
        if state is None:
            state = ArticleState()
            self._states[key] = state

        for name, value in flags.items():
            setattr(state, name, value)
        state.last_update = now if now is not None else now_ms()

        logger.debug(f"Article state updated: {key} -> {state}")
        return state

    def prune(self, retention_days: int, now: Optional[int] = None) -> int:
        """Drop entries whose last_update is older than the retention window.

        Args:
            retention_days: Window in days; entries older than now - days are removed
            now: Current epoch millis (defaults to wall clock)

        Returns:
            Number of entries removed
        """
        now = now if now is not None else now_ms()
        cutoff = now - retention_days * DAY_MS

        kept = {
            key: state
            for key, state in self._states.items()
            if state.last_update >= cutoff
        }
        removed = len(self._states) - len(kept)
        self.repository.settings.article_states = kept

        if removed:
            logger.info(f"Pruned {removed} article states older than {retention_days} days")
        return removed
