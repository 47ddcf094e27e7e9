"""Vault file storage for feed articles."""

import logging
import re
import time
from pathlib import Path
from typing import List, Optional

from .errors import StorageError, StorageErrorCode
from .models import Feed, FeedItem, FeedType, Settings

logger = logging.getLogger(__name__)

DAY_SECONDS = 86_400
SINGLE_FILE_SEPARATOR = "\n---\n"
UNREAD_MARKER = "Status: ◯ Unread"
READ_MARKER = "Status: ✓ Read"

_ILLEGAL_CHARS = re.compile(r'[/\\?%*:|"<>\s]+')
_REPEATED_DASH = re.compile(r"-{2,}")


def sanitize_filename(name: str) -> str:
    """Make a title safe to use as a single path component.

    Illegal characters and whitespace become "-", runs of "-" collapse to
    one, and leading/trailing separators are trimmed.
    """
    cleaned = _ILLEGAL_CHARS.sub("-", name)
    cleaned = _REPEATED_DASH.sub("-", cleaned).strip("-. ")
    return cleaned or "untitled"


def render_article(item: FeedItem, template: str) -> str:
    """Fill the article template placeholders from an item."""
    values = {
        "title": item.title,
        "description": item.description,
        "content": item.body,
        "link": item.link,
        "pubDate": item.pub_date.isoformat(),
        "author": item.author or "",
        "readingTime": str(item.reading_time) if item.reading_time else "",
    }
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace("{{" + key + "}}", value)
    return rendered


class FeedStorage:
    """Reads and writes feed output inside the vault directory.

    Multi-file feeds get one Markdown file per article under
    {rss_folder}/{group}/{title}/. Single-file feeds append to
    {rss_folder}/{group}/{title}.md.
    """

    def __init__(self, vault_path: Path):
        self.vault_path = Path(vault_path)

    def root_folder(self, rss_folder: str) -> Path:
        return self.vault_path / rss_folder

    def group_folder(self, rss_folder: str, group: str) -> Path:
        return self.root_folder(rss_folder) / sanitize_filename(group)

    def folder_for(self, feed: Feed, rss_folder: str, group: Optional[str] = None) -> Path:
        """Folder holding a feed's output, derived from root, group and title.

        Args:
            feed: The feed
            rss_folder: Vault-relative root for all feeds
            group: Override the feed's group (used when planning a move)
        """
        group = feed.group if group is None else group
        base = self.group_folder(rss_folder, group) if group else self.root_folder(rss_folder)
        return base / sanitize_filename(feed.title)

    def single_file_path(
        self, feed: Feed, rss_folder: str, group: Optional[str] = None
    ) -> Path:
        folder = self.folder_for(feed, rss_folder, group)
        return folder.with_name(folder.name + ".md")

    def output_path(self, feed: Feed, rss_folder: str, group: Optional[str] = None) -> Path:
        """The folder (multi-file) or aggregate file (single-file) for a feed."""
        if feed.type == FeedType.SINGLE:
            return self.single_file_path(feed, rss_folder, group)
        return self.folder_for(feed, rss_folder, group)

    def ensure_folder(self, path: Path) -> Path:
        """Create a folder and its parents if absent.

        Raises:
            StorageError: If the folder cannot be created (e.g. a file has the name)
        """
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                str(path), f"Failed to create folder ({e})", StorageErrorCode.WRITE_FAILED
            ) from e
        return path

    def initialize_folders(self, settings: Settings) -> None:
        """Create the root folder and one folder per known group."""
        self.ensure_folder(self.root_folder(settings.rss_folder))
        for group in settings.groups:
            self.ensure_folder(self.group_folder(settings.rss_folder, group))

    def remove_folder(self, path: Path) -> None:
        """Recursively delete a folder: files first, then subfolders, then itself.

        Individual file failures are logged and skipped. A missing folder is a
        no-op.

        Raises:
            StorageError: If the folder itself still cannot be removed
        """
        if not path.exists():
            return

        entries = (
            sorted(path.rglob("*"), key=lambda p: len(p.parts), reverse=True)
            if path.is_dir()
            else []
        )

        for entry in entries:
            if entry.is_file() or entry.is_symlink():
                try:
                    entry.unlink()
                except OSError as e:
                    logger.warning(f"Could not delete file {entry}: {e}")

        for entry in entries:
            if entry.is_dir() and not entry.is_symlink():
                try:
                    entry.rmdir()
                except OSError as e:
                    logger.warning(f"Could not delete folder {entry}: {e}")

        try:
            path.rmdir()
        except OSError as e:
            raise StorageError(
                str(path), f"Failed to remove folder ({e})", StorageErrorCode.REMOVE_FAILED
            ) from e
        logger.info(f"Removed folder {path}")

    def has_output(self, feed: Feed, rss_folder: str) -> bool:
        """Whether a feed has written articles: a non-empty folder or its aggregate file."""
        target = self.output_path(feed, rss_folder)
        if feed.type == FeedType.SINGLE:
            return target.is_file()
        return target.is_dir() and any(target.iterdir())

    def remove_output(self, feed: Feed, rss_folder: str) -> None:
        """Delete a feed's folder or aggregate file."""
        target = self.output_path(feed, rss_folder)
        if feed.type == FeedType.SINGLE:
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(
                    str(target), f"Failed to remove file ({e})", StorageErrorCode.REMOVE_FAILED
                ) from e
        else:
            self.remove_folder(target)

    def move_output(self, source: Path, destination: Path) -> None:
        """Rename a feed's folder or file, creating the destination parent.

        Raises:
            StorageError: If the destination already exists or the rename fails
        """
        if not source.exists() or source == destination:
            return
        if destination.exists():
            raise StorageError(
                str(destination), "Destination already exists", StorageErrorCode.WRITE_FAILED
            )
        self.ensure_folder(destination.parent)
        try:
            source.rename(destination)
        except OSError as e:
            raise StorageError(
                str(source), f"Failed to move to {destination} ({e})", StorageErrorCode.WRITE_FAILED
            ) from e
        logger.info(f"Moved {source} -> {destination}")

    def write_feed(self, feed: Feed, items: List[FeedItem], settings: Settings) -> int:
        """Materialize items according to the feed's type.

        Returns:
            Number of articles written

        Raises:
            StorageError: If the target folder or file cannot be written
        """
        if not items:
            return 0
        if feed.type == FeedType.SINGLE:
            return self._write_single(feed, items, settings)
        return self._write_multiple(feed, items, settings)

    def _write_single(self, feed: Feed, items: List[FeedItem], settings: Settings) -> int:
        path = self.single_file_path(feed, settings.rss_folder)
        self.ensure_folder(path.parent)

        rendered = SINGLE_FILE_SEPARATOR.join(
            render_article(item, settings.template) for item in items
        )
        # Append-only: prior content is never rewritten
        chunk = SINGLE_FILE_SEPARATOR + rendered if path.exists() else rendered

        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(chunk)
        except OSError as e:
            raise StorageError(
                str(path), f"Failed to write feed file ({e})", StorageErrorCode.WRITE_FAILED
            ) from e

        logger.info(f"Appended {len(items)} articles to {path}")
        return len(items)

    def _write_multiple(self, feed: Feed, items: List[FeedItem], settings: Settings) -> int:
        folder = self.ensure_folder(self.folder_for(feed, settings.rss_folder))
        written = 0

        for item in items:
            path = folder / f"{sanitize_filename(item.title)}.md"
            try:
                # "x" mode: an existing file means the article was already synced
                with open(path, "x", encoding="utf-8") as f:
                    f.write(render_article(item, settings.template))
            except FileExistsError:
                logger.debug(f"Skipping existing article {path.name}")
                continue
            except OSError as e:
                raise StorageError(
                    str(path), f"Failed to write article ({e})", StorageErrorCode.WRITE_FAILED
                ) from e
            written += 1

        logger.info(f"Wrote {written} new articles to {folder}")
        return written

    def clean_old(
        self,
        feed: Feed,
        rss_folder: str,
        retention_days: int,
        now: Optional[float] = None,
    ) -> int:
        """Delete article files older than the retention window.

        Only files directly inside the feed's own folder are considered, so
        single-file feeds are untouched. Failures are logged per file.

        Args:
            feed: Feed whose folder to sweep
            rss_folder: Vault-relative root for all feeds
            retention_days: Files with mtime older than now - days are removed
            now: Current epoch seconds (defaults to wall clock)

        Returns:
            Number of files deleted
        """
        folder = self.folder_for(feed, rss_folder)
        if not folder.is_dir():
            return 0

        now = now if now is not None else time.time()
        cutoff = now - retention_days * DAY_SECONDS
        removed = 0

        for path in folder.iterdir():
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not clean up {path}: {e}")
                continue

        if removed:
            logger.info(f"Removed {removed} articles older than {retention_days} days from {folder}")
        return removed

    def mark_file_read(self, path: Path) -> bool:
        """Flip an article file's status line from unread to read.

        Returns:
            True if the file contained the unread marker and was rewritten
        """
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(
                str(path), f"Failed to read article ({e})", StorageErrorCode.LOAD_FAILED
            ) from e

        if UNREAD_MARKER not in text:
            return False

        path.write_text(text.replace(UNREAD_MARKER, READ_MARKER, 1), encoding="utf-8")
        return True
