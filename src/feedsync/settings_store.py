"""Settings repository - the single choke-point for persisted state."""

import asyncio
import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from .errors import StorageError, StorageErrorCode
from .models import Settings

logger = logging.getLogger(__name__)

_MISSING = object()


def merge_changes(base: Any, ours: Any, theirs: Any) -> Any:
    """Three-way merge of JSON-like values.

    Whichever side changed relative to ``base`` wins; objects are merged key by
    key, and where both sides changed the same leaf ours wins. A key that one
    side removed and the other left alone is removed.
    """
    if ours == base:
        return theirs
    if theirs == base or theirs == ours:
        return ours
    if isinstance(ours, dict) and isinstance(theirs, dict):
        base = base if isinstance(base, dict) else {}
        merged = {}
        for key in list(theirs) + [k for k in ours if k not in theirs]:
            value = merge_changes(
                base.get(key, _MISSING), ours.get(key, _MISSING), theirs.get(key, _MISSING)
            )
            if value is not _MISSING:
                merged[key] = value
        return merged
    return ours


def _keyed(data: dict) -> dict:
    # Feeds merge by id and groups by name, not by list position
    keyed = dict(data)
    keyed["feeds"] = {feed["id"]: feed for feed in data.get("feeds", [])}
    keyed["groups"] = {name: True for name in data.get("groups", [])}
    return keyed


def _unkeyed(data: dict) -> dict:
    plain = dict(data)
    plain["feeds"] = list(data.get("feeds", {}).values())
    plain["groups"] = list(data.get("groups", {}))
    return plain


def merge_settings(base: dict, ours: dict, theirs: dict) -> dict:
    """Combine our unsaved edits with edits another process already saved."""
    return _unkeyed(merge_changes(_keyed(base), _keyed(ours), _keyed(theirs)))


def _read_settings(path: Path) -> Optional[Settings]:
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(
            str(path), f"Failed to load settings ({e})", StorageErrorCode.LOAD_FAILED
        ) from e

    if not isinstance(data, dict):
        raise StorageError(
            str(path), "Settings blob is not an object", StorageErrorCode.INVALID_DATA
        )
    return Settings.from_dict(data)


class SettingsRepository:
    """Owns the one authoritative in-memory Settings and persists it.

    Every component holds a reference to the same repository and mutates
    ``repository.settings`` in place, then calls ``save()``.

    The daemon and CLI commands run in separate processes against the same
    file. Each repository remembers the blob it last read or wrote; ``save()``
    takes an exclusive flock, re-reads the file and merges in anything another
    process saved since, so neither side overwrites the other's edits.
    ``refresh()`` pulls those edits in without writing.
    """

    def __init__(self, path: Path, settings: Optional[Settings] = None):
        """Initialize the repository.

        Args:
            path: JSON file backing the settings blob
            settings: Preloaded settings (skips reading from disk)
        """
        self.path = path
        self.settings = settings if settings is not None else Settings()
        self._lock = asyncio.Lock()
        # Blob as last seen on disk; None until this repository reads or writes it
        self._base: Optional[dict] = None

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(f".{self.path.name}.lock")

    @classmethod
    def load(cls, path: Path) -> "SettingsRepository":
        """Load settings from disk, falling back to defaults if the file is absent.

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        settings = _read_settings(path)
        if settings is None:
            logger.info(f"No settings at {path}, starting with defaults")
            settings = Settings()

        repository = cls(path, settings)
        repository._base = settings.to_dict()
        return repository

    async def save(self) -> None:
        """Persist the current settings, merging concurrent edits from other processes.

        Raises:
            StorageError: If the file cannot be written
        """
        async with self._lock:
            with self._file_lock():
                data = self.settings.to_dict()
                theirs = self._read_disk()
                if theirs is not None and self._base is not None and theirs != self._base:
                    self._adopt(merge_settings(self._base, data, theirs))
                    data = self.settings.to_dict()
                    logger.info(f"Merged settings saved by another process into {self.path}")

                self._write(data)
                self._base = data

    async def refresh(self) -> bool:
        """Pick up edits other processes saved; unsaved local edits are kept.

        Returns:
            True if the in-memory settings changed
        """
        async with self._lock:
            theirs = self._read_disk()
            if theirs is None or theirs == self._base:
                return False

            ours = self.settings.to_dict()
            base = self._base if self._base is not None else ours
            self._adopt(merge_settings(base, ours, theirs))
            self._base = theirs

            changed = self.settings.to_dict() != ours
            if changed:
                logger.info(f"Reloaded settings changed by another process from {self.path}")
            return changed

    def _read_disk(self) -> Optional[dict]:
        try:
            settings = _read_settings(self.path)
        except StorageError as e:
            logger.warning(f"Ignoring unreadable settings on disk: {e}")
            return None
        return settings.to_dict() if settings is not None else None

    def _adopt(self, data: dict) -> None:
        """Replace settings contents in place, keeping live Feed objects by id."""
        fresh = Settings.from_dict(data)
        live = {feed.id: feed for feed in self.settings.feeds}

        feeds = []
        for feed in fresh.feeds:
            current = live.get(feed.id)
            if current is not None:
                vars(current).update(vars(feed))
                feed = current
            feeds.append(feed)
        fresh.feeds = feeds

        vars(self.settings).update(vars(fresh))

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _write(self, data: dict) -> None:
        # Write to a sibling temp file then rename so readers never see a partial blob
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=".settings-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(
                str(self.path), f"Failed to save settings ({e})", StorageErrorCode.SAVE_FAILED
            ) from e
        logger.debug(f"Settings written to {self.path}")

    def export_json(self) -> str:
        """Serialize settings for backup."""
        return json.dumps(self.settings.to_dict(), indent=2, ensure_ascii=False)

    async def import_json(self, text: str) -> Settings:
        """Replace the current settings with a previously exported backup.

        Args:
            text: JSON produced by export_json

        Returns:
            The newly active settings

        Raises:
            StorageError: If the backup is not valid JSON or lacks feeds/groups lists
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(
                "<import>", f"Backup is not valid JSON ({e})", StorageErrorCode.INVALID_DATA
            ) from e

        if (
            not isinstance(data, dict)
            or not isinstance(data.get("feeds"), list)
            or not isinstance(data.get("groups"), list)
        ):
            raise StorageError(
                "<import>",
                "Backup must contain 'feeds' and 'groups' lists",
                StorageErrorCode.INVALID_DATA,
            )

        self._adopt(Settings.from_dict(data).to_dict())
        await self.save()
        return self.settings
