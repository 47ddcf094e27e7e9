"""Unit tests for FeedStorage paths, writes and retention."""

import os
import time
from datetime import datetime, timezone

import pytest

from feedsync.errors import StorageError
from feedsync.models import Feed, FeedItem, FeedType, Settings
from feedsync.storage import (
    READ_MARKER,
    SINGLE_FILE_SEPARATOR,
    FeedStorage,
    render_article,
    sanitize_filename,
)


def make_item(title: str, link: str = "", body: str = "Body") -> FeedItem:
    return FeedItem(
        title=title,
        link=link or f"https://x.test/{title}",
        pub_date=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
        description=body,
    )


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Hello World", "Hello-World"),
        ('a/b\\c?d%e*f:g|h"i<j>k', "a-b-c-d-e-f-g-h-i-j-k"),
        ("  spaced   out  ", "spaced-out"),
        ("dash -- and  / slash", "dash-and-slash"),
        ("???", "untitled"),
        ("", "untitled"),
        ("Déjà vu", "Déjà-vu"),
    ],
)
def test_sanitize_filename(raw: str, expected: str) -> None:
    assert sanitize_filename(raw) == expected


def test_folder_is_derived_from_root_group_and_title(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="My Feed", group="Tech News")

    assert storage.folder_for(feed, "RSS") == vault / "RSS" / "Tech-News" / "My-Feed"
    assert storage.single_file_path(feed, "RSS") == vault / "RSS" / "Tech-News" / "My-Feed.md"
    assert storage.folder_for(feed, "RSS", group="") == vault / "RSS" / "My-Feed"


def test_render_article_fills_placeholders() -> None:
    item = make_item("Title", body="The body")
    item.author = "Ada"
    item.reading_time = 3
    template = "{{title}}|{{link}}|{{pubDate}}|{{content}}|{{description}}|{{author}}|{{readingTime}}"

    rendered = render_article(item, template)

    assert rendered == (
        "Title|https://x.test/Title|2024-01-15T10:00:00+00:00|The body|The body|Ada|3"
    )


def test_ensure_folder_is_idempotent(vault) -> None:
    storage = FeedStorage(vault)
    path = vault / "a" / "b"

    storage.ensure_folder(path)
    storage.ensure_folder(path)

    assert path.is_dir()


def test_ensure_folder_fails_when_a_file_has_the_name(vault) -> None:
    (vault / "taken").write_text("x")

    with pytest.raises(StorageError):
        FeedStorage(vault).ensure_folder(vault / "taken")


def test_multiple_mode_never_overwrites_existing_files(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="Feed")
    settings = Settings()

    assert storage.write_feed(feed, [make_item("One"), make_item("Two")], settings) == 2

    path = storage.folder_for(feed, settings.rss_folder) / "One.md"
    path.write_text("edited by user")

    assert storage.write_feed(feed, [make_item("One", body="changed")], settings) == 0
    assert path.read_text() == "edited by user"


def test_multiple_mode_same_title_in_one_batch_writes_once(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="Feed")

    written = storage.write_feed(
        feed, [make_item("Same", "https://x.test/1"), make_item("Same", "https://x.test/2")], Settings()
    )

    assert written == 1


def test_single_mode_appends_with_separator(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="Digest", type=FeedType.SINGLE)
    settings = Settings(template="# {{title}}\n")

    storage.write_feed(feed, [make_item("A"), make_item("B")], settings)
    path = storage.single_file_path(feed, settings.rss_folder)
    first = path.read_text()

    storage.write_feed(feed, [make_item("C")], settings)
    second = path.read_text()

    assert first == "# A\n" + SINGLE_FILE_SEPARATOR + "# B\n"
    assert second.startswith(first)
    assert second == first + SINGLE_FILE_SEPARATOR + "# C\n"


def test_write_with_no_items_creates_nothing(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="Digest", type=FeedType.SINGLE)

    assert storage.write_feed(feed, [], Settings()) == 0
    assert not storage.single_file_path(feed, "RSS").exists()


def test_remove_folder_deletes_nested_tree(vault) -> None:
    storage = FeedStorage(vault)
    root = vault / "RSS" / "Feed"
    (root / "sub" / "deeper").mkdir(parents=True)
    (root / "a.md").write_text("a")
    (root / "sub" / "b.md").write_text("b")
    (root / "sub" / "deeper" / "c.md").write_text("c")

    storage.remove_folder(root)

    assert not root.exists()
    assert (vault / "RSS").is_dir()


def test_remove_missing_folder_is_noop(vault) -> None:
    FeedStorage(vault).remove_folder(vault / "missing")


def test_remove_folder_propagates_folder_level_failure(vault) -> None:
    not_a_folder = vault / "file.md"
    not_a_folder.write_text("x")

    with pytest.raises(StorageError):
        FeedStorage(vault).remove_folder(not_a_folder)


def test_clean_old_removes_only_expired_files(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="Feed")
    folder = storage.ensure_folder(storage.folder_for(feed, "RSS"))
    now = time.time()

    old = folder / "old.md"
    fresh = folder / "fresh.md"
    old.write_text("old")
    fresh.write_text("fresh")
    os.utime(old, (now - 31 * 86_400, now - 31 * 86_400))
    os.utime(fresh, (now - 29 * 86_400, now - 29 * 86_400))

    # Files outside the feed folder are never touched
    outside = vault / "RSS" / "outside.md"
    outside.write_text("outside")
    os.utime(outside, (now - 90 * 86_400, now - 90 * 86_400))

    removed = storage.clean_old(feed, "RSS", 30, now=now)

    assert removed == 1
    assert not old.exists()
    assert fresh.exists()
    assert outside.exists()


def test_clean_old_without_folder_returns_zero(vault) -> None:
    feed = Feed(url="https://x.test/rss", title="Nothing yet")
    assert FeedStorage(vault).clean_old(feed, "RSS", 30) == 0


def test_move_output_relocates_folder(vault) -> None:
    storage = FeedStorage(vault)
    source = storage.ensure_folder(vault / "RSS" / "Feed")
    (source / "a.md").write_text("a")
    destination = vault / "RSS" / "Group" / "Feed"

    storage.move_output(source, destination)

    assert (destination / "a.md").read_text() == "a"
    assert not source.exists()


def test_move_output_refuses_to_clobber(vault) -> None:
    storage = FeedStorage(vault)
    source = storage.ensure_folder(vault / "RSS" / "A")
    destination = storage.ensure_folder(vault / "RSS" / "B")

    with pytest.raises(StorageError):
        storage.move_output(source, destination)


def test_mark_file_read_flips_status_line(vault) -> None:
    storage = FeedStorage(vault)
    feed = Feed(url="https://x.test/rss", title="Feed")
    storage.write_feed(feed, [make_item("Story")], Settings())
    path = storage.folder_for(feed, "RSS") / "Story.md"

    assert storage.mark_file_read(path) is True
    assert READ_MARKER in path.read_text()
    assert storage.mark_file_read(path) is False
