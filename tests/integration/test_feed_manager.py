"""Integration tests for FeedManager subscription lifecycle."""

import asyncio

import pytest

from conftest import rss_document
from feedsync.errors import (
    DuplicateFeedError,
    FeedNotFoundError,
    FetchError,
    MissingCredentialsError,
    ParseError,
)
from feedsync.feeds import FeedManager
from feedsync.fetchers.rss import FeedParser
from feedsync.models import FeedStatus, FeedType
from feedsync.storage import FeedStorage

FEED_URL = "https://x.test/feed.xml"


class RecordingScheduler:
    def __init__(self):
        self.live = set()

    def schedule_feed(self, feed) -> bool:
        self.live.discard(feed.id)
        if feed.is_active:
            self.live.add(feed.id)
        return feed.is_active

    def unschedule_feed(self, feed_id) -> None:
        self.live.discard(feed_id)


def run_manager(feed_server, repository, vault, action, **kwargs):
    async def scenario():
        async with feed_server.client() as client:
            manager = FeedManager(
                repository, FeedStorage(vault), FeedParser(client=client), **kwargs
            )
            return await action(manager)

    return asyncio.run(scenario())


def test_add_feed_validates_and_takes_document_title(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Upstream Title"))
    scheduler = RecordingScheduler()

    feed = run_manager(
        feed_server,
        repository,
        vault,
        lambda m: m.add_feed(FEED_URL, group="Tech"),
        scheduler=scheduler,
    )

    assert feed.title == "Upstream Title"
    assert feed.group == "Tech"
    assert feed.status == FeedStatus.ACTIVE
    assert repository.settings.groups == ["Tech"]
    assert (vault / "RSS" / "Tech" / "Upstream-Title").is_dir()
    assert scheduler.live == {feed.id}
    assert repository.path.exists()


def test_add_duplicate_url_is_rejected(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([]))
    run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))

    with pytest.raises(DuplicateFeedError):
        run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL.upper()))

    assert len(repository.settings.feeds) == 1


def test_add_rejects_unreachable_and_non_feed_urls(feed_server, repository, vault) -> None:
    feed_server.add("https://x.test/page", "<html><body>page</body></html>", content_type="text/html")

    with pytest.raises(FetchError):
        run_manager(feed_server, repository, vault, lambda m: m.add_feed("https://x.test/missing"))
    with pytest.raises(ParseError):
        run_manager(feed_server, repository, vault, lambda m: m.add_feed("https://x.test/page"))

    assert repository.settings.feeds == []


def test_pause_and_resume_follow_timer(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([]))
    scheduler = RecordingScheduler()

    async def action(manager):
        feed = await manager.add_feed(FEED_URL)
        await manager.set_status(feed.id, FeedStatus.PAUSED)
        paused_live = set(scheduler.live)
        await manager.set_status(feed.id, FeedStatus.ACTIVE)
        return feed, paused_live

    feed, paused_live = run_manager(
        feed_server, repository, vault, action, scheduler=scheduler
    )

    assert paused_live == set()
    assert scheduler.live == {feed.id}


def test_set_feature_requires_credentials(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([]))
    feed = run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))

    with pytest.raises(MissingCredentialsError):
        run_manager(
            feed_server, repository, vault, lambda m: m.set_feature(feed.id, "summarize", True)
        )
    with pytest.raises(ValueError):
        run_manager(
            feed_server, repository, vault, lambda m: m.set_feature(feed.id, "translate", True)
        )

    # Disabling never needs credentials
    run_manager(
        feed_server, repository, vault, lambda m: m.set_feature(feed.id, "summarize", False)
    )
    updated = run_manager(
        feed_server,
        repository,
        vault,
        lambda m: m.set_feature(feed.id, "rewrite", True),
        has_llm_credentials=True,
    )
    assert updated.rewrite is True
    assert updated.summarize is False


def test_title_change_moves_folder(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Old Name"))
    feed = run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))
    (vault / "RSS" / "Old-Name" / "a.md").write_text("article")

    run_manager(
        feed_server, repository, vault, lambda m: m.update_feed(feed.id, title="New Name", max_articles=5)
    )

    assert (vault / "RSS" / "New-Name" / "a.md").read_text() == "article"
    assert not (vault / "RSS" / "Old-Name").exists()
    assert feed.max_articles == 5


def test_update_rejects_bad_values(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([]))
    feed = run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))

    with pytest.raises(ValueError):
        run_manager(feed_server, repository, vault, lambda m: m.update_feed(feed.id, update_interval=0))
    with pytest.raises(ValueError):
        run_manager(feed_server, repository, vault, lambda m: m.update_feed(feed.id, url="https://y.test"))


def test_move_feed_between_groups_relocates_files(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Feed"))
    feed = run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))
    (vault / "RSS" / "Feed" / "a.md").write_text("article")

    run_manager(feed_server, repository, vault, lambda m: m.move_feed(feed.id, "Reading"))

    assert feed.group == "Reading"
    assert (vault / "RSS" / "Reading" / "Feed" / "a.md").exists()
    assert not (vault / "RSS" / "Feed").exists()
    assert "Reading" in repository.settings.groups


def test_remove_group_moves_feeds_out_first(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Feed"))
    feed = run_manager(
        feed_server, repository, vault, lambda m: m.add_feed(FEED_URL, group="Temp")
    )
    (vault / "RSS" / "Temp" / "Feed" / "a.md").write_text("article")

    moved = run_manager(feed_server, repository, vault, lambda m: m.remove_group("Temp"))

    assert [f.id for f in moved] == [feed.id]
    assert feed.group == ""
    assert (vault / "RSS" / "Feed" / "a.md").exists()
    assert not (vault / "RSS" / "Temp").exists()
    assert "Temp" not in repository.settings.groups


def test_group_names_must_be_unique_and_non_empty(feed_server, repository, vault) -> None:
    run_manager(feed_server, repository, vault, lambda m: m.add_group("News"))

    assert (vault / "RSS" / "News").is_dir()
    with pytest.raises(ValueError):
        run_manager(feed_server, repository, vault, lambda m: m.add_group("News"))
    with pytest.raises(ValueError):
        run_manager(feed_server, repository, vault, lambda m: m.add_group("   "))


def test_remove_feed_deletes_output_and_timer(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Digest"))
    scheduler = RecordingScheduler()

    async def action(manager):
        feed = await manager.add_feed(FEED_URL, feed_type=FeedType.SINGLE)
        manager.storage.ensure_folder(vault / "RSS")
        (vault / "RSS" / "Digest.md").write_text("articles")
        await manager.remove_feed(feed.id[:8])
        return feed

    run_manager(feed_server, repository, vault, action, scheduler=scheduler)

    assert repository.settings.feeds == []
    assert scheduler.live == set()
    assert not (vault / "RSS" / "Digest.md").exists()


def test_unknown_feed_id_raises(feed_server, repository, vault) -> None:
    with pytest.raises(FeedNotFoundError):
        run_manager(feed_server, repository, vault, lambda m: m.remove_feed("nope"))


def test_type_switch_is_refused_once_articles_exist(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Feed"))
    feed = run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))
    (vault / "RSS" / "Feed" / "a.md").write_text("article")

    with pytest.raises(ValueError):
        run_manager(
            feed_server, repository, vault, lambda m: m.update_feed(feed.id, type="single")
        )

    assert feed.type == FeedType.MULTIPLE
    assert (vault / "RSS" / "Feed" / "a.md").exists()


def test_type_switch_without_articles_relocates_output(feed_server, repository, vault) -> None:
    feed_server.add(FEED_URL, rss_document([], title="Feed"))
    feed = run_manager(feed_server, repository, vault, lambda m: m.add_feed(FEED_URL))
    assert (vault / "RSS" / "Feed").is_dir()

    run_manager(feed_server, repository, vault, lambda m: m.update_feed(feed.id, type="single"))

    assert feed.type == FeedType.SINGLE
    assert not (vault / "RSS" / "Feed").exists()

    # The aggregate file now counts as output
    (vault / "RSS" / "Feed.md").write_text("article")
    with pytest.raises(ValueError):
        run_manager(
            feed_server, repository, vault, lambda m: m.update_feed(feed.id, type="multiple")
        )
