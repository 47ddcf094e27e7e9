"""Unit tests for OPML parsing, export and feed URL validation."""

import asyncio
import xml.etree.ElementTree as ET

import httpx
import pytest

from conftest import connect_error, rss_document
from feedsync.errors import OpmlError
from feedsync.models import Feed, FeedStatus, FeedType
from feedsync.opml import OpmlCodec, normalize_url

NESTED_OPML = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="1.0">
  <head><title>Reader export</title></head>
  <body>
    <outline text="Tech" title="Tech">
      <outline text="Hacker News" xmlUrl="https://news.test/rss" type="rss"/>
      <outline title="Only Title" xmlUrl="https://only.test/feed" category="Override"/>
    </outline>
    <outline text="Loose" xmlUrl="https://loose.test/atom" status="paused" saveType="single"/>
    <outline text="Folder without feeds"/>
  </body>
</opml>
"""


def test_parse_outlines_inherits_parent_category() -> None:
    outlines = OpmlCodec.parse_outlines(NESTED_OPML)

    assert [o.url for o in outlines] == [
        "https://news.test/rss",
        "https://only.test/feed",
        "https://loose.test/atom",
    ]
    news, only, loose = outlines
    assert news.title == "Hacker News"
    assert news.category == "Tech"
    assert only.title == "Only Title"
    assert only.category == "Override"
    assert loose.category == ""
    assert loose.status == "paused"
    assert loose.save_type == "single"


def test_parse_tolerates_stray_ampersands() -> None:
    text = (
        '<opml version="2.0"><body>'
        '<outline text="Q&A" xmlUrl="https://x.test/rss?a=1&b=2"/>'
        '<outline text="Tom &amp; Jerry" xmlUrl="https://y.test/rss"/>'
        "</body></opml>"
    )

    outlines = OpmlCodec.parse_outlines(text)

    assert outlines[0].title == "Q&A"
    assert outlines[0].url == "https://x.test/rss?a=1&b=2"
    assert outlines[1].title == "Tom & Jerry"


@pytest.mark.parametrize(
    "text",
    [
        "<opml><body><outline></body></opml>",
        "<html><body></body></html>",
        '<opml version="2.0"><head/></opml>',
        "",
    ],
)
def test_parse_rejects_malformed_documents(text: str) -> None:
    with pytest.raises(OpmlError):
        OpmlCodec.parse_outlines(text)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://x.test/rss?a=1&amp;b=2", "https://x.test/rss?a=1&b=2"),
        ("https%3A%2F%2Fx.test%2Ffeed", "https://x.test/feed"),
        ("  https://x.test/rss  ", "https://x.test/rss"),
    ],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected


def test_export_with_no_feeds_is_well_formed(repository) -> None:
    text = OpmlCodec(repository, httpx.AsyncClient()).export()

    root = ET.fromstring(text)
    assert root.tag == "opml"
    assert root.get("version") == "2.0"
    assert root.find("head/title") is not None
    assert root.find("body") is not None
    assert root.findall("body/outline") == []


def test_export_carries_feed_attributes(repository) -> None:
    repository.settings.feeds = [
        Feed(
            url="https://x.test/rss?a=1&b=2",
            title="Tom & Jerry <News>",
            group="Cartoons",
            status=FeedStatus.PAUSED,
            type=FeedType.SINGLE,
            summarize=True,
        )
    ]

    text = OpmlCodec(repository, httpx.AsyncClient()).export()
    outline = ET.fromstring(text).find("body/outline")

    assert outline.get("text") == "Tom & Jerry <News>"
    assert outline.get("xmlUrl") == "https://x.test/rss?a=1&b=2"
    assert outline.get("type") == "rss"
    assert outline.get("category") == "Cartoons"
    assert outline.get("status") == "paused"
    assert outline.get("saveType") == "single"
    assert outline.get("summarize") == "true"
    assert outline.get("transcribe") == "false"


def _validate(feed_server, repository, url):
    async def scenario():
        async with feed_server.client() as client:
            return await OpmlCodec(repository, client).validate_feed_url(url)

    return asyncio.run(scenario())


def test_validate_accepts_feed_documents(feed_server, repository) -> None:
    feed_server.add("https://x.test/rss", rss_document([]))
    feed_server.add(
        "https://x.test/text-served", "<rss version='2.0'></rss>", content_type="text/plain"
    )

    assert _validate(feed_server, repository, "https://x.test/rss") == (True, None)
    assert _validate(feed_server, repository, "https://x.test/text-served") == (True, None)


def test_validate_rejects_html_pages(feed_server, repository) -> None:
    feed_server.add("https://x.test/blog", "<html><body>hi</body></html>", content_type="text/html")

    ok, error = _validate(feed_server, repository, "https://x.test/blog")

    assert ok is False
    assert "RSS or Atom" in error


def test_validate_reports_http_and_network_errors(feed_server, repository) -> None:
    feed_server.fail(
        "https://down.test/rss",
        connect_error("https://down.test/rss", ConnectionRefusedError(111, "refused")),
    )

    missing_ok, missing_error = _validate(feed_server, repository, "https://x.test/missing")
    down_ok, down_error = _validate(feed_server, repository, "https://down.test/rss")

    assert missing_ok is False
    assert "404" in missing_error
    assert down_ok is False
    assert "refused" in down_error.lower()


def test_validate_rejects_non_http_urls(repository) -> None:
    async def scenario():
        return await OpmlCodec(repository, httpx.AsyncClient()).validate_feed_url(
            "ftp://x.test/feed"
        )

    ok, error = asyncio.run(scenario())
    assert ok is False
    assert "ftp://x.test/feed" in error
