"""Shared test fixtures for all tests."""

from email.utils import format_datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import httpx
import pytest
from rich.console import Console

from feedsync.observability import reset_event_log
from feedsync.settings_store import SettingsRepository

Response = Union[Tuple[int, Union[str, bytes], Dict[str, str]], Exception]


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path: Path, monkeypatch) -> Path:
    """Point every XDG directory at the test's temp dir."""
    home = tmp_path / "home"
    for name, sub in (
        ("XDG_CONFIG_HOME", ".config"),
        ("XDG_DATA_HOME", ".local/share"),
        ("XDG_STATE_HOME", ".local/state"),
    ):
        path = home / sub
        path.mkdir(parents=True, exist_ok=True)
        monkeypatch.setenv(name, str(path))

    reset_event_log()
    yield home
    reset_event_log()


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def repository(tmp_path: Path) -> SettingsRepository:
    return SettingsRepository(tmp_path / "settings.json")


@pytest.fixture
def quiet_console() -> Console:
    return Console(quiet=True)


def rss_document(
    items: List[dict], title: str = "Test Feed", link: str = "https://x.test/"
) -> str:
    """Build an RSS 2.0 document; each item dict has title, link, and optional pub_date/description/guid."""
    parts = []
    for item in items:
        fields = [
            f"<title>{item['title']}</title>",
            f"<link>{item['link']}</link>",
        ]
        if item.get("pub_date") is not None:
            fields.append(f"<pubDate>{format_datetime(item['pub_date'])}</pubDate>")
        if item.get("description") is not None:
            fields.append(f"<description>{item['description']}</description>")
        if item.get("guid"):
            fields.append(f"<guid>{item['guid']}</guid>")
        parts.append("<item>" + "".join(fields) + "</item>")

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>{link}</link><description>About</description>"
        + "".join(parts)
        + "</channel></rss>"
    )


class FeedServer:
    """In-memory HTTP server for httpx.MockTransport."""

    def __init__(self):
        self.routes: Dict[str, Response] = {}
        self.hits: Dict[str, int] = {}

    def add(
        self,
        url: str,
        body: Union[str, bytes] = "",
        status: int = 200,
        content_type: str = "application/rss+xml",
    ) -> None:
        self.routes[url] = (status, body, {"content-type": content_type})

    def add_feed(self, url: str, items: List[dict], title: str = "Test Feed") -> None:
        self.add(url, rss_document(items, title=title))

    def fail(self, url: str, error: Exception) -> None:
        self.routes[url] = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.hits[url] = self.hits.get(url, 0) + 1
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found", request=request)
        if isinstance(route, Exception):
            raise route
        status, body, headers = route
        if isinstance(body, bytes):
            return httpx.Response(status, content=body, headers=headers, request=request)
        return httpx.Response(status, text=body, headers=headers, request=request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler), follow_redirects=True
        )


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


def connect_error(url: str, cause: Optional[BaseException] = None) -> httpx.ConnectError:
    error = httpx.ConnectError("connection failed", request=httpx.Request("GET", url))
    if cause is not None:
        error.__cause__ = cause
    return error
