"""Feed fetchers."""

from .rss import FeedParser, build_client

__all__ = ["FeedParser", "build_client"]
