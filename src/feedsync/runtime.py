"""Component wiring shared by the daemon and CLI commands."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from rich.console import Console

from .config import Config
from .enhancer import ContentEnhancer
from .feeds import FeedManager
from .fetchers.rss import FeedParser, build_client
from .opml import OpmlCodec
from .scheduler import FeedScheduler
from .settings_store import SettingsRepository
from .storage import FeedStorage
from .summarizer import ArticleSummarizer
from .sync import SyncEngine
from .transcriber import YouTubeTranscriber

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: Config
    repository: SettingsRepository
    client: httpx.AsyncClient
    parser: FeedParser
    storage: FeedStorage
    engine: SyncEngine
    scheduler: FeedScheduler
    manager: FeedManager
    codec: OpmlCodec


@asynccontextmanager
async def open_runtime(
    config: Config, console: Optional[Console] = None
) -> AsyncIterator[Runtime]:
    """Load settings and build every component around one shared HTTP client."""
    repository = SettingsRepository.load(config.settings_path)
    client = build_client(config.user_agent, config.request_timeout)

    try:
        parser = FeedParser(client=client)
        storage = FeedStorage(config.vault_path)

        summarizer = None
        transcriber = None
        if config.has_llm_credentials:
            summarizer = ArticleSummarizer(config.llm_config)
            transcriber = YouTubeTranscriber()
        else:
            logger.debug("No LLM credentials configured, feature toggles disabled")

        engine = SyncEngine(
            repository=repository,
            parser=parser,
            storage=storage,
            enhancer=ContentEnhancer(client),
            summarizer=summarizer,
            transcriber=transcriber,
            console=console,
        )
        scheduler = FeedScheduler(repository, engine, config.heartbeat_seconds)
        manager = FeedManager(
            repository,
            storage,
            parser,
            scheduler=scheduler,
            has_llm_credentials=config.has_llm_credentials,
            default_update_interval=config.default_update_interval,
        )
        codec = OpmlCodec(
            repository,
            client,
            scheduler=scheduler,
            default_update_interval=config.default_update_interval,
        )

        yield Runtime(
            config=config,
            repository=repository,
            client=client,
            parser=parser,
            storage=storage,
            engine=engine,
            scheduler=scheduler,
            manager=manager,
            codec=codec,
        )
    finally:
        await client.aclose()
