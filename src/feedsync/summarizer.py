"""LLM summaries and rewrites for articles with the feature toggled on."""

import logging
import time
from dataclasses import replace
from typing import Any

import litellm

from .models import FeedItem
from .observability import log as obs_log

logger = logging.getLogger(__name__)

# Keep prompts bounded for long pages
MAX_INPUT_CHARS = 12_000

SUMMARY_PROMPT = """Summarize the following article in 3 to 5 concise bullet points.
Respond with Markdown bullet points only, in the article's language."""

REWRITE_PROMPT = """Rewrite the following article as clean, readable Markdown.
Keep every fact, drop navigation text, ads and boilerplate.
Respond with the rewritten article only."""


class ArticleSummarizer:
    """Summarize or rewrite article bodies through litellm."""

    def __init__(self, config: dict[str, Any]):
        """Initialize with LLM configuration.

        Args:
            config: Dict with model, and api_key and/or api_base
        """
        if not config or "model" not in config:
            raise ValueError("Model must be specified in config")

        self.model = config["model"]
        self.api_key = config.get("api_key")
        self.api_base = config.get("api_base")

        if config.get("provider", "openai").lower() == "ollama" and not self.api_base:
            raise ValueError(
                "Ollama provider requires 'api_base' in config (e.g., 'http://localhost:11434')"
            )

        litellm.drop_params = True
        self.temperature = 0.3

    async def summarize(self, item: FeedItem) -> FeedItem:
        """Prepend a "## Summary" section to the item body."""
        summary = await self._complete("summarize", SUMMARY_PROMPT, item)
        if not summary:
            return item
        return replace(item, content=f"## Summary\n\n{summary}\n\n{item.body}")

    async def rewrite(self, item: FeedItem) -> FeedItem:
        """Replace the item body with a clean Markdown rewrite."""
        rewritten = await self._complete("rewrite", REWRITE_PROMPT, item)
        if not rewritten:
            return item
        return replace(item, content=rewritten)

    async def _complete(self, action: str, system_prompt: str, item: FeedItem) -> str:
        kwargs = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": f"Title: {item.title}\n\n{item.body[:MAX_INPUT_CHARS]}",
                },
            ],
            "temperature": self.temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        start_time = time.time()
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            obs_log(
                "llm.call",
                action=action,
                model=self.model,
                duration_ms=int((time.time() - start_time) * 1000),
                status="error",
                error=str(e),
            )
            raise

        obs_log(
            "llm.call",
            action=action,
            model=self.model,
            duration_ms=int((time.time() - start_time) * 1000),
            status="success",
        )

        text = response.choices[0].message.content or ""
        logger.debug(f"LLM {action} for {item.link}: {len(text)} chars")
        return text.strip()
