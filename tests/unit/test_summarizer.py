"""Unit tests for ArticleSummarizer logic functions."""

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

import litellm
import pytest

from feedsync.models import FeedItem
from feedsync.summarizer import MAX_INPUT_CHARS, ArticleSummarizer


def make_item(body: str = "Original body") -> FeedItem:
    return FeedItem(
        title="Post",
        link="https://x.test/post",
        pub_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
        description=body,
    )


def fake_completion(text, calls):
    async def acompletion(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=text))]
        )

    return acompletion


def test_summarizer_requires_model() -> None:
    with pytest.raises(ValueError, match="Model"):
        ArticleSummarizer({})


def test_ollama_requires_api_base() -> None:
    with pytest.raises(ValueError, match="api_base"):
        ArticleSummarizer({"provider": "ollama", "model": "ollama/llama3"})

    summarizer = ArticleSummarizer(
        {"provider": "ollama", "model": "ollama/llama3", "api_base": "http://localhost:11434"}
    )
    assert summarizer.api_base == "http://localhost:11434"


def test_summarize_prepends_summary_section(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(litellm, "acompletion", fake_completion("  - Point one\n- Point two  ", calls))
    summarizer = ArticleSummarizer({"model": "gpt-4o-mini", "api_key": "sk-test"})

    result = asyncio.run(summarizer.summarize(make_item()))

    assert result.content == "## Summary\n\n- Point one\n- Point two\n\nOriginal body"
    assert calls[0]["model"] == "gpt-4o-mini"
    assert calls[0]["api_key"] == "sk-test"
    assert "Title: Post" in calls[0]["messages"][1]["content"]


def test_rewrite_replaces_body(monkeypatch) -> None:
    monkeypatch.setattr(litellm, "acompletion", fake_completion("# Clean\n\nText", []))
    summarizer = ArticleSummarizer({"model": "gpt-4o-mini"})

    result = asyncio.run(summarizer.rewrite(make_item()))

    assert result.content == "# Clean\n\nText"
    assert result.description == "Original body"


def test_empty_completion_leaves_item_unchanged(monkeypatch) -> None:
    monkeypatch.setattr(litellm, "acompletion", fake_completion(None, []))
    item = make_item()

    assert asyncio.run(ArticleSummarizer({"model": "m"}).summarize(item)) is item


def test_prompt_input_is_bounded(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(litellm, "acompletion", fake_completion("ok", calls))

    asyncio.run(ArticleSummarizer({"model": "m"}).summarize(make_item("x" * (MAX_INPUT_CHARS * 2))))

    assert calls[0]["messages"][1]["content"].count("x") == MAX_INPUT_CHARS


def test_llm_errors_propagate(monkeypatch) -> None:
    async def failing(**kwargs):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(litellm, "acompletion", failing)

    with pytest.raises(RuntimeError, match="rate limited"):
        asyncio.run(ArticleSummarizer({"model": "m"}).summarize(make_item()))
