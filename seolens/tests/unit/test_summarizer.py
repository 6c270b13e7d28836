from __future__ import annotations

import asyncio

import pytest

from seolens.core.errors import LLMProviderError
from seolens.providers.llm.fake import FakeModelClient
from seolens.services.analytics.summarizer import Summarizer, build_summary_prompt


ROWS = [{"country": f"C{i}", "sessions": 100 - i} for i in range(30)]


class SlowClient:
    provider = "fake"
    model = "slow"

    async def generate(self, user_prompt: str, system_prompt: str | None = None) -> str:
        await asyncio.sleep(5)
        return "too late"


def test_prompt_includes_count_sample_and_question() -> None:
    prompt = build_summary_prompt("Top countries?", ROWS, limit_sample=20)
    assert "Data (30 rows):" in prompt
    assert '"C19"' in prompt
    assert '"C20"' not in prompt
    assert 'Question asked: "Top countries?"' in prompt


@pytest.mark.asyncio
async def test_summary_comes_from_model() -> None:
    client = FakeModelClient(["  C0 leads with 100 sessions.  "])
    summary = await Summarizer(client, timeout_ms=1000).summarize("Top countries?", ROWS)
    assert summary == "C0 leads with 100 sessions."
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_empty_rows_skip_model_call() -> None:
    client = FakeModelClient(["unused"])
    summary = await Summarizer(client).summarize("Top countries?", [], fallback="Sessions per country")
    assert summary == "Sessions per country"
    assert client.calls == []


@pytest.mark.asyncio
async def test_empty_rows_without_fallback_reports_count() -> None:
    summary = await Summarizer(FakeModelClient()).summarize("q", [])
    assert summary == "Found 0 results."


@pytest.mark.asyncio
async def test_provider_failure_degrades_to_fallback() -> None:
    client = FakeModelClient([LLMProviderError("openai error: HTTP 500", provider="openai")])
    summary = await Summarizer(client).summarize("q", ROWS[:3])
    assert summary == "Found 3 results."


@pytest.mark.asyncio
async def test_timeout_degrades_to_fallback() -> None:
    summary = await Summarizer(SlowClient(), timeout_ms=10).summarize("q", ROWS[:2], fallback="Traffic split")
    assert summary == "Traffic split"


@pytest.mark.asyncio
async def test_blank_summary_degrades_to_fallback() -> None:
    summary = await Summarizer(FakeModelClient(["   "])).summarize("q", ROWS[:1])
    assert summary == "Found 1 results."
