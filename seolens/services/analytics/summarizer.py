from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from seolens.core.config import get_settings
from seolens.core.errors import LLMProviderError, SummarizationError
from seolens.providers.llm.base import ModelClient


logger = logging.getLogger(__name__)


def default_fallback(row_count: int) -> str:
    return f"Found {row_count} results."


def build_summary_prompt(question: str, rows: list[dict[str, Any]], *, limit_sample: int) -> str:
    sample = json.dumps(rows[:limit_sample], indent=2, default=str)
    return f"""Analyze this data and provide a brief insight (2-3 sentences max):

Data ({len(rows)} rows):
{sample}

Question asked: "{question}"

Provide:
1. Key finding
2. One actionable insight or recommendation

Keep it concise and actionable."""


class Summarizer:
    def __init__(
        self,
        client: ModelClient,
        *,
        timeout_ms: int | None = None,
        limit_sample: int | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client
        self._timeout_ms = timeout_ms if timeout_ms is not None else settings.summary_timeout_ms
        self._limit_sample = limit_sample if limit_sample is not None else settings.summary_sample_rows

    async def _generate(self, prompt: str) -> str:
        try:
            text = await asyncio.wait_for(self._client.generate(prompt), timeout=self._timeout_ms / 1000.0)
        except TimeoutError as exc:
            raise SummarizationError("summary timed out") from exc
        except LLMProviderError as exc:
            raise SummarizationError(str(exc)) from exc
        except Exception as exc:  # noqa: BLE001 - summaries are optional, any client failure degrades
            raise SummarizationError(type(exc).__name__) from exc
        if not text or not text.strip():
            raise SummarizationError("summary was empty")
        return text.strip()

    async def summarize(
        self,
        question: str,
        rows: list[dict[str, Any]],
        *,
        limit_sample: int | None = None,
        fallback: str | None = None,
    ) -> str:
        fallback_text = fallback or default_fallback(len(rows))
        if not rows:
            return fallback_text
        prompt = build_summary_prompt(question, rows, limit_sample=limit_sample or self._limit_sample)
        try:
            return await self._generate(prompt)
        except SummarizationError as exc:
            logger.info("analytics_summary_degraded reason=%s", exc)
            return fallback_text
