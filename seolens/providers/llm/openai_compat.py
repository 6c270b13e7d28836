from __future__ import annotations

from typing import Any

from seolens.providers.llm.base import HttpModelClient


class OpenAICompatibleClient(HttpModelClient):
    """Chat Completions client; serves OpenAI and OpenAI-compatible hosts such as Groq."""

    def __init__(self, *, provider: str = "openai", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.provider = provider

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _endpoint(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _build_payload(self, user_prompt: str, system_prompt: str | None) -> dict[str, Any]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self._settings.llm_max_output_tokens,
            "temperature": 0,
        }

    def _extract_text(self, body: dict[str, Any]) -> str:
        content = body["choices"][0]["message"]["content"]
        return content or ""
