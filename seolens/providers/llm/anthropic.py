from __future__ import annotations

from typing import Any

from seolens.providers.llm.base import HttpModelClient


class AnthropicClient(HttpModelClient):
    provider = "anthropic"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": self._settings.anthropic_api_version,
        }

    def _endpoint(self) -> str:
        return f"{self._base_url}/messages"

    def _build_payload(self, user_prompt: str, system_prompt: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self._settings.llm_max_output_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    def _extract_text(self, body: dict[str, Any]) -> str:
        # Concatenate text blocks; tool-use blocks are never requested.
        blocks = body["content"]
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
