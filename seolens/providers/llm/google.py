from __future__ import annotations

from typing import Any

from seolens.providers.llm.base import HttpModelClient


class GoogleGenerativeClient(HttpModelClient):
    provider = "google"

    def _headers(self) -> dict[str, str]:
        # Header auth keeps the key out of URLs and access logs.
        return {"x-goog-api-key": self._api_key}

    def _endpoint(self) -> str:
        return f"{self._base_url}/models/{self.model}:generateContent"

    def _build_payload(self, user_prompt: str, system_prompt: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": 0,
                "maxOutputTokens": self._settings.llm_max_output_tokens,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    def _extract_text(self, body: dict[str, Any]) -> str:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)
