from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx

from seolens.core.config import get_settings
from seolens.core.errors import LLMProviderError
from seolens.services.resilience import RetryPolicy, llm_retry_policy, retry_async
from seolens.services.telemetry import record_external_call


logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    provider: str
    model: str

    async def generate(self, user_prompt: str, system_prompt: str | None = None) -> str:
        ...

    async def aclose(self) -> None:
        ...


def _retryable(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, TimeoutError)):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and (status >= 500 or status == 429)


class HttpModelClient:
    """Shared request/response handling for the JSON-over-HTTP model APIs."""

    provider: str = "unknown"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._settings = get_settings()
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = False
        self._policy = policy

    def __repr__(self) -> str:
        # Never include the key in debug output.
        return f"{type(self).__name__}(provider={self.provider!r}, model={self.model!r})"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per model client for connection pooling.
        timeout_s = self._settings.llm_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        # An injected client belongs to the caller.
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def _headers(self) -> dict[str, str]:
        raise NotImplementedError

    def _endpoint(self) -> str:
        raise NotImplementedError

    def _build_payload(self, user_prompt: str, system_prompt: str | None) -> dict[str, Any]:
        raise NotImplementedError

    def _extract_text(self, body: dict[str, Any]) -> str:
        raise NotImplementedError

    async def generate(self, user_prompt: str, system_prompt: str | None = None) -> str:
        payload = self._build_payload(user_prompt, system_prompt)
        client = self._get_client()
        url = self._endpoint()
        integration = f"llm.{self.provider}"
        start = time.monotonic()

        async def _call() -> httpx.Response:
            response = await client.post(url, json=payload, headers=self._headers())
            if response.status_code >= 500 or response.status_code == 429:
                raise LLMProviderError(
                    f"{self.provider} returned HTTP {response.status_code}",
                    provider=self.provider,
                    status_code=response.status_code,
                )
            return response

        try:
            response = await retry_async(_call, policy=self._policy or llm_retry_policy(), retryable=_retryable)
        except LLMProviderError:
            record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=False)
            raise
        except (TimeoutError, httpx.TimeoutException) as exc:
            record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=False)
            logger.warning("llm_call_timeout provider=%s model=%s", self.provider, self.model)
            raise LLMProviderError(f"{self.provider} request timed out", provider=self.provider) from exc
        except httpx.HTTPError as exc:
            record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=False)
            logger.warning("llm_call_failed provider=%s model=%s error=%s", self.provider, self.model, type(exc).__name__)
            raise LLMProviderError(f"{self.provider} request failed", provider=self.provider) from exc

        if response.status_code in {401, 403}:
            record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=False)
            raise LLMProviderError(
                f"{self.provider} rejected the API key. Check the key saved in Settings.",
                provider=self.provider,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=False)
            raise LLMProviderError(
                f"{self.provider} error: HTTP {response.status_code}",
                provider=self.provider,
                status_code=response.status_code,
            )

        try:
            text = self._extract_text(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=False)
            raise LLMProviderError(f"{self.provider} returned an unexpected response", provider=self.provider) from exc

        record_external_call(integration=integration, latency_ms=_elapsed_ms(start), success=True)
        return text


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000.0
