from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import httpx

from seolens.core.config import get_settings
from seolens.core.errors import LLMProviderError
from seolens.providers.llm.anthropic import AnthropicClient
from seolens.providers.llm.base import ModelClient
from seolens.providers.llm.google import GoogleGenerativeClient
from seolens.providers.llm.openai_compat import OpenAICompatibleClient


class ProviderId(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    GROQ = "groq"


@dataclass(frozen=True)
class ProviderSpec:
    key_prefix: str
    default_model: str


PROVIDER_SPECS: dict[ProviderId, ProviderSpec] = {
    ProviderId.OPENAI: ProviderSpec(key_prefix="sk-", default_model="gpt-4o"),
    ProviderId.ANTHROPIC: ProviderSpec(key_prefix="sk-ant-", default_model="claude-3-5-sonnet-20241022"),
    ProviderId.GOOGLE: ProviderSpec(key_prefix="AIza", default_model="gemini-1.5-pro"),
    ProviderId.GROQ: ProviderSpec(key_prefix="gsk_", default_model="llama-3.1-70b-versatile"),
}


def resolve_provider(value: str | None) -> ProviderId:
    # Tenants that never picked a provider get the configured canonical one.
    if not value:
        value = get_settings().default_llm_provider
    try:
        return ProviderId(value)
    except ValueError:
        raise LLMProviderError(f"Unsupported LLM provider: {value}", provider=value) from None


def default_model(provider: ProviderId) -> str:
    return PROVIDER_SPECS[provider].default_model


def _validate_key(provider: ProviderId, api_key: str) -> str:
    key = (api_key or "").strip()
    if not key:
        raise LLMProviderError(f"{provider} API key is empty", provider=provider)
    # Keys travel in headers; reject anything that could split or corrupt one.
    if any(ch.isspace() or ord(ch) < 32 for ch in key):
        raise LLMProviderError(f"{provider} API key contains invalid characters", provider=provider)
    spec = PROVIDER_SPECS[provider]
    if get_settings().llm_enforce_key_prefix and not key.startswith(spec.key_prefix):
        raise LLMProviderError(
            f"{provider} API key should start with {spec.key_prefix!r}", provider=provider
        )
    return key


def build_client(
    provider: str | ProviderId | None,
    api_key: str,
    model: str | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> ModelClient:
    provider_id = resolve_provider(provider)
    key = _validate_key(provider_id, api_key)
    model_name = model or default_model(provider_id)
    settings = get_settings()

    match provider_id:
        case ProviderId.OPENAI:
            return OpenAICompatibleClient(
                provider="openai",
                api_key=key,
                model=model_name,
                base_url=settings.openai_base_url,
                client=http_client,
            )
        case ProviderId.GROQ:
            return OpenAICompatibleClient(
                provider="groq",
                api_key=key,
                model=model_name,
                base_url=settings.groq_base_url,
                client=http_client,
            )
        case ProviderId.ANTHROPIC:
            return AnthropicClient(
                api_key=key,
                model=model_name,
                base_url=settings.anthropic_base_url,
                client=http_client,
            )
        case ProviderId.GOOGLE:
            return GoogleGenerativeClient(
                api_key=key,
                model=model_name,
                base_url=settings.google_base_url,
                client=http_client,
            )
        case _:
            raise LLMProviderError(f"Unsupported LLM provider: {provider_id}", provider=str(provider_id))
