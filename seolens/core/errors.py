from __future__ import annotations


class SeoLensError(Exception):
    """Base error for SeoLens."""


class ConfigurationError(SeoLensError):
    """Encryption key (or other process configuration) missing or malformed."""


class CredentialMissingError(SeoLensError):
    """Tenant has no stored LLM credential."""


class DecryptionError(SeoLensError):
    """Stored secret is malformed or failed authentication."""


class LLMProviderError(SeoLensError):
    """Model client could not be built or the upstream call failed."""

    def __init__(self, message: str, *, provider: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        # Mirror HTTP status on the error so retry predicates can inspect it.
        self.status_code = status_code


class PlanParseError(SeoLensError):
    """Model response was not valid structured output."""


class SqlValidationError(SeoLensError):
    """Generated SQL was rejected by the guard; the message is user-safe."""


class ExecutionError(SeoLensError):
    """Read-only execution channel reported a failure."""


class SummarizationError(SeoLensError):
    """Summary model call failed; always recovered by the pipeline."""


class PersistenceError(SeoLensError):
    """Conversation log write failed; logged, never surfaced."""


class TenantNotFoundError(SeoLensError):
    """No tenant row exists for the supplied identifier."""
