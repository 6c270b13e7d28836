from __future__ import annotations

import logging
import re

from seolens.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_REDACTED = "[REDACTED]"
# Provider key shapes (sk-, sk-ant-, gsk_, AIza) and hex iv:tag:ciphertext triples.
_SECRET_PATTERNS = (
    re.compile(r"\b(?:sk-ant-|sk-|gsk_)[A-Za-z0-9_\-]{8,}"),
    re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}"),
    re.compile(r"\b[0-9a-fA-F]{32}:[0-9a-fA-F]{32}:[0-9a-fA-F]+\b"),
)


def redact_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(_REDACTED, text)
    return text


class SecretRedactionFilter(logging.Filter):
    # Scrub credentials from fully formatted messages before any handler sees them.
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = redact_secrets(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


def configure_logging() -> None:
    settings = get_settings()
    root = logging.getLogger()
    if not any(isinstance(f, SecretRedactionFilter) for h in root.handlers for f in h.filters):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler.addFilter(SecretRedactionFilter())
        root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
