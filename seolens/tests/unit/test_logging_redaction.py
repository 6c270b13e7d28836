from __future__ import annotations

import logging

from seolens.core.logging import SecretRedactionFilter, redact_secrets
from seolens.services.crypto.vault import CredentialVault


def test_provider_key_shapes_are_masked() -> None:
    text = (
        "openai=sk-proj-AbCdEf0123456789 anthropic=sk-ant-api03-XyZ987654321 "
        "groq=gsk_abcdefghij123456 google=AIzaSyA1234567890abcdefghijklmno"
    )
    scrubbed = redact_secrets(text)
    assert "sk-proj" not in scrubbed
    assert "sk-ant-api03" not in scrubbed
    assert "gsk_abc" not in scrubbed
    assert "AIzaSy" not in scrubbed
    assert scrubbed.count("[REDACTED]") == 4


def test_ciphertext_triples_are_masked(vault: CredentialVault) -> None:
    serialized = vault.encrypt("sk-live-abcdef0123456789")
    assert redact_secrets(f"stored={serialized}") == "stored=[REDACTED]"


def test_plain_messages_pass_through() -> None:
    message = "analytics_plan_ready request_id=abc tenant_id=u1 provider=openai"
    assert redact_secrets(message) == message


def test_filter_rewrites_formatted_record() -> None:
    record = logging.LogRecord(
        name="seolens.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="calling provider with key=%s",
        args=("sk-abcdef0123456789",),
        exc_info=None,
    )
    assert SecretRedactionFilter().filter(record) is True
    assert record.getMessage() == "calling provider with key=[REDACTED]"
