from __future__ import annotations

import binascii


def decode_hex(value: str, *, expected_len: int | None = None) -> bytes:
    """Decode a hex string, optionally enforcing the decoded byte length."""
    stripped = value.strip()
    if not stripped:
        raise ValueError("hex value is empty")
    try:
        raw = bytes.fromhex(stripped)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("value is not valid hex") from exc
    if expected_len is not None and len(raw) != expected_len:
        raise ValueError(f"expected {expected_len} bytes, got {len(raw)}")
    return raw
