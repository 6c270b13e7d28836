from __future__ import annotations

import secrets

from seolens.services.crypto.vault import KEY_BYTES


def generate_key() -> str:
    # 32 random bytes as 64 hex characters, the form ENCRYPTION_KEY expects.
    return secrets.token_hex(KEY_BYTES)


def main() -> int:
    print(f"ENCRYPTION_KEY={generate_key()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
