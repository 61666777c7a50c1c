"""Redemption code generation and validation."""

from __future__ import annotations

import re
import secrets

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 16
CODE_GROUP_SIZE = 4

_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")


def generate_redemption_code() -> str:
    """Return a fresh ``XXXX-XXXX-XXXX-XXXX`` code drawn from a CSPRNG."""

    raw = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
    return "-".join(raw[i : i + CODE_GROUP_SIZE] for i in range(0, CODE_LENGTH, CODE_GROUP_SIZE))


def normalize_redemption_code(code: str) -> str:
    return code.strip().upper()


def is_valid_redemption_code(code: str) -> bool:
    return bool(_CODE_PATTERN.match(code))


__all__ = [
    "CODE_ALPHABET",
    "CODE_LENGTH",
    "generate_redemption_code",
    "is_valid_redemption_code",
    "normalize_redemption_code",
]
