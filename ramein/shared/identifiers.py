from __future__ import annotations

import secrets
from datetime import datetime

from .constants import (
    TOKEN_LENGTH,
    VERIFICATION_ALPHABET,
    VERIFICATION_CODE_LENGTH,
)


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Numeric attendance token, zero padded to ``length`` digits."""
    if length <= 0:
        raise ValueError("token length must be positive")
    return "".join(secrets.choice("0123456789") for _ in range(length))


def generate_certificate_number(issued_at: datetime) -> str:
    return f"CERT-{issued_at.year}-{secrets.token_hex(4).upper()}"


def generate_verification_code(length: int = VERIFICATION_CODE_LENGTH) -> str:
    return "".join(secrets.choice(VERIFICATION_ALPHABET) for _ in range(length))


def normalize_token(value) -> str:
    return str(value or "").strip()


def normalize_verification_code(value) -> str:
    return str(value or "").strip().upper()
