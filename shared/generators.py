"""
Random code and token generators: pure, side-effect-free functions.

All generators use the ``secrets`` module.
"""

from __future__ import annotations

import secrets
import string

OTP_LENGTH = 6


def generate_otp_code(length: int = OTP_LENGTH) -> str:
    """Generate a cryptographically secure numeric OTP.

    Leading zeros are allowed, so every code is exactly *length* digits.

    Args:
        length: Number of digits (default OTP_LENGTH).

    Returns:
        String of random decimal digits.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure URL-safe random token.

    Args:
        length: Number of random bytes before base64 encoding (default 32).
            The resulting string will be longer than *length* characters.

    Returns:
        URL-safe base64-encoded token string.
    """
    return secrets.token_urlsafe(length)
