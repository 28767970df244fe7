"""
Input validators: framework-agnostic, pure functions.
"""

from __future__ import annotations

import re

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_SPECIAL_CHARS = "@$!%*?&"


def validate_password(password: str) -> tuple[bool, list[str]]:
    """Check *password* against the account password policy.

    Rules:
    - Between 8 and 128 characters
    - At least one lowercase letter
    - At least one uppercase letter
    - At least one digit
    - At least one of ``@$!%*?&``

    Returns:
        ``(is_valid, missing)`` where *missing* lists human-readable
        descriptions of every unmet rule.
    """
    missing: list[str] = []

    if len(password) < PASSWORD_MIN_LENGTH:
        missing.append(f"at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        missing.append(f"at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        missing.append("a lowercase letter")
    if not re.search(r"[A-Z]", password):
        missing.append("an uppercase letter")
    if not re.search(r"\d", password):
        missing.append("a number")
    if not re.search(f"[{re.escape(PASSWORD_SPECIAL_CHARS)}]", password):
        missing.append(f"a special character ({PASSWORD_SPECIAL_CHARS})")

    return (len(missing) == 0, missing)


def normalize_email(email: str) -> str:
    """Return *email* trimmed and lower-cased for storage and lookups."""
    return email.strip().lower()
