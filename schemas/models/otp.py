"""
One-time code document model.

Maps to the `otp-codes` MongoDB collection. Each (email, purpose) scope
holds at most one record; issuing a new code replaces it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from schemas.models.base import MongoBaseModel


class OtpPurpose(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


# Values accepted from clients for the `type` field, mapped once at the boundary
PURPOSE_ALIASES: dict[str, OtpPurpose] = {
    "email_verification": OtpPurpose.EMAIL_VERIFICATION,
    "verification": OtpPurpose.EMAIL_VERIFICATION,
    "password_reset": OtpPurpose.PASSWORD_RESET,
}


def resolve_purpose(value: Optional[str]) -> OtpPurpose:
    """Map a client-supplied purpose string to :class:`OtpPurpose`.

    ``None`` means email verification. Unknown values raise ``ValueError``.
    """
    if value is None:
        return OtpPurpose.EMAIL_VERIFICATION
    try:
        return PURPOSE_ALIASES[value]
    except KeyError:
        raise ValueError(
            f"type must be one of: {', '.join(sorted(PURPOSE_ALIASES))}"
        ) from None


class OtpRecordDoc(MongoBaseModel):
    """Document model for the `otp-codes` collection.

    code_hash is a salted argon2 hash, so it also identifies the issuance
    a record belongs to.
    """

    email: str
    purpose: OtpPurpose
    code_hash: str
    expires_at: datetime
    verified: bool = False
    attempts: int = 0
    created_at: Optional[datetime] = None
