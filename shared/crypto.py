"""
Cryptographic helpers: credential hashing and token hashing.

Uses argon2 for passwords and OTP codes (via argon2-cffi) and SHA-256 for
refresh-token hashing.
"""

from __future__ import annotations

import asyncio
import hashlib

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


class CredentialHasher:
    """Salted, slow hashing for passwords and one-time codes.

    Every call to :meth:`hash` produces a distinct string for the same input,
    so a stored hash also identifies the exact issuance it came from.
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    def hash(self, secret: str) -> str:
        """Return the argon2id hash of *secret* (includes parameters and salt)."""
        return self._hasher.hash(secret)

    def verify(self, secret: str, hashed: str) -> bool:
        """Return ``True`` if *secret* matches *hashed*, ``False`` otherwise.

        Malformed hashes count as a mismatch.
        """
        if not hashed:
            return False
        try:
            return self._hasher.verify(hashed, secret)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    async def hash_async(self, secret: str) -> str:
        """Run :meth:`hash` in a worker thread."""
        return await asyncio.to_thread(self.hash, secret)

    async def verify_async(self, secret: str, hashed: str) -> bool:
        return await asyncio.to_thread(self.verify, secret, hashed)


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used for refresh tokens, which are long random JWTs and only need a
    fast, deterministic lookup hash.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
