"""
Account document model.

Maps to the `accounts` MongoDB collection.

Two creation paths produce slightly different shapes:
- Password signup: password_hash set, is_verified False, no providers
- OAuth signup: password_hash None, is_verified True, one provider entry

An account without a password must keep at least one provider entry.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from schemas.models.base import MongoBaseModel

ACCOUNT_SCHEMA_VERSION = 1


class OAuthProvider(str, Enum):
    GOOGLE = "google"
    GITHUB = "github"


class AuthProviderEntry(BaseModel):
    """Single entry in the account's auth_providers array."""

    provider: OAuthProvider
    provider_user_id: str
    email: Optional[str] = None
    linked_at: Optional[datetime] = None


class AccountDoc(MongoBaseModel):
    """Document model for the `accounts` collection."""

    schema_version: int = ACCOUNT_SCHEMA_VERSION

    email: str
    password_hash: Optional[str] = None
    refresh_token_hash: Optional[str] = None

    is_verified: bool = False
    is_active: bool = True

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    city: Optional[str] = None

    auth_providers: list[AuthProviderEntry] = []

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def get_provider(self, provider: OAuthProvider) -> Optional[AuthProviderEntry]:
        for entry in self.auth_providers:
            if entry.provider == provider:
                return entry
        return None
