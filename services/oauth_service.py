"""
OAuthService: sign in with an external identity provider, and unlink one.

A provider identity is matched first by (provider, provider user id), then
by email. Matching accounts get the provider linked and are marked
verified; otherwise a password-less, verified account is created. Sessions
are started exactly as for a password login.
"""

from __future__ import annotations

from typing import Optional

from errors import AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from infrastructure.oauth_clients import ProviderIdentity
from repositories.account_repository import AccountRepository
from schemas.models.account import AccountDoc, AuthProviderEntry, OAuthProvider
from services.auth_service import INACTIVE_MESSAGE, AuthResult, AuthService
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)

_NAME_MAX_LENGTH = 50


def _clean_name(value: str) -> Optional[str]:
    value = value.strip()[:_NAME_MAX_LENGTH]
    return value or None


class OAuthService:
    def __init__(self, account_repo: AccountRepository, auth_service: AuthService) -> None:
        self._accounts = account_repo
        self._auth = auth_service

    async def _find_account(self, identity: ProviderIdentity) -> Optional[AccountDoc]:
        account = await self._accounts.find_by_provider(
            identity.provider, identity.provider_user_id
        )
        if account is None:
            account = await self._accounts.find_by_email(identity.email)
        return account

    async def login_with_provider(self, identity: ProviderIdentity) -> AuthResult:
        if not identity.email or not identity.email_verified:
            log.warning("oauth_login_rejected", provider=identity.provider.value, reason="unverified_email")
            raise AuthenticationError("OAuth provider did not return a verified email")
        if not identity.provider_user_id:
            raise AuthenticationError("OAuth provider did not return a user id")

        entry = AuthProviderEntry(
            provider=identity.provider,
            provider_user_id=identity.provider_user_id,
            email=identity.email,
            linked_at=utcnow(),
        )

        account = await self._find_account(identity)
        if account is None:
            try:
                account = await self._accounts.create(
                    AccountDoc(
                        email=identity.email,
                        password_hash=None,
                        is_verified=True,
                        first_name=_clean_name(identity.given_name),
                        last_name=_clean_name(identity.family_name),
                        avatar=identity.picture or None,
                        auth_providers=[entry],
                    )
                )
                log.info("oauth_account_created", provider=identity.provider.value, account_id=str(account.id))
                return await self._auth.start_session(account)
            except ConflictError:
                # Another request created the account first; link to it instead
                account = await self._find_account(identity)
                if account is None:
                    raise

        if not account.is_active:
            raise ForbiddenError(INACTIVE_MESSAGE)

        linked = await self._accounts.link_provider(
            account.id, entry, avatar=identity.picture or None
        )
        if linked is None:
            raise NotFoundError("User not found")
        log.info("oauth_account_linked", provider=identity.provider.value, account_id=str(linked.id))
        return await self._auth.start_session(linked)

    async def unlink_provider(self, account: AccountDoc, provider: OAuthProvider) -> AccountDoc:
        """Detach *provider*; an account must keep a password or another provider."""
        if account.get_provider(provider) is None:
            raise NotFoundError(f"{provider.value} is not linked to this account")

        last_method = ValidationError(
            "Cannot unlink the only sign-in method. Set a password first."
        )
        if not account.has_password and len(account.auth_providers) <= 1:
            raise last_method
        if not await self._accounts.unlink_provider(account.id, provider):
            raise last_method

        log.info("oauth_provider_unlinked", provider=provider.value, account_id=str(account.id))
        updated = await self._accounts.find_by_id(account.id)
        if updated is None:
            raise NotFoundError("User not found")
        return updated
