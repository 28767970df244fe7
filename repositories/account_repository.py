"""
Account persistence over the `accounts` collection.

Every mutation is a single atomic update on one document, except delete(),
which removes the account and its OTP records in one transaction.
"""

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import ConflictError
from schemas.models.account import AccountDoc, AuthProviderEntry, OAuthProvider
from schemas.models.base import parse_object_id
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)

PROFILE_FIELDS = frozenset(
    {"first_name", "last_name", "avatar", "latitude", "longitude", "address", "city"}
)


class AccountRepository:
    def __init__(self, collection, *, otp_collection, client) -> None:
        self._col = collection
        self._otp_col = otp_collection
        self._client = client

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)
        await self._col.create_index(
            [
                ("auth_providers.provider", ASCENDING),
                ("auth_providers.provider_user_id", ASCENDING),
            ],
            unique=True,
            sparse=True,
        )

    # ── Lookups ─────────────────────────────────────────────────────────────

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        doc = await self._col.find_one({"email": email})
        return AccountDoc.from_mongo(doc)

    async def find_by_id(self, account_id: Any) -> Optional[AccountDoc]:
        oid = parse_object_id(account_id)
        if oid is None:
            return None
        doc = await self._col.find_one({"_id": oid})
        return AccountDoc.from_mongo(doc)

    async def find_by_refresh_token(
        self, account_id: Any, refresh_token_hash: str
    ) -> Optional[AccountDoc]:
        """Return the account only if *refresh_token_hash* is its current token."""
        oid = parse_object_id(account_id)
        if oid is None:
            return None
        doc = await self._col.find_one(
            {"_id": oid, "refresh_token_hash": refresh_token_hash}
        )
        return AccountDoc.from_mongo(doc)

    async def find_by_provider(
        self, provider: OAuthProvider, provider_user_id: str
    ) -> Optional[AccountDoc]:
        doc = await self._col.find_one(
            {
                "auth_providers.provider": provider.value,
                "auth_providers.provider_user_id": provider_user_id,
            }
        )
        return AccountDoc.from_mongo(doc)

    # ── Mutations ───────────────────────────────────────────────────────────

    async def create(self, account: AccountDoc) -> AccountDoc:
        """Insert *account*; raises ConflictError if the email is taken."""
        now = utcnow()
        account.created_at = account.created_at or now
        account.updated_at = now
        try:
            result = await self._col.insert_one(account.to_mongo())
        except DuplicateKeyError:
            raise ConflictError(
                "User already exists with this email", field="email"
            ) from None
        account.id = result.inserted_id
        log.info("account_created", account_id=str(result.inserted_id))
        return account

    async def _update(self, oid: ObjectId, update: dict) -> Optional[AccountDoc]:
        update.setdefault("$set", {})["updated_at"] = utcnow()
        doc = await self._col.find_one_and_update(
            {"_id": oid}, update, return_document=ReturnDocument.AFTER
        )
        return AccountDoc.from_mongo(doc)

    async def mark_verified(self, account_id: ObjectId) -> Optional[AccountDoc]:
        return await self._update(account_id, {"$set": {"is_verified": True}})

    async def record_login(
        self, account_id: ObjectId, refresh_token_hash: str
    ) -> None:
        """Store the newly issued refresh token and stamp the login time."""
        now = utcnow()
        await self._col.update_one(
            {"_id": account_id},
            {
                "$set": {
                    "refresh_token_hash": refresh_token_hash,
                    "last_login_at": now,
                    "updated_at": now,
                }
            },
        )

    async def rotate_refresh_token(
        self, account_id: ObjectId, current_hash: str, new_hash: str
    ) -> bool:
        """Swap the stored refresh token only if it still equals *current_hash*.

        Of two concurrent rotations presenting the same token, exactly one
        gets True.
        """
        result = await self._col.update_one(
            {"_id": account_id, "refresh_token_hash": current_hash},
            {"$set": {"refresh_token_hash": new_hash, "updated_at": utcnow()}},
        )
        return result.modified_count == 1

    async def clear_refresh_token(self, account_id: ObjectId) -> None:
        await self._col.update_one(
            {"_id": account_id},
            {"$set": {"refresh_token_hash": None, "updated_at": utcnow()}},
        )

    async def set_password(self, account_id: ObjectId, password_hash: str) -> None:
        """Replace the password hash and revoke the refresh token."""
        await self._col.update_one(
            {"_id": account_id},
            {
                "$set": {
                    "password_hash": password_hash,
                    "refresh_token_hash": None,
                    "updated_at": utcnow(),
                }
            },
        )

    async def set_password_if_unset(
        self, account_id: ObjectId, password_hash: str
    ) -> bool:
        result = await self._col.update_one(
            {"_id": account_id, "password_hash": None},
            {"$set": {"password_hash": password_hash, "updated_at": utcnow()}},
        )
        return result.modified_count == 1

    async def set_active(self, account_id: ObjectId, is_active: bool) -> bool:
        update: dict = {"is_active": is_active, "updated_at": utcnow()}
        if not is_active:
            update["refresh_token_hash"] = None
        result = await self._col.update_one({"_id": account_id}, {"$set": update})
        return result.matched_count == 1

    async def update_profile(
        self, account_id: ObjectId, fields: dict
    ) -> Optional[AccountDoc]:
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Not profile fields: {sorted(unknown)}")
        return await self._update(account_id, {"$set": dict(fields)})

    async def link_provider(
        self,
        account_id: ObjectId,
        entry: AuthProviderEntry,
        *,
        avatar: Optional[str] = None,
    ) -> Optional[AccountDoc]:
        """Attach (or refresh) a provider entry and mark the email verified.

        The avatar is only filled in when the account has none.
        """
        entry_doc = entry.model_dump()
        now = utcnow()

        result = await self._col.update_one(
            {"_id": account_id, "auth_providers.provider": {"$ne": entry.provider.value}},
            {
                "$push": {"auth_providers": entry_doc},
                "$set": {"is_verified": True, "updated_at": now},
            },
        )
        if result.matched_count == 0:
            await self._col.update_one(
                {"_id": account_id, "auth_providers.provider": entry.provider.value},
                {
                    "$set": {
                        "auth_providers.$": entry_doc,
                        "is_verified": True,
                        "updated_at": now,
                    }
                },
            )

        if avatar:
            await self._col.update_one(
                {"_id": account_id, "avatar": None},
                {"$set": {"avatar": avatar}},
            )
        return await self.find_by_id(account_id)

    async def unlink_provider(
        self, account_id: ObjectId, provider: OAuthProvider
    ) -> bool:
        """Remove *provider* unless it is the only sign-in method left.

        The guard is part of the update filter, so a password removal or a
        concurrent unlink cannot leave the account without credentials.
        """
        result = await self._col.update_one(
            {
                "_id": account_id,
                "auth_providers.provider": provider.value,
                "$or": [
                    {"password_hash": {"$ne": None}},
                    {"auth_providers.1": {"$exists": True}},
                ],
            },
            {
                "$pull": {"auth_providers": {"provider": provider.value}},
                "$set": {"updated_at": utcnow()},
            },
        )
        return result.modified_count == 1

    async def delete(self, account: AccountDoc) -> bool:
        """Delete the account and every OTP record for its email atomically."""
        async with self._client.start_session() as session:
            async with await session.start_transaction():
                await self._otp_col.delete_many(
                    {"email": account.email}, session=session
                )
                result = await self._col.delete_one(
                    {"_id": account.id}, session=session
                )
        deleted = result.deleted_count == 1
        log.info("account_deleted", account_id=str(account.id), deleted=deleted)
        return deleted
