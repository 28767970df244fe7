"""
One-time code persistence over the `otp-codes` collection.

A unique index on (email, purpose) keeps one record per scope. Counters and
the verified flag only move through conditional updates, so concurrent
guesses cannot exceed the attempt budget.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from schemas.models.otp import OtpPurpose, OtpRecordDoc


class OtpRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("email", ASCENDING), ("purpose", ASCENDING)], unique=True
        )
        # Housekeeping only: expiry is enforced by queries, not by the TTL monitor
        await self._col.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    async def replace_for_scope(self, record: OtpRecordDoc) -> None:
        """Atomically supersede whatever record the scope holds with *record*."""
        doc = record.to_mongo()
        doc.pop("_id", None)
        doc["purpose"] = record.purpose.value
        await self._col.replace_one(
            {"email": record.email, "purpose": record.purpose.value},
            doc,
            upsert=True,
        )

    async def find_active(
        self, email: str, purpose: OtpPurpose, now: datetime
    ) -> Optional[OtpRecordDoc]:
        """Return the newest unexpired, unverified record for the scope."""
        doc = await self._col.find_one(
            {
                "email": email,
                "purpose": purpose.value,
                "verified": False,
                "expires_at": {"$gt": now},
            },
            sort=[("created_at", DESCENDING)],
        )
        return OtpRecordDoc.from_mongo(doc)

    async def increment_attempts(
        self, record_id: ObjectId, code_hash: str, max_attempts: int
    ) -> Optional[int]:
        """Count one failed guess against the record.

        Returns the new attempt count, or None when the record was replaced,
        verified, or already out of attempts.
        """
        doc = await self._col.find_one_and_update(
            {
                "_id": record_id,
                "code_hash": code_hash,
                "verified": False,
                "attempts": {"$lt": max_attempts},
            },
            {"$inc": {"attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        return doc["attempts"]

    async def mark_verified(
        self,
        record_id: ObjectId,
        code_hash: str,
        max_attempts: int,
        now: datetime,
    ) -> bool:
        """Flip the record to verified if it is still current and usable."""
        result = await self._col.update_one(
            {
                "_id": record_id,
                "code_hash": code_hash,
                "verified": False,
                "attempts": {"$lt": max_attempts},
                "expires_at": {"$gt": now},
            },
            {"$set": {"verified": True}},
        )
        return result.modified_count == 1

    async def delete_for_scope(self, email: str, purpose: OtpPurpose) -> int:
        result = await self._col.delete_many(
            {"email": email, "purpose": purpose.value}
        )
        return result.deleted_count
