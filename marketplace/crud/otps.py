# marketplace/crud/otps.py
from __future__ import annotations
from typing import Any, Dict, Optional
from datetime import datetime

from pymongo import ReturnDocument
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketplace.schemas.enums import OtpPurpose, OtpStatus
from marketplace.schemas.otp import OtpRecord
from marketplace.utils.mongo import stamp_create, stamp_update, to_oid

COLL = "otps"


def _to_record(doc: dict) -> OtpRecord:
    return OtpRecord.model_validate(doc)


def _scope(user_id: Any, purpose: OtpPurpose, order_id: Any = None) -> Dict[str, Any]:
    q: Dict[str, Any] = {"user_id": to_oid(user_id), "purpose": OtpPurpose(purpose).value}
    if order_id is not None:
        q["order_id"] = to_oid(order_id)
    return q


class OtpRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.coll = db[COLL]

    async def insert(self, doc: Dict[str, Any], now: Optional[datetime] = None) -> OtpRecord:
        data = dict(doc)
        data["user_id"] = to_oid(data["user_id"])
        if data.get("order_id") is not None:
            data["order_id"] = to_oid(data["order_id"])
        res = await self.coll.insert_one(stamp_create(data, now))
        saved = await self.coll.find_one({"_id": res.inserted_id})
        return _to_record(saved)

    async def expire_pending(self, user_id: Any, purpose: OtpPurpose, now: Optional[datetime] = None) -> int:
        """Mark every pending (user, purpose) code as expired, across orders. Returns the number touched."""
        q = _scope(user_id, purpose)
        q["status"] = OtpStatus.PENDING.value
        res = await self.coll.update_many(
            q, {"$set": stamp_update({"status": OtpStatus.EXPIRED.value}, now)}
        )
        return res.modified_count

    async def expire_for_order(self, order_id: Any, now: Optional[datetime] = None) -> int:
        res = await self.coll.update_many(
            {"order_id": to_oid(order_id), "status": OtpStatus.PENDING.value},
            {"$set": stamp_update({"status": OtpStatus.EXPIRED.value}, now)},
        )
        return res.modified_count

    async def latest_pending(self, user_id: Any, purpose: OtpPurpose, order_id: Any = None) -> Optional[OtpRecord]:
        q = _scope(user_id, purpose, order_id)
        q["status"] = OtpStatus.PENDING.value
        doc = await self.coll.find_one(q, sort=[("createdAt", -1)])
        return _to_record(doc) if doc else None

    async def get(self, otp_id: Any) -> Optional[OtpRecord]:
        doc = await self.coll.find_one({"_id": to_oid(otp_id)})
        return _to_record(doc) if doc else None

    async def compare_and_set(
        self,
        otp_id: Any,
        observed_attempts: int,
        fields: Dict[str, Any],
        inc_attempts: bool = False,
        now: Optional[datetime] = None,
    ) -> Optional[OtpRecord]:
        """
        Update a pending record only if nobody else touched its attempt counter.

        Returns the updated record, or None when the record moved on (lost race,
        already verified, expired elsewhere).
        """
        update: Dict[str, Any] = {"$set": stamp_update(dict(fields), now)}
        if inc_attempts:
            update["$inc"] = {"attempts": 1}
        doc = await self.coll.find_one_and_update(
            {"_id": to_oid(otp_id), "status": OtpStatus.PENDING.value, "attempts": int(observed_attempts)},
            update,
            return_document=ReturnDocument.AFTER,
        )
        return _to_record(doc) if doc else None

    async def delete_expired_before(self, cutoff: datetime) -> int:
        res = await self.coll.delete_many({"expiresAt": {"$lt": cutoff}})
        return res.deleted_count
