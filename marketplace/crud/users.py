# marketplace/crud/users.py
"""Account directory: customers, partners and admins."""

from __future__ import annotations
from typing import Any, Dict, Optional
from datetime import datetime

from pymongo import ReturnDocument
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketplace.core.errors import ConflictError
from marketplace.schemas.enums import UserRole
from marketplace.schemas.users import UserOut
from marketplace.utils.mongo import stamp_create, stamp_update, to_oid

COLL = "users"
# a rating that keeps losing the race gives up after this many re-reads
_MAX_RATING_RETRIES = 10


def _to_out(doc: dict) -> UserOut:
    return UserOut.model_validate(doc)


class UserRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.coll = db[COLL]

    async def create(self, doc: Dict[str, Any]) -> UserOut:
        data = dict(doc)
        data.setdefault("is_active", True)
        data.setdefault("email_verified", False)
        data.setdefault("phone_verified", False)
        if data.get("role") == UserRole.PARTNER.value:
            data.setdefault(
                "partner_info",
                {
                    "is_online": False,
                    "documents_verified": False,
                    "rating": 0.0,
                    "rating_count": 0,
                    "rating_sum": 0.0,
                    "last_location_at": None,
                },
            )
        res = await self.coll.insert_one(stamp_create(data))
        saved = await self.coll.find_one({"_id": res.inserted_id})
        return _to_out(saved)

    async def find_by_id(self, user_id: Any) -> Optional[UserOut]:
        oid = to_oid(user_id)
        if not oid:
            return None
        doc = await self.coll.find_one({"_id": oid})
        return _to_out(doc) if doc else None

    async def find_by_email(self, email: str) -> Optional[dict]:
        """Raw document (password hash included) for the login flow."""
        return await self.coll.find_one({"email": email.strip().lower()})

    async def set_fields(self, user_id: Any, fields: Dict[str, Any]) -> Optional[UserOut]:
        oid = to_oid(user_id)
        if not oid:
            return None
        doc = await self.coll.find_one_and_update(
            {"_id": oid},
            {"$set": stamp_update(dict(fields))},
            return_document=ReturnDocument.AFTER,
        )
        return _to_out(doc) if doc else None

    async def update_rating(self, partner_id: Any, rating: float) -> Optional[UserOut]:
        """
        Fold one rating into the partner's running average.

        Sum, count and average are written together, conditioned on the sum and
        count that were read. A rater that loses the race re-reads and retries.
        """
        oid = to_oid(partner_id)
        if not oid:
            return None
        for _ in range(_MAX_RATING_RETRIES):
            current = await self.coll.find_one({"_id": oid, "role": UserRole.PARTNER.value})
            if not current:
                return None
            info = current.get("partner_info") or {}
            count = int(info.get("rating_count", 0))
            total = float(info.get("rating_sum", 0.0))
            new_count = count + 1
            new_total = total + float(rating)
            doc = await self.coll.find_one_and_update(
                {
                    "_id": oid,
                    "partner_info.rating_count": info.get("rating_count"),
                    "partner_info.rating_sum": info.get("rating_sum"),
                },
                {
                    "$set": stamp_update(
                        {
                            "partner_info.rating_count": new_count,
                            "partner_info.rating_sum": new_total,
                            "partner_info.rating": round(new_total / new_count, 2),
                        }
                    )
                },
                return_document=ReturnDocument.AFTER,
            )
            if doc:
                return _to_out(doc)
        raise ConflictError("Rating could not be recorded, try again")


    async def set_online(self, partner_id: Any, is_online: bool) -> Optional[UserOut]:
        return await self.set_fields(partner_id, {"partner_info.is_online": bool(is_online)})

    async def touch_location(self, partner_id: Any, at: datetime) -> Optional[UserOut]:
        return await self.set_fields(partner_id, {"partner_info.last_location_at": at})

    async def set_documents_verified(self, partner_id: Any, verified: bool) -> Optional[UserOut]:
        return await self.set_fields(partner_id, {"partner_info.documents_verified": bool(verified)})
