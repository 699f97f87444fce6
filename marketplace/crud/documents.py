# marketplace/crud/documents.py
from __future__ import annotations
from typing import Any, Dict, Optional
from datetime import datetime

from pymongo import ReturnDocument
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketplace.utils.mongo import stamp_update, to_oid

COLL = "partner_documents"


class DocumentRepository:
    """One document set per partner; resubmission replaces the previous one."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.coll = db[COLL]

    async def upsert(self, partner_id: Any, fields: Dict[str, Any], now: Optional[datetime] = None) -> dict:
        data = stamp_update(dict(fields), now)
        return await self.coll.find_one_and_update(
            {"partner_id": to_oid(partner_id)},
            {"$set": data, "$setOnInsert": {"createdAt": data["updatedAt"]}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def get(self, partner_id: Any) -> Optional[dict]:
        return await self.coll.find_one({"partner_id": to_oid(partner_id)})

    async def set_fields(self, partner_id: Any, fields: Dict[str, Any], now: Optional[datetime] = None) -> Optional[dict]:
        return await self.coll.find_one_and_update(
            {"partner_id": to_oid(partner_id)},
            {"$set": stamp_update(dict(fields), now)},
            return_document=ReturnDocument.AFTER,
        )
