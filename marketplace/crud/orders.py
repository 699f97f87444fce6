# marketplace/crud/orders.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime

from pymongo import ReturnDocument
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketplace.schemas.enums import OrderStatus
from marketplace.schemas.orders import OrderOut, OrderStatusCount
from marketplace.utils.mongo import stamp_create, stamp_update, to_oid

COLL = "orders"


def _to_out(doc: dict) -> OrderOut:
    return OrderOut.model_validate(doc)


def _normalize_query(query: Dict[str, Any] | None, keep_none: bool = False) -> Dict[str, Any]:
    """
    Convert known FK filters to ObjectId, passthrough otherwise.
    None values are dropped unless `keep_none` (then they match a missing/null field).
    """
    if not query:
        return {}
    out: Dict[str, Any] = {}
    for k, v in query.items():
        if v is None:
            if keep_none:
                out[k] = None
            continue
        if k in {"customer_id", "partner_id"}:
            oid = to_oid(v)
            out[k] = oid if oid else v
        elif isinstance(v, OrderStatus):
            out[k] = v.value
        else:
            out[k] = v
    return out


class OrderRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.coll = db[COLL]

    async def insert(self, doc: Dict[str, Any], now: Optional[datetime] = None) -> OrderOut:
        data = dict(doc)
        data["customer_id"] = to_oid(data["customer_id"])
        res = await self.coll.insert_one(stamp_create(data, now))
        saved = await self.coll.find_one({"_id": res.inserted_id})
        return _to_out(saved)

    async def get(self, order_id: Any) -> Optional[OrderOut]:
        oid = to_oid(order_id)
        if not oid:
            return None
        doc = await self.coll.find_one({"_id": oid})
        return _to_out(doc) if doc else None

    async def get_by_number(self, order_number: str) -> Optional[OrderOut]:
        doc = await self.coll.find_one({"order_number": order_number.strip().upper()})
        return _to_out(doc) if doc else None

    async def number_exists(self, order_number: str) -> bool:
        return await self.coll.count_documents({"order_number": order_number}, limit=1) > 0

    async def list_all(
        self,
        skip: int = 0,
        limit: int = 50,
        query: Dict[str, Any] | None = None,
    ) -> List[OrderOut]:
        q = _normalize_query(query)
        cur = (
            self.coll
            .find(q)
            .sort("createdAt", -1)
            .skip(max(0, int(skip)))
            .limit(max(0, int(limit)))
        )
        docs = await cur.to_list(length=limit)
        return [_to_out(d) for d in docs]

    async def conditional_update(
        self,
        order_id: Any,
        expected: Dict[str, Any],
        update: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[OrderOut]:
        """
        Apply `update` only when the stored order still matches `expected`.

        `update` is a Mongo update document; `$set` gets `updatedAt` stamped.
        Returns None when the order is missing or no longer matches.
        """
        oid = to_oid(order_id)
        if not oid:
            return None
        body = dict(update)
        body["$set"] = stamp_update(dict(body.get("$set") or {}), now)
        doc = await self.coll.find_one_and_update(
            {"_id": oid, **_normalize_query(expected, keep_none=True)},
            body,
            return_document=ReturnDocument.AFTER,
        )
        return _to_out(doc) if doc else None

    async def stats(self, partner_id: Any = None) -> List[OrderStatusCount]:
        match: Dict[str, Any] = {}
        if partner_id is not None:
            match["partner_id"] = to_oid(partner_id)
        pipeline = [
            {"$match": match},
            {
                "$group": {
                    "_id": "$status",
                    "count": {"$sum": 1},
                    "amount": {"$sum": "$pricing.total_amount"},
                }
            },
            {"$sort": {"_id": 1}},
        ]
        rows = await self.coll.aggregate(pipeline).to_list(length=None)
        return [
            OrderStatusCount(status=r["_id"], count=int(r["count"]), amount=round(float(r["amount"] or 0), 2))
            for r in rows
        ]
