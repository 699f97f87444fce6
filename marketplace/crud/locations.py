# marketplace/crud/locations.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase

from marketplace.schemas.enums import UserRole
from marketplace.schemas.locations import LocationSampleOut
from marketplace.utils.mongo import stamp_create, to_oid

COLL = "location_samples"
USERS = "users"
MAX_NEARBY = 50


def _to_out(doc: dict) -> LocationSampleOut:
    return LocationSampleOut.model_validate(doc)


def nearby_pipeline(
    latitude: float,
    longitude: float,
    radius_km: float,
    active_since: datetime,
    limit: int = MAX_NEARBY,
) -> List[Dict[str, Any]]:
    """Aggregation behind `nearby_partners`. $geoNear has to be the first stage."""
    return [
        {
            "$geoNear": {
                "near": {"type": "Point", "coordinates": [longitude, latitude]},
                "distanceField": "distance_m",
                "maxDistance": radius_km * 1000.0,
                "spherical": True,
                "key": "point",
                "query": {"createdAt": {"$gte": active_since}},
            }
        },
        {"$sort": {"createdAt": -1}},
        {"$group": {"_id": "$user_id", "sample": {"$first": "$$ROOT"}}},
        {"$replaceRoot": {"newRoot": "$sample"}},
        {
            "$lookup": {
                "from": USERS,
                "localField": "user_id",
                "foreignField": "_id",
                "as": "user",
            }
        },
        {"$unwind": "$user"},
        {
            "$match": {
                "user.role": UserRole.PARTNER.value,
                "user.is_active": True,
                "user.partner_info.is_online": True,
                "user.partner_info.documents_verified": True,
            }
        },
        {"$sort": {"distance_m": 1}},
        {"$limit": int(limit)},
    ]


class LocationRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.coll = db[COLL]

    async def insert(self, doc: Dict[str, Any], now: Optional[datetime] = None) -> LocationSampleOut:
        data = dict(doc)
        data["user_id"] = to_oid(data["user_id"])
        if data.get("order_id") is not None:
            data["order_id"] = to_oid(data["order_id"])
        coords = data["coordinates"]
        # GeoJSON wants [lng, lat]
        data["point"] = {"type": "Point", "coordinates": [coords["longitude"], coords["latitude"]]}
        res = await self.coll.insert_one(stamp_create(data, now))
        saved = await self.coll.find_one({"_id": res.inserted_id})
        return _to_out(saved)

    async def latest_for_user(self, user_id: Any) -> Optional[LocationSampleOut]:
        doc = await self.coll.find_one({"user_id": to_oid(user_id)}, sort=[("createdAt", -1)])
        return _to_out(doc) if doc else None

    async def history(
        self,
        user_id: Any,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[LocationSampleOut]:
        q: Dict[str, Any] = {"user_id": to_oid(user_id)}
        window: Dict[str, Any] = {}
        if start is not None:
            window["$gte"] = start
        if end is not None:
            window["$lte"] = end
        if window:
            q["createdAt"] = window
        cur = self.coll.find(q).sort("createdAt", -1).limit(max(0, int(limit)))
        docs = await cur.to_list(length=limit)
        return [_to_out(d) for d in docs]

    async def for_order(self, order_id: Any, limit: int = 200) -> List[LocationSampleOut]:
        cur = self.coll.find({"order_id": to_oid(order_id)}).sort("createdAt", 1).limit(max(0, int(limit)))
        docs = await cur.to_list(length=limit)
        return [_to_out(d) for d in docs]

    async def nearby_partners(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        active_since: datetime,
        limit: int = MAX_NEARBY,
    ) -> List[Dict[str, Any]]:
        """
        Latest sample per eligible partner within `radius_km`, nearest first.

        Rows: {user_id, coordinates, distance_km, createdAt, user}. Spherical
        distances come from the 2dsphere index on `point`.
        """
        rows = await self.coll.aggregate(
            nearby_pipeline(latitude, longitude, radius_km, active_since, limit)
        ).to_list(length=limit)
        return [
            {
                "user_id": r["user_id"],
                "coordinates": r["coordinates"],
                "distance_km": r["distance_m"] / 1000.0,
                "createdAt": r["createdAt"],
                "user": r["user"],
            }
            for r in rows
        ]

    async def delete_before(self, cutoff: datetime) -> int:
        res = await self.coll.delete_many({"createdAt": {"$lt": cutoff}})
        return res.deleted_count
