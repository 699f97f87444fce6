from typing import Any, Dict, List

from bson import ObjectId

from marketplace.crud.locations import MAX_NEARBY, USERS, LocationRepository
from marketplace.schemas.documents import AadhaarExtraction
from marketplace.schemas.enums import UserRole
from marketplace.services.pricing import haversine_km
from marketplace.utils.mongo import as_utc
from marketplace.utils.ocr import confidence_for


class FakeLocationRepository(LocationRepository):
    """mongomock has no $geoNear; the nearby search is redone in Python over the same documents."""

    def __init__(self, db):
        super().__init__(db)
        self.users = db[USERS]

    async def nearby_partners(self, latitude, longitude, radius_km, active_since, limit=MAX_NEARBY):
        latest: Dict[Any, dict] = {}
        for doc in await self.coll.find({}).to_list(length=None):
            if as_utc(doc["createdAt"]) < active_since:
                continue
            c = doc["coordinates"]
            distance = haversine_km(latitude, longitude, c["latitude"], c["longitude"])
            if distance > radius_km:
                continue
            seen = latest.get(doc["user_id"])
            if seen is None or as_utc(doc["createdAt"]) > as_utc(seen["createdAt"]):
                latest[doc["user_id"]] = dict(doc, distance_km=distance)

        rows: List[Dict[str, Any]] = []
        for user_id, doc in latest.items():
            user = await self.users.find_one({"_id": user_id})
            info = (user or {}).get("partner_info") or {}
            if not user or user.get("role") != UserRole.PARTNER.value or not user.get("is_active"):
                continue
            if not info.get("is_online") or not info.get("documents_verified"):
                continue
            rows.append(
                {
                    "user_id": user_id,
                    "coordinates": doc["coordinates"],
                    "distance_km": doc["distance_km"],
                    "createdAt": doc["createdAt"],
                    "user": user,
                }
            )
        rows.sort(key=lambda r: r["distance_km"])
        return rows[:limit]


class FakeFileStore:
    """In-memory stand-in for the GridFS store."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    async def upload(self, file):
        data = await file.read()
        file_id = str(ObjectId())
        self.files[file_id] = data
        return file_id, data, file.content_type

    def sign_url(self, file_id):
        return f"/files/{file_id}?token=signed"

    async def delete(self, file_id):
        self.deleted.append(file_id)
        return self.files.pop(file_id, None) is not None


class FakeExtractor:
    def __init__(self, fields=None, error=None):
        self.fields = fields
        self.error = error
        self.calls = 0

    async def extract(self, image, content_type="image/jpeg"):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return AadhaarExtraction(fields=self.fields, confidence=confidence_for(self.fields))


class FakeCooldown:
    """First send per (user, purpose) passes, repeats are throttled."""

    def __init__(self, seconds_left=42):
        self.taken = set()
        self.left = seconds_left

    async def acquire(self, user_id, purpose):
        key = (str(user_id), purpose)
        if key in self.taken:
            return False
        self.taken.add(key)
        return True

    async def seconds_left(self, user_id, purpose):
        return self.left
