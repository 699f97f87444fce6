from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes may come back naive depending on client options; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


"""Helpers for keep track of createdAt and updatedAt for all collections"""
def stamp_create(doc: dict, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    return doc

def stamp_update(doc: dict, now: Optional[datetime] = None) -> dict:
    doc["updatedAt"] = now or utcnow()
    return doc


def to_oid(v: Any) -> Optional[ObjectId]:
    if isinstance(v, ObjectId):
        return v
    try:
        return ObjectId(str(v))
    except (InvalidId, TypeError):
        return None
