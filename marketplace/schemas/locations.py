from typing import Optional, List
from datetime import datetime

from pydantic import BaseModel, Field

from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.enums import NetworkType


class LocationUpdateIn(BaseModel):
    coordinates: Coordinates
    heading: Optional[float] = Field(default=None, ge=0, le=360)
    speed: Optional[float] = Field(default=None, ge=0, description="km/h")
    address: Optional[str] = Field(default=None, max_length=300)
    is_online: Optional[bool] = None
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)
    network_type: Optional[NetworkType] = None
    order_id: Optional[PyObjectId] = None

    model_config = {"extra": "ignore"}


class LocationSampleOut(BaseModel):
    id: PyObjectId = Field(alias="_id")
    user_id: PyObjectId
    order_id: Optional[PyObjectId] = None
    coordinates: Coordinates
    heading: Optional[float] = None
    speed: Optional[float] = None
    address: Optional[str] = None
    is_online: bool = True
    battery_level: Optional[float] = None
    network_type: Optional[NetworkType] = None
    createdAt: datetime

    model_config = {"populate_by_name": True, "extra": "ignore"}


class LocationValidation(BaseModel):
    is_valid: bool
    reason: Optional[str] = None


class NearbyPartner(BaseModel):
    user_id: PyObjectId
    name: str = ""
    coordinates: Coordinates
    distance_km: float
    rating: float = 0.0
    last_seen_at: datetime


class OptimalPartner(NearbyPartner):
    origin_distance_km: float
    destination_distance_km: float
    score: float


class OnlineStatusIn(BaseModel):
    is_online: bool


class OrderTrackingOut(BaseModel):
    partner_location: Optional[LocationSampleOut] = None
    history: List[LocationSampleOut] = Field(default_factory=list)
