"""
Routes for partner locations.
- Thin HTTP layer over LocationService.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_current_user, get_location_service, require_role
from marketplace.core.errors import UnauthorizedError
from marketplace.schemas.enums import UserRole
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.locations import (
    LocationSampleOut,
    LocationUpdateIn,
    LocationValidation,
    NearbyPartner,
    OnlineStatusIn,
    OptimalPartner,
    OrderTrackingOut,
)
from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.responses import CleanupOut
from marketplace.schemas.users import UserOut
from marketplace.services.locations import LocationService

router = APIRouter()  # mounted at /locations


def _self_or_admin(current: Dict, user_id: PyObjectId) -> None:
    if current["role"] != UserRole.ADMIN.value and str(current["user_id"]) != str(user_id):
        raise UnauthorizedError()


@router.post("/", response_model=LocationSampleOut, status_code=status.HTTP_201_CREATED)
async def record_location(
    payload: LocationUpdateIn,
    current: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    return await svc.record_location(current["user_id"], payload)


@router.post("/validate", response_model=LocationValidation)
async def validate_location(
    payload: Coordinates,
    current: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    """Dry-run the plausibility check for the current user without recording anything."""
    return await svc.validate_location_update(current["user_id"], payload)


@router.get("/me/latest", response_model=LocationSampleOut)
async def my_latest_location(
    current: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    return await svc.latest_location(current["user_id"])


@router.get("/nearby", response_model=List[NearbyPartner])
async def nearby_partners(
    latitude: float = Query(...),
    longitude: float = Query(...),
    radius_km: float = Query(10.0),
    _: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    """Range checks live in the service so bad input maps to InvalidParameter."""
    return await svc.find_nearby_partners(latitude, longitude, radius_km)


@router.get("/optimal", response_model=Optional[OptimalPartner])
async def optimal_partner(
    origin_lat: float = Query(...),
    origin_lng: float = Query(...),
    dest_lat: float = Query(...),
    dest_lng: float = Query(...),
    radius_km: float = Query(10.0),
    _: Dict = Depends(require_role(UserRole.ADMIN, UserRole.CUSTOMER)),
    svc: LocationService = Depends(get_location_service),
):
    return await svc.find_optimal_partner(origin_lat, origin_lng, dest_lat, dest_lng, radius_km)


@router.put("/online", response_model=UserOut)
async def set_online(
    payload: OnlineStatusIn,
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: LocationService = Depends(get_location_service),
):
    return await svc.set_online_status(current["user_id"], payload.is_online)


@router.get("/orders/{order_id}/track", response_model=OrderTrackingOut)
async def track_order(
    order_id: PyObjectId,
    current: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    return await svc.track_order(order_id, viewer=current)


@router.delete("/cleanup", response_model=CleanupOut)
async def cleanup_locations(
    days_old: int = Query(30),
    _: Dict = Depends(require_role(UserRole.ADMIN)),
    svc: LocationService = Depends(get_location_service),
):
    return CleanupOut(deleted=await svc.cleanup_old_locations(days_old))


@router.get("/{user_id}/latest", response_model=LocationSampleOut)
async def latest_location(
    user_id: PyObjectId,
    current: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    _self_or_admin(current, user_id)
    return await svc.latest_location(user_id)


@router.get("/{user_id}/history", response_model=List[LocationSampleOut])
async def location_history(
    user_id: PyObjectId,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    current: Dict = Depends(get_current_user),
    svc: LocationService = Depends(get_location_service),
):
    _self_or_admin(current, user_id)
    return await svc.location_history(user_id, start=start, end=end, limit=limit)
