"""
Service layer for partner locations.
- Records samples after a plausibility check (interval and implied speed).
- Nearby search over the latest sample per eligible partner, plus the
  optimal-partner score for an origin/destination pair.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from marketplace.core.config import settings
from marketplace.core.errors import (
    InvalidParameter,
    OrderNotFound,
    UnauthorizedError,
    UserNotFound,
    ValidationError,
)
from marketplace.crud.locations import LocationRepository
from marketplace.crud.orders import OrderRepository
from marketplace.crud.users import UserRepository
from marketplace.schemas.enums import UserRole
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.locations import (
    LocationSampleOut,
    LocationUpdateIn,
    LocationValidation,
    NearbyPartner,
    OptimalPartner,
    OrderTrackingOut,
)
from marketplace.services.pricing import haversine_km
from marketplace.utils.mongo import as_utc, utcnow

log = logging.getLogger(__name__)

MAX_RADIUS_KM = 100.0
MIN_CLEANUP_DAYS = 7
DISTANCE_WEIGHT = 0.7
RATING_WEIGHT = 0.2
MAX_RATING = 5.0


def _check_point(latitude: float, longitude: float, label: str = "") -> None:
    prefix = f"{label} " if label else ""
    if latitude is None or not -90 <= latitude <= 90:
        raise InvalidParameter(f"{prefix}latitude must be between -90 and 90")
    if longitude is None or not -180 <= longitude <= 180:
        raise InvalidParameter(f"{prefix}longitude must be between -180 and 180")


def _check_radius(radius_km: float) -> None:
    if radius_km is None or not 0 < radius_km <= MAX_RADIUS_KM:
        raise InvalidParameter(f"radius_km must be greater than 0 and at most {MAX_RADIUS_KM:g}")


def partner_score(origin_km: float, destination_km: float, rating: float) -> float:
    """Lower is better: travel distance dominates, rating breaks near-ties."""
    return DISTANCE_WEIGHT * (origin_km + destination_km) + RATING_WEIGHT * (MAX_RATING - rating)


class LocationService:
    def __init__(
        self,
        locations: LocationRepository,
        accounts: UserRepository,
        orders: Optional[OrderRepository] = None,
        clock: Callable[[], datetime] = utcnow,
        min_interval_seconds: float = settings.LOCATION_MIN_INTERVAL_SECONDS,
        max_speed_kmh: float = settings.LOCATION_MAX_SPEED_KMH,
        active_window_minutes: int = settings.LOCATION_ACTIVE_WINDOW_MINUTES,
    ):
        self.locations = locations
        self.accounts = accounts
        self.orders = orders
        self.clock = clock
        self.min_interval_seconds = min_interval_seconds
        self.max_speed_kmh = max_speed_kmh
        self.active_window_minutes = active_window_minutes

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_location_update(
        self,
        user_id: Any,
        coordinates: Coordinates,
        now: Optional[datetime] = None,
    ) -> LocationValidation:
        """
        Plausibility check against the user's previous sample. Never raises.
        """
        try:
            now = now or self.clock()
            previous = await self.locations.latest_for_user(user_id)
            if previous is None:
                return LocationValidation(is_valid=True)

            elapsed = (now - as_utc(previous.createdAt)).total_seconds()
            if elapsed < self.min_interval_seconds:
                return LocationValidation(
                    is_valid=False,
                    reason=f"Location updates must be at least {self.min_interval_seconds:g}s apart",
                )

            distance_km = haversine_km(
                previous.coordinates.latitude,
                previous.coordinates.longitude,
                coordinates.latitude,
                coordinates.longitude,
            )
            speed_kmh = distance_km / (elapsed / 3600.0)
            if speed_kmh > self.max_speed_kmh:
                return LocationValidation(
                    is_valid=False,
                    reason=f"Implied speed {speed_kmh:.1f} km/h exceeds {self.max_speed_kmh:g} km/h",
                )
            return LocationValidation(is_valid=True)
        except Exception as e:
            log.warning("location validation failed user=%s", user_id, exc_info=True)
            return LocationValidation(is_valid=False, reason=f"Validation unavailable: {e}")

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    async def record_location(self, user_id: Any, payload: LocationUpdateIn) -> LocationSampleOut:
        """
        Validate and append a sample; partners also get `last_location_at` and
        (when sent) the online flag refreshed.

        Raises:
            ValidationError: the update failed the plausibility check.
        """
        now = self.clock()
        check = await self.validate_location_update(user_id, payload.coordinates, now=now)
        if not check.is_valid:
            raise ValidationError(check.reason or "Invalid location update")

        is_online = True if payload.is_online is None else payload.is_online
        sample = await self.locations.insert(
            {
                "user_id": user_id,
                "order_id": payload.order_id,
                "coordinates": payload.coordinates.model_dump(mode="python"),
                "heading": payload.heading,
                "speed": payload.speed,
                "address": payload.address,
                "is_online": is_online,
                "battery_level": payload.battery_level,
                "network_type": payload.network_type.value if payload.network_type else None,
            },
            now=now,
        )

        user = await self.accounts.find_by_id(user_id)
        if user is not None and user.role == UserRole.PARTNER:
            await self.accounts.touch_location(user.id, now)
            if payload.is_online is not None:
                await self.accounts.set_online(user.id, payload.is_online)
        return sample

    async def latest_location(self, user_id: Any) -> LocationSampleOut:
        sample = await self.locations.latest_for_user(user_id)
        if sample is None:
            raise UserNotFound("No location recorded for this user")
        return sample

    async def location_history(
        self,
        user_id: Any,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[LocationSampleOut]:
        if start and end and as_utc(end) < as_utc(start):
            raise InvalidParameter("end must not be before start")
        return await self.locations.history(user_id, start=start, end=end, limit=limit)

    async def set_online_status(self, partner_id: Any, is_online: bool):
        user = await self.accounts.set_online(partner_id, is_online)
        if user is None:
            raise UserNotFound()
        log.info("partner online status user=%s online=%s", partner_id, is_online)
        return user

    async def track_order(self, order_id: Any, viewer: Optional[dict] = None) -> OrderTrackingOut:
        if self.orders is None:
            raise OrderNotFound()
        order = await self.orders.get(order_id)
        if not order:
            raise OrderNotFound()
        if viewer is not None and viewer.get("role") != UserRole.ADMIN.value:
            uid = str(viewer.get("user_id"))
            if uid not in {str(order.customer_id), str(order.partner_id)}:
                raise UnauthorizedError("You are not a party to this order")

        history = await self.locations.for_order(order.id)
        latest = await self.locations.latest_for_user(order.partner_id) if order.partner_id else None
        return OrderTrackingOut(partner_location=latest, history=history)

    async def cleanup_old_locations(self, days_old: int = settings.LOCATION_RETENTION_DAYS) -> int:
        if days_old < MIN_CLEANUP_DAYS:
            raise InvalidParameter(f"days_old must be at least {MIN_CLEANUP_DAYS}")
        cutoff = self.clock() - timedelta(days=days_old)
        deleted = await self.locations.delete_before(cutoff)
        log.info("location cleanup removed=%s older_than_days=%s", deleted, days_old)
        return deleted

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def find_nearby_partners(
        self,
        latitude: float,
        longitude: float,
        radius_km: float = 10.0,
    ) -> List[NearbyPartner]:
        """
        Online, active, verified partners whose latest sample is within `radius_km`,
        nearest first (at most 50).

        Raises:
            InvalidParameter: coordinates out of range or radius not in (0, 100].
        """
        _check_point(latitude, longitude)
        _check_radius(radius_km)
        active_since = self.clock() - timedelta(minutes=self.active_window_minutes)
        rows = await self.locations.nearby_partners(latitude, longitude, radius_km, active_since)

        out: List[NearbyPartner] = []
        for row in rows:
            user = row.get("user") or {}
            info = user.get("partner_info") or {}
            name = f"{user.get('first_name', '')} {user.get('last_name', '')}".strip()
            out.append(
                NearbyPartner(
                    user_id=row["user_id"],
                    name=name,
                    coordinates=row["coordinates"],
                    distance_km=round(row["distance_km"], 3),
                    rating=float(info.get("rating") or 0.0),
                    last_seen_at=row["createdAt"],
                )
            )
        return out

    async def find_optimal_partner(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float,
        radius_km: float = 10.0,
    ) -> Optional[OptimalPartner]:
        """
        Best candidate around the origin by
        0.7 * (d(partner, origin) + d(partner, destination)) + 0.2 * (5 - rating).
        """
        _check_point(dest_lat, dest_lng, "destination")
        candidates = await self.find_nearby_partners(origin_lat, origin_lng, radius_km)
        if not candidates:
            return None

        scored: List[OptimalPartner] = []
        for c in candidates:
            to_origin = c.distance_km
            to_destination = haversine_km(c.coordinates.latitude, c.coordinates.longitude, dest_lat, dest_lng)
            scored.append(
                OptimalPartner(
                    **c.model_dump(),
                    origin_distance_km=round(to_origin, 3),
                    destination_distance_km=round(to_destination, 3),
                    score=round(partner_score(to_origin, to_destination, c.rating), 4),
                )
            )
        scored.sort(key=lambda p: (p.score, p.distance_km))
        return scored[0]
