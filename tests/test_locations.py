from datetime import datetime, timezone

import pytest
from bson import ObjectId

from fakes import FakeLocationRepository
from marketplace.core.errors import InvalidParameter, UnauthorizedError, UserNotFound, ValidationError
from marketplace.crud.locations import nearby_pipeline
from marketplace.crud.orders import OrderRepository
from marketplace.schemas.enums import PaymentMethod, UserRole
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.locations import LocationUpdateIn
from marketplace.schemas.orders import Address, OrderCreate
from marketplace.services.locations import LocationService, partner_score

ORIGIN = (12.9716, 77.5946)
# along a meridian one degree of latitude is ~111.19 km
KM = 1 / 111.19


def _north(km, lat=ORIGIN[0], lng=ORIGIN[1]):
    return Coordinates(latitude=lat + km * KM, longitude=lng)


def _update(coords, **extra):
    return LocationUpdateIn(coordinates=coords, **extra)


@pytest.fixture
def locations(db, accounts, clock):
    return LocationService(
        FakeLocationRepository(db),
        accounts,
        orders=OrderRepository(db),
        clock=clock,
        min_interval_seconds=5,
        max_speed_kmh=120,
        active_window_minutes=15,
    )


async def test_nearby_returns_only_eligible_partners_nearest_first(locations, make_user, make_partner, accounts):
    near = await make_partner(first_name="Asha")
    far = await make_partner(first_name="Binu")
    offline = await make_partner()
    await accounts.set_online(offline.id, False)
    unverified = await make_user(UserRole.PARTNER)
    await accounts.set_online(unverified.id, True)
    distant = await make_partner()
    customer = await make_user()

    await locations.record_location(near.id, _update(_north(2)))
    await locations.record_location(far.id, _update(_north(8)))
    await locations.record_location(offline.id, _update(_north(1)))
    await locations.record_location(unverified.id, _update(_north(1)))
    await locations.record_location(distant.id, _update(_north(30)))
    await locations.record_location(customer.id, _update(_north(0.5)))

    found = await locations.find_nearby_partners(*ORIGIN, radius_km=10)
    assert [p.user_id for p in found] == [near.id, far.id]
    assert found[0].distance_km == pytest.approx(2, abs=0.01)
    assert found[0].name == "Asha Test"


async def test_stale_samples_are_ignored(locations, make_partner, clock):
    partner = await make_partner()
    await locations.record_location(partner.id, _update(_north(1)))
    clock.advance(minutes=16)
    assert await locations.find_nearby_partners(*ORIGIN, radius_km=10) == []


async def test_latest_sample_wins_for_each_partner(locations, make_partner, clock):
    partner = await make_partner()
    await locations.record_location(partner.id, _update(_north(6)))
    clock.advance(minutes=5)
    await locations.record_location(partner.id, _update(_north(3)))
    found = await locations.find_nearby_partners(*ORIGIN, radius_km=10)
    assert len(found) == 1
    assert found[0].distance_km == pytest.approx(3, abs=0.01)


async def test_optimal_partner_prefers_short_total_trip(locations, make_partner):
    near = await make_partner()
    far = await make_partner()
    await locations.record_location(near.id, _update(_north(2)))
    await locations.record_location(far.id, _update(_north(8)))

    south = _north(-5)
    best = await locations.find_optimal_partner(*ORIGIN, south.latitude, south.longitude, radius_km=10)
    assert best.user_id == near.id
    assert best.score == pytest.approx(partner_score(2, 7, 0.0), abs=0.01)


async def test_optimal_partner_rating_breaks_equal_trips(locations, make_partner, accounts):
    near = await make_partner()
    far = await make_partner()
    await accounts.set_fields(far.id, {"partner_info.rating": 5.0})
    await locations.record_location(near.id, _update(_north(2)))
    await locations.record_location(far.id, _update(_north(8)))

    # both legs add up to 10 km, so the 5-star partner wins
    dest = _north(10)
    best = await locations.find_optimal_partner(*ORIGIN, dest.latitude, dest.longitude, radius_km=10)
    assert best.user_id == far.id


async def test_optimal_partner_none_when_nobody_nearby(locations):
    assert await locations.find_optimal_partner(*ORIGIN, 13.0, 77.6, radius_km=5) is None


@pytest.mark.parametrize(
    "lat,lng,radius",
    [(ORIGIN[0], ORIGIN[1], 0), (ORIGIN[0], ORIGIN[1], 150), (95.0, 77.0, 10), (12.0, 181.0, 10)],
)
async def test_nearby_rejects_bad_parameters(locations, lat, lng, radius):
    with pytest.raises(InvalidParameter):
        await locations.find_nearby_partners(lat, lng, radius_km=radius)


async def test_update_plausibility(locations, make_partner, clock):
    partner = await make_partner()
    start = _north(0)
    await locations.record_location(partner.id, _update(start))

    clock.advance(seconds=3)
    check = await locations.validate_location_update(partner.id, start)
    assert not check.is_valid
    assert "apart" in check.reason

    # 1 km in 10 s is 360 km/h
    clock.advance(seconds=7)
    with pytest.raises(ValidationError):
        await locations.record_location(partner.id, _update(_north(1)))

    # 0.5 km in a minute is 30 km/h
    clock.advance(seconds=50)
    sample = await locations.record_location(partner.id, _update(_north(0.5)))
    assert sample.coordinates.latitude == pytest.approx(_north(0.5).latitude)


async def test_first_update_is_always_valid(locations):
    check = await locations.validate_location_update(ObjectId(), _north(0))
    assert check.is_valid


async def test_partner_update_touches_profile(locations, make_partner, accounts, clock):
    partner = await make_partner()
    await locations.record_location(partner.id, _update(_north(1), is_online=False, battery_level=40))
    refreshed = await accounts.find_by_id(partner.id)
    assert refreshed.partner_info.is_online is False
    assert refreshed.partner_info.last_location_at is not None


async def test_latest_and_history(locations, make_partner, clock):
    partner = await make_partner()
    with pytest.raises(UserNotFound):
        await locations.latest_location(partner.id)

    for km in (1, 1.2, 1.4):
        await locations.record_location(partner.id, _update(_north(km)))
        clock.advance(minutes=1)

    latest = await locations.latest_location(partner.id)
    assert latest.coordinates.latitude == pytest.approx(_north(1.4).latitude)
    history = await locations.location_history(partner.id, limit=2)
    assert [h.coordinates.latitude for h in history] == [
        pytest.approx(_north(1.4).latitude),
        pytest.approx(_north(1.2).latitude),
    ]


async def test_track_order_for_parties_only(locations, order_service, make_user, make_partner, clock):
    customer = await make_user()
    partner = await make_partner()
    stranger = await make_user()
    order = await order_service.create_order(
        customer.id,
        OrderCreate(
            origin=Address(coordinates=_north(0)),
            destination=Address(coordinates=_north(5)),
            payment_method=PaymentMethod.CASH,
        ),
    )
    await order_service.assign_partner(order.id, partner.id)
    await locations.record_location(partner.id, _update(_north(1), order_id=order.id))

    tracking = await locations.track_order(order.id, viewer={"user_id": str(customer.id), "role": "customer"})
    assert tracking.partner_location is not None
    assert len(tracking.history) == 1

    with pytest.raises(UnauthorizedError):
        await locations.track_order(order.id, viewer={"user_id": str(stranger.id), "role": "customer"})


async def test_cleanup_keeps_a_minimum_window(locations):
    with pytest.raises(InvalidParameter):
        await locations.cleanup_old_locations(days_old=3)


async def test_online_status_for_unknown_partner(locations):
    with pytest.raises(UserNotFound):
        await locations.set_online_status(ObjectId(), True)


async def test_fast_jump_two_seconds_later_is_rejected_for_speed(db, accounts, clock, make_partner):
    svc = LocationService(FakeLocationRepository(db), accounts, clock=clock, min_interval_seconds=1)
    partner = await make_partner()
    await svc.record_location(partner.id, _update(_north(0)))
    clock.advance(seconds=2)
    check = await svc.validate_location_update(partner.id, _north(1))
    assert not check.is_valid
    assert "km/h" in check.reason


def test_nearby_pipeline_shape():
    since = datetime(2026, 10, 17, 8, 45, tzinfo=timezone.utc)
    pipeline = nearby_pipeline(ORIGIN[0], ORIGIN[1], 7.5, since, limit=20)
    stages = [next(iter(stage)) for stage in pipeline]

    assert stages[0] == "$geoNear"
    geo = pipeline[0]["$geoNear"]
    assert geo["near"] == {"type": "Point", "coordinates": [ORIGIN[1], ORIGIN[0]]}
    assert geo["spherical"] is True
    assert geo["maxDistance"] == 7500.0
    assert geo["query"] == {"createdAt": {"$gte": since}}

    # one sample per partner, picked before the eligibility join
    assert stages.index("$group") < stages.index("$lookup") < stages.index("$match")
    assert pipeline[stages.index("$group")]["$group"]["_id"] == "$user_id"
    assert pipeline[stages.index("$match")]["$match"] == {
        "user.role": UserRole.PARTNER.value,
        "user.is_active": True,
        "user.partner_info.is_online": True,
        "user.partner_info.documents_verified": True,
    }
    assert pipeline[-1] == {"$limit": 20}
