from datetime import datetime, timedelta, timezone

import pytest

from marketplace.core.errors import ValidationError
from marketplace.schemas.enums import ServiceType
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.orders import Address, OrderItem
from marketplace.services.pricing import (
    PricingConfig,
    compute_pricing,
    estimate_completion_time,
    haversine_km,
)

HERE = Address(city="Bengaluru", coordinates=Coordinates(latitude=12.9716, longitude=77.5946))


def _items(*weights):
    return [OrderItem(name=f"box-{i}", weight=w) for i, w in enumerate(weights)]


def test_haversine_one_degree_of_longitude_on_equator():
    assert haversine_km(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)
    assert haversine_km(12.0, 77.0, 12.0, 77.0) == 0


def test_same_point_standard_breakdown():
    p = compute_pricing(_items(2, 3), HERE, HERE, ServiceType.STANDARD)
    # 50 base + 0 km + 5 kg * 5 + 25 standard surcharge
    assert p.distance_km == 0
    assert p.weight_charge == 25.0
    assert p.service_charge == 25.0
    assert p.subtotal == 100.0
    assert p.tax_amount == 18.0
    assert p.total_amount == 118.0


def test_discount_is_taken_off_after_tax():
    p = compute_pricing(_items(2, 3), HERE, HERE, ServiceType.STANDARD, discount=18)
    assert p.discount == 18.0
    assert p.total_amount == 100.0


def test_weight_ignores_quantity():
    item = OrderItem(name="crate", quantity=3, weight=2)
    p = compute_pricing([item], HERE, HERE, ServiceType.STANDARD)
    assert p.weight_charge == 10.0


def test_distance_charge_uses_great_circle_distance():
    there = Address(coordinates=Coordinates(latitude=0, longitude=1))
    origin = Address(coordinates=Coordinates(latitude=0, longitude=0))
    p = compute_pricing([], origin, there, ServiceType.STANDARD)
    assert p.distance_km == pytest.approx(111.19, abs=0.01)
    assert p.distance_charge == pytest.approx(1111.95, abs=0.1)


def test_surcharges_are_ordered_by_service_type():
    totals = [
        compute_pricing([], HERE, HERE, s).total_amount
        for s in (ServiceType.STANDARD, ServiceType.SCHEDULED, ServiceType.EXPRESS, ServiceType.SAME_DAY)
    ]
    assert totals == sorted(totals)
    assert len(set(totals)) == 4


def test_accepts_hyphenated_service_type():
    assert ServiceType("same-day") is ServiceType.SAME_DAY


@pytest.mark.parametrize(
    "kwargs",
    [
        {"origin": Address(city="nowhere")},
        {"destination": Address(city="nowhere")},
        {"items": _items(-1)},
        {"discount": -5},
        {"discount": 10_000},
    ],
)
def test_rejects_bad_input(kwargs):
    args = {"items": _items(1), "origin": HERE, "destination": HERE, "service_type": ServiceType.STANDARD}
    args.update(kwargs)
    with pytest.raises(ValidationError):
        compute_pricing(**args)


def test_config_rejects_decreasing_surcharges():
    with pytest.raises(ValueError):
        PricingConfig(
            surcharges={
                ServiceType.STANDARD: 100.0,
                ServiceType.SCHEDULED: 50.0,
                ServiceType.EXPRESS: 150.0,
                ServiceType.SAME_DAY: 200.0,
            }
        )


def test_custom_config_is_used():
    cfg = PricingConfig(base_fee=0, per_km=0, per_kg=1, tax_rate=0)
    p = compute_pricing(_items(4), HERE, HERE, ServiceType.STANDARD, config=cfg)
    assert p.total_amount == 29.0


def test_completion_estimates():
    now = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)
    assert estimate_completion_time(ServiceType.EXPRESS, 10, now) == now + timedelta(hours=5)
    assert estimate_completion_time(ServiceType.EXPRESS, 1, now) == now + timedelta(hours=2)
    assert estimate_completion_time(ServiceType.SAME_DAY, 50, now) == now + timedelta(hours=8)
    assert estimate_completion_time(ServiceType.SCHEDULED, 5, now) == now + timedelta(hours=24)
    assert estimate_completion_time(ServiceType.STANDARD, 5, now) == now + timedelta(hours=4)
