"""
Pricing for orders and quotes.

- Pure functions: same inputs always give the same breakdown.
- Rates come from settings through `PricingConfig`.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from marketplace.core.config import settings
from marketplace.core.errors import ValidationError
from marketplace.schemas.enums import ServiceType
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.orders import Address, OrderItem, PricingBreakdown

EARTH_RADIUS_KM = 6371.0

_SURCHARGE_ORDER = (
    ServiceType.STANDARD,
    ServiceType.SCHEDULED,
    ServiceType.EXPRESS,
    ServiceType.SAME_DAY,
)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def distance_between(a: Coordinates, b: Coordinates) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


@dataclass(frozen=True)
class PricingConfig:
    base_fee: float = 50.0
    per_km: float = 10.0
    per_kg: float = 5.0
    tax_rate: float = 0.18
    surcharges: Dict[ServiceType, float] = field(
        default_factory=lambda: {
            ServiceType.STANDARD: 25.0,
            ServiceType.SCHEDULED: 50.0,
            ServiceType.EXPRESS: 100.0,
            ServiceType.SAME_DAY: 200.0,
        }
    )

    def __post_init__(self):
        missing = [s.value for s in _SURCHARGE_ORDER if s not in self.surcharges]
        if missing:
            raise ValueError(f"missing surcharge for: {', '.join(missing)}")
        values = [self.surcharges[s] for s in _SURCHARGE_ORDER]
        if any(b < a for a, b in zip(values, values[1:])):
            raise ValueError("surcharges must satisfy standard <= scheduled <= express <= same_day")
        if min(self.base_fee, self.per_km, self.per_kg, self.tax_rate) < 0:
            raise ValueError("pricing rates must be non-negative")

    @classmethod
    def from_settings(cls) -> "PricingConfig":
        return cls(
            base_fee=settings.PRICING_BASE_FEE,
            per_km=settings.PRICING_PER_KM,
            per_kg=settings.PRICING_PER_KG,
            tax_rate=settings.PRICING_TAX_RATE,
            surcharges={
                ServiceType.STANDARD: settings.PRICING_SURCHARGE_STANDARD,
                ServiceType.SCHEDULED: settings.PRICING_SURCHARGE_SCHEDULED,
                ServiceType.EXPRESS: settings.PRICING_SURCHARGE_EXPRESS,
                ServiceType.SAME_DAY: settings.PRICING_SURCHARGE_SAME_DAY,
            },
        )

    def surcharge_for(self, service_type: ServiceType) -> float:
        return self.surcharges[ServiceType(service_type)]


DEFAULT_PRICING = PricingConfig()


def _require_point(address: Address, label: str) -> Coordinates:
    if address is None or address.coordinates is None:
        raise ValidationError(f"{label} coordinates are required")
    return address.coordinates


def compute_pricing(
    items: Iterable[OrderItem],
    origin: Address,
    destination: Address,
    service_type: ServiceType,
    discount: float = 0.0,
    config: Optional[PricingConfig] = None,
) -> PricingBreakdown:
    """
    Price an order.

    subtotal = base + distance_km * per_km + total_weight * per_kg + surcharge
    total    = subtotal + subtotal * tax_rate - discount

    Raises:
        ValidationError: missing coordinates, negative weight, or a discount that is
            negative or larger than subtotal + tax.
    """
    cfg = config or DEFAULT_PRICING
    a = _require_point(origin, "origin")
    b = _require_point(destination, "destination")

    total_weight = 0.0
    for item in items or []:
        if item.weight < 0:
            raise ValidationError(f"item '{item.name}' has a negative weight")
        total_weight += item.weight

    distance_km = distance_between(a, b)
    distance_charge = distance_km * cfg.per_km
    weight_charge = total_weight * cfg.per_kg
    service_charge = cfg.surcharge_for(service_type)
    subtotal = cfg.base_fee + distance_charge + weight_charge + service_charge
    tax_amount = subtotal * cfg.tax_rate

    discount = float(discount or 0.0)
    if discount < 0:
        raise ValidationError("discount cannot be negative")
    if discount > subtotal + tax_amount:
        raise ValidationError("discount exceeds order value")

    return PricingBreakdown(
        distance_km=round(distance_km, 2),
        base_price=round(cfg.base_fee, 2),
        distance_charge=round(distance_charge, 2),
        weight_charge=round(weight_charge, 2),
        service_charge=round(service_charge, 2),
        subtotal=round(subtotal, 2),
        tax_amount=round(tax_amount, 2),
        discount=round(discount, 2),
        total_amount=round(subtotal + tax_amount - discount, 2),
    )


def estimate_completion_time(service_type: ServiceType, distance_km: float, now: datetime) -> datetime:
    service_type = ServiceType(service_type)
    if service_type == ServiceType.EXPRESS:
        hours = max(2.0, distance_km * 0.5)
    elif service_type == ServiceType.SAME_DAY:
        hours = 8.0
    elif service_type == ServiceType.SCHEDULED:
        hours = 24.0
    else:
        hours = 4.0
    return now + timedelta(hours=hours)
