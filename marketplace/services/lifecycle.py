"""Order status transition table shared by delivery orders and stay bookings."""

from __future__ import annotations
from typing import Dict, FrozenSet

from marketplace.schemas.enums import OrderStatus

S = OrderStatus

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PICKED_UP, S.CANCELLED}),
    S.PICKED_UP: frozenset({S.IN_TRANSIT, S.RETURNED}),
    S.IN_TRANSIT: frozenset({S.OUT_FOR_DELIVERY, S.RETURNED}),
    S.OUT_FOR_DELIVERY: frozenset({S.DELIVERED, S.RETURNED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.RETURNED: frozenset(),
}


def allowed_targets(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return TRANSITIONS.get(OrderStatus(current), frozenset())


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in allowed_targets(current)
