"""
Closed vocabularies shared by orders, OTPs, locations and accounts.

Orders exist in two service domains: parcel `delivery` and stay `booking`.
They share one state machine; the booking vocabulary is an alias layer that is
accepted on input (`OrderStatus("checked_in")` is `OrderStatus.PICKED_UP`) and
rendered on output through `label_for`.
"""

from __future__ import annotations
from enum import Enum
from typing import Dict


class ServiceDomain(str, Enum):
    DELIVERY = "delivery"
    BOOKING = "booking"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    PARTNER = "partner"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "_")
            for member in cls:
                if member.value == key:
                    return member
            alias = _STATUS_FROM_BOOKING.get(key)
            if alias is not None:
                return alias
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def label_for(self, domain: ServiceDomain) -> str:
        if domain == ServiceDomain.BOOKING:
            return _STATUS_TO_BOOKING.get(self, self.value)
        return self.value


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED})

_STATUS_TO_BOOKING: Dict[OrderStatus, str] = {
    OrderStatus.PICKED_UP: "checked_in",
    OrderStatus.OUT_FOR_DELIVERY: "out_for_service",
    OrderStatus.DELIVERED: "completed",
}
_STATUS_FROM_BOOKING: Dict[str, OrderStatus] = {v: k for k, v in _STATUS_TO_BOOKING.items()}


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    DIGITAL_WALLET = "digital_wallet"


class ServiceType(str, Enum):
    STANDARD = "standard"
    SCHEDULED = "scheduled"
    EXPRESS = "express"
    SAME_DAY = "same_day"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "_")
            for member in cls:
                if member.value == key:
                    return member
        return None


class OtpPurpose(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PHONE_VERIFICATION = "phone_verification"
    PICKUP = "pickup"
    DELIVERY = "delivery"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return _PURPOSE_FROM_BOOKING.get(value.strip().lower())
        return None

    def label_for(self, domain: ServiceDomain) -> str:
        if domain == ServiceDomain.BOOKING:
            return _PURPOSE_TO_BOOKING.get(self, self.value)
        return self.value


_PURPOSE_TO_BOOKING: Dict[OtpPurpose, str] = {
    OtpPurpose.PICKUP: "checkin",
    OtpPurpose.DELIVERY: "completion",
}
_PURPOSE_FROM_BOOKING: Dict[str, OtpPurpose] = {v: k for k, v in _PURPOSE_TO_BOOKING.items()}


class OtpStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"
    FAILED = "failed"


class RatingType(str, Enum):
    # who gives the rating
    CUSTOMER = "customer"
    PARTNER = "partner"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NetworkType(str, Enum):
    WIFI = "wifi"
    G4 = "4g"
    G3 = "3g"
    G2 = "2g"
    UNKNOWN = "unknown"
