# marketplace/schemas/orders.py
from typing import Optional, Annotated, List
from datetime import datetime

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.geo import Coordinates
from marketplace.schemas.enums import (
    OrderStatus,
    OtpPurpose,
    PaymentMethod,
    PaymentStatus,
    RatingType,
    ServiceDomain,
    ServiceType,
)

Money = Annotated[float, Field(ge=0, description="Non-negative amount")]
Notes = Annotated[str, Field(max_length=500)]
OtpCode = Annotated[str, Field(pattern=r"^\d{6}$", description="6-digit code")]


class Address(BaseModel):
    line1: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    # optional here so a missing point surfaces as a pricing validation error
    coordinates: Optional[Coordinates] = None

    model_config = {"extra": "ignore"}


class OrderItem(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    quantity: int = Field(default=1, ge=1)
    # negative weights are rejected by the pricing calculator, not silently here
    weight: float = Field(default=0.0, description="Kilograms")

    model_config = {"extra": "ignore"}


class PricingBreakdown(BaseModel):
    distance_km: float
    base_price: float
    distance_charge: float
    weight_charge: float
    service_charge: float
    subtotal: float
    tax_amount: float
    discount: float
    total_amount: float


class TimelineEntry(BaseModel):
    status: OrderStatus
    timestamp: datetime
    notes: Optional[str] = None
    actor_id: Optional[str] = None


class OrderRating(BaseModel):
    customer_rating: Optional[int] = None
    customer_comment: Optional[str] = None
    partner_rating: Optional[int] = None
    partner_comment: Optional[str] = None


class Cancellation(BaseModel):
    reason: str
    cancelled_by: str
    cancelled_at: datetime


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class QuoteIn(BaseModel):
    items: List[OrderItem] = Field(default_factory=list)
    origin: Address
    destination: Address
    service_type: ServiceType = ServiceType.STANDARD
    discount: Money = 0.0

    model_config = {"extra": "ignore"}


class OrderCreate(QuoteIn):
    domain: ServiceDomain = ServiceDomain.DELIVERY
    payment_method: PaymentMethod
    scheduled_pickup_at: Optional[datetime] = None
    scheduled_delivery_at: Optional[datetime] = None
    notes: Optional[Notes] = None

    @model_validator(mode="after")
    def _check_schedule(self):
        if self.scheduled_pickup_at and self.scheduled_delivery_at:
            if self.scheduled_delivery_at <= self.scheduled_pickup_at:
                raise ValueError("scheduled_delivery_at must be after scheduled_pickup_at")
        return self


class AssignPartnerIn(BaseModel):
    partner_id: PyObjectId


class StatusUpdateIn(BaseModel):
    status: OrderStatus
    notes: Optional[Notes] = None


class VerifyOtpIn(BaseModel):
    code: OtpCode

    @field_validator("code", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ResendOtpIn(BaseModel):
    purpose: OtpPurpose

    @field_validator("purpose")
    @classmethod
    def _order_purpose(cls, v: OtpPurpose) -> OtpPurpose:
        if v not in (OtpPurpose.PICKUP, OtpPurpose.DELIVERY):
            raise ValueError("purpose must be pickup or delivery")
        return v


class CancelIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class RateIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=1000)
    rating_type: RatingType


class PaymentStatusIn(BaseModel):
    payment_status: PaymentStatus


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OrderOut(BaseModel):
    id: PyObjectId = Field(alias="_id")
    order_number: str
    domain: ServiceDomain = ServiceDomain.DELIVERY
    customer_id: PyObjectId
    partner_id: Optional[PyObjectId] = None
    items: List[OrderItem] = Field(default_factory=list)
    origin: Address
    destination: Address
    service_type: ServiceType
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    refund_pending: bool = False
    status: OrderStatus
    distance_km: float
    pricing: PricingBreakdown
    estimated_completion_at: Optional[datetime] = None
    scheduled_pickup_at: Optional[datetime] = None
    scheduled_delivery_at: Optional[datetime] = None
    notes: Optional[str] = None
    timeline: List[TimelineEntry] = Field(default_factory=list)
    rating: OrderRating = Field(default_factory=OrderRating)
    cancellation: Optional[Cancellation] = None
    completed_at: Optional[datetime] = None
    createdAt: datetime
    updatedAt: datetime

    model_config = {
        "populate_by_name": True,
        "from_attributes": False,
        "extra": "ignore",
    }

    @computed_field
    @property
    def status_label(self) -> str:
        return self.status.label_for(self.domain)


class OrderStatusCount(BaseModel):
    status: OrderStatus
    count: int
    amount: float


class OrderStatsOut(BaseModel):
    total_orders: int = 0
    total_revenue: float = 0.0
    status_breakdown: List[OrderStatusCount] = Field(default_factory=list)


class QuoteOut(BaseModel):
    pricing: PricingBreakdown
    estimated_completion_at: datetime
