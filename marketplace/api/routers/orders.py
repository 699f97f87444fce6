"""
Routes for Orders.
- Thin HTTP layer: parses/validates inputs, applies RBAC, and delegates to OrderService.
"""

from __future__ import annotations
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_current_user, get_order_service, require_role
from marketplace.schemas.enums import OrderStatus, UserRole
from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.orders import (
    AssignPartnerIn,
    CancelIn,
    OrderCreate,
    OrderOut,
    OrderStatsOut,
    PaymentStatusIn,
    QuoteIn,
    QuoteOut,
    RateIn,
    ResendOtpIn,
    StatusUpdateIn,
    VerifyOtpIn,
)
from marketplace.schemas.otp import OtpOut
from marketplace.services.orders import OrderService

router = APIRouter()  # mounted at /orders


# --------------------------
# Pricing
# --------------------------
@router.post("/quote", response_model=QuoteOut)
async def quote(
    payload: QuoteIn,
    _: Dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    """Price an order without placing it."""
    return svc.quote(payload)


# --------------------------
# CUSTOMER: place and list
# --------------------------
@router.post("/", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    current: Dict = Depends(require_role(UserRole.CUSTOMER)),
    svc: OrderService = Depends(get_order_service),
):
    """
    Place an order for the current customer.

    Pickup and delivery codes are emailed to the customer; they are not part of
    the response.
    """
    return await svc.create_order(current["user_id"], payload)


@router.get("/my", response_model=List[OrderOut])
async def list_my_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    current: Dict = Depends(require_role(UserRole.CUSTOMER)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.list_customer_orders(current["user_id"], skip=skip, limit=limit, status=status_filter)


# --------------------------
# PARTNER: assigned and available
# --------------------------
@router.get("/assigned", response_model=List[OrderOut])
async def list_assigned_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.list_partner_orders(current["user_id"], skip=skip, limit=limit, status=status_filter)


@router.get("/available", response_model=List[OrderOut])
async def list_available_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: Dict = Depends(require_role(UserRole.PARTNER, UserRole.ADMIN)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.list_available_orders(skip=skip, limit=limit)


@router.get("/", response_model=List[OrderOut])
async def list_orders_by_status(
    status_filter: OrderStatus = Query(..., alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: Dict = Depends(require_role(UserRole.ADMIN)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.list_by_status(status_filter, skip=skip, limit=limit)

@router.get("/stats", response_model=OrderStatsOut)
async def order_stats(
    partner_id: Optional[PyObjectId] = Query(None, description="Admin only: restrict to one partner"),
    current: Dict = Depends(require_role(UserRole.PARTNER, UserRole.ADMIN)),
    svc: OrderService = Depends(get_order_service),
):
    """Partners always get their own numbers; admins may filter or see everything."""
    if current["role"] == UserRole.PARTNER.value:
        partner_id = current["user_id"]
    return await svc.order_stats(partner_id)


@router.get("/number/{order_number}", response_model=OrderOut)
async def get_order_by_number(
    order_number: str,
    current: Dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.get_order_by_number(order_number, viewer=current)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: PyObjectId,
    current: Dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.get_order(order_id, viewer=current)


# --------------------------
# Lifecycle
# --------------------------
@router.post("/{order_id}/assign", response_model=OrderOut)
async def assign_partner(
    order_id: PyObjectId,
    payload: AssignPartnerIn,
    current: Dict = Depends(require_role(UserRole.ADMIN)),
    svc: OrderService = Depends(get_order_service),
):
    """Admin: assign a partner to a pending order (confirms it)."""
    return await svc.assign_partner(order_id, payload.partner_id, actor_id=current["user_id"])


@router.post("/{order_id}/accept", response_model=OrderOut)
async def accept_order(
    order_id: PyObjectId,
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: OrderService = Depends(get_order_service),
):
    """Partner: take an available order."""
    return await svc.accept_order(order_id, current["user_id"])


@router.put("/{order_id}/status", response_model=OrderOut)
async def update_status(
    order_id: PyObjectId,
    payload: StatusUpdateIn,
    current: Dict = Depends(require_role(UserRole.PARTNER, UserRole.ADMIN)),
    svc: OrderService = Depends(get_order_service),
):
    """
    Move an order along its lifecycle (e.g. picked_up -> in_transit).

    Pickup/check-in and delivery/completion go through the verify endpoints;
    cancellation goes through /cancel.
    """
    return await svc.update_status(order_id, payload.status, current, notes=payload.notes)


@router.post("/{order_id}/verify-pickup", response_model=OrderOut)
async def verify_pickup(
    order_id: PyObjectId,
    payload: VerifyOtpIn,
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.verify_pickup_otp(order_id, payload.code, current["user_id"])


@router.post("/{order_id}/verify-delivery", response_model=OrderOut)
async def verify_delivery(
    order_id: PyObjectId,
    payload: VerifyOtpIn,
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.verify_delivery_otp(order_id, payload.code, current["user_id"])


@router.post("/{order_id}/resend-otp", response_model=OtpOut, status_code=status.HTTP_201_CREATED)
async def resend_otp(
    order_id: PyObjectId,
    payload: ResendOtpIn,
    current: Dict = Depends(require_role(UserRole.CUSTOMER)),
    svc: OrderService = Depends(get_order_service),
):
    """Customer: issue a fresh pickup or delivery code (resets the attempt budget)."""
    return await svc.resend_order_otp(order_id, payload.purpose, current["user_id"])


@router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel_order(
    order_id: PyObjectId,
    payload: CancelIn,
    current: Dict = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    await svc.get_order(order_id, viewer=current)
    return await svc.cancel_order(order_id, payload.reason, current["user_id"])


@router.post("/{order_id}/rate", response_model=OrderOut)
async def rate_order(
    order_id: PyObjectId,
    payload: RateIn,
    current: Dict = Depends(require_role(UserRole.CUSTOMER, UserRole.PARTNER)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.rate_order(
        order_id, payload.rating, payload.comment, payload.rating_type, rater_id=current["user_id"]
    )


# --------------------------
# ADMIN: payment status
# --------------------------
@router.put("/{order_id}/payment-status", response_model=OrderOut)
async def update_payment_status(
    order_id: PyObjectId,
    payload: PaymentStatusIn,
    _: Dict = Depends(require_role(UserRole.ADMIN)),
    svc: OrderService = Depends(get_order_service),
):
    return await svc.update_payment_status(order_id, payload.payment_status)
