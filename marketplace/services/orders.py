"""
Service layer for Orders.
- Owns the lifecycle rules: transition table, partner assignment, OTP-gated
  pickup/delivery, cancellation and ratings.
- Every state change is one conditional update on the status that was read;
  notifications go out only after the write.
"""

from __future__ import annotations
import logging
import secrets
import string
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from marketplace.core.errors import (
    AlreadyAssigned,
    AlreadyRated,
    ConflictError,
    CustomerNotFound,
    InvalidStateError,
    InvalidTransition,
    NotDeliverable,
    NotReady,
    OrderNotFound,
    PartnerIneligible,
    RateLimited,
    UnauthorizedError,
    ValidationError,
)
from marketplace.core.redis import OtpCooldown
from marketplace.crud.orders import OrderRepository
from marketplace.crud.users import UserRepository
from marketplace.schemas.enums import (
    OrderStatus,
    OtpPurpose,
    PaymentStatus,
    RatingType,
    ServiceDomain,
    UserRole,
)
from marketplace.schemas.orders import (
    OrderCreate,
    OrderOut,
    OrderStatsOut,
    QuoteIn,
    QuoteOut,
)
from marketplace.schemas.otp import OtpOut
from marketplace.services.lifecycle import can_transition
from marketplace.services.notifications import Notifier
from marketplace.services.otp import OtpManager
from marketplace.services.pricing import PricingConfig, compute_pricing, estimate_completion_time
from marketplace.utils.fastapi_mail import generate_order_otps_email_html, generate_otp_email_html
from marketplace.utils.mongo import utcnow

log = logging.getLogger(__name__)

_NUMBER_PREFIX = {ServiceDomain.DELIVERY: "ORD", ServiceDomain.BOOKING: "BKG"}
_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
_NUMBER_RETRIES = 5

# reached only through the OTP endpoints or cancel_order
_GUARDED_TARGETS = frozenset({OrderStatus.PICKED_UP, OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def _timeline_entry(status: OrderStatus, at: datetime, notes: Optional[str], actor_id: Any) -> Dict[str, Any]:
    return {
        "status": OrderStatus(status).value,
        "timestamp": at,
        "notes": notes,
        "actor_id": str(actor_id) if actor_id is not None else None,
    }


class OrderService:
    def __init__(
        self,
        orders: OrderRepository,
        otp_manager: OtpManager,
        accounts: UserRepository,
        notifier: Notifier,
        pricing_config: Optional[PricingConfig] = None,
        cooldown: Optional[OtpCooldown] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orders = orders
        self.otp = otp_manager
        self.accounts = accounts
        self.notifier = notifier
        self.pricing_config = pricing_config or PricingConfig.from_settings()
        self.cooldown = cooldown
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load(self, order_id: Any) -> OrderOut:
        order = await self.orders.get(order_id)
        if not order:
            raise OrderNotFound()
        return order

    def ensure_party(self, order: OrderOut, user: Dict[str, Any]) -> None:
        """Customers see their own orders, partners the ones assigned to them, admins all."""
        role = user.get("role")
        uid = str(user.get("user_id"))
        if role == UserRole.ADMIN.value:
            return
        if role == UserRole.CUSTOMER.value and str(order.customer_id) == uid:
            return
        if role == UserRole.PARTNER.value and order.partner_id is not None and str(order.partner_id) == uid:
            return
        raise UnauthorizedError("You are not a party to this order")

    async def get_order(self, order_id: Any, viewer: Optional[Dict[str, Any]] = None) -> OrderOut:
        order = await self._load(order_id)
        if viewer is not None:
            self.ensure_party(order, viewer)
        return order

    async def get_order_by_number(self, order_number: str, viewer: Optional[Dict[str, Any]] = None) -> OrderOut:
        order = await self.orders.get_by_number(order_number)
        if not order:
            raise OrderNotFound()
        if viewer is not None:
            self.ensure_party(order, viewer)
        return order

    async def list_customer_orders(
        self, customer_id: Any, skip: int = 0, limit: int = 50, status: Optional[OrderStatus] = None
    ) -> List[OrderOut]:
        return await self.orders.list_all(skip=skip, limit=limit, query={"customer_id": customer_id, "status": status})

    async def list_partner_orders(
        self, partner_id: Any, skip: int = 0, limit: int = 50, status: Optional[OrderStatus] = None
    ) -> List[OrderOut]:
        return await self.orders.list_all(skip=skip, limit=limit, query={"partner_id": partner_id, "status": status})

    async def list_by_status(self, status: OrderStatus, skip: int = 0, limit: int = 50) -> List[OrderOut]:
        return await self.orders.list_all(skip=skip, limit=limit, query={"status": OrderStatus(status)})

    async def list_available_orders(self, skip: int = 0, limit: int = 50) -> List[OrderOut]:
        """Pending orders nobody has taken yet."""
        return await self.orders.list_all(
            skip=skip,
            limit=limit,
            query={"status": OrderStatus.PENDING, "partner_id": {"$in": [None]}},
        )

    async def order_stats(self, partner_id: Any = None) -> OrderStatsOut:
        breakdown = await self.orders.stats(partner_id)
        return OrderStatsOut(
            total_orders=sum(row.count for row in breakdown),
            total_revenue=round(sum(row.amount for row in breakdown), 2),
            status_breakdown=breakdown,
        )

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def quote(self, payload: QuoteIn) -> QuoteOut:
        pricing = compute_pricing(
            payload.items,
            payload.origin,
            payload.destination,
            payload.service_type,
            discount=payload.discount,
            config=self.pricing_config,
        )
        return QuoteOut(
            pricing=pricing,
            estimated_completion_at=estimate_completion_time(payload.service_type, pricing.distance_km, self.clock()),
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _new_order_number(self, domain: ServiceDomain, now: datetime) -> str:
        prefix = _NUMBER_PREFIX[ServiceDomain(domain)]
        for _ in range(_NUMBER_RETRIES):
            suffix = "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(6))
            candidate = f"{prefix}-{now:%Y%m%d}-{suffix}"
            if not await self.orders.number_exists(candidate):
                return candidate
        raise ConflictError("Could not allocate an order number, try again")

    async def create_order(self, customer_id: Any, payload: OrderCreate) -> OrderOut:
        """
        Place an order for an active customer.

        Prices it, persists it as pending with the first timeline entry, issues the
        pickup and delivery codes scoped to the order, then emails the codes.

        Raises:
            CustomerNotFound: unknown or inactive customer.
            ValidationError: pricing rejected the input.
        """
        customer = await self.accounts.find_by_id(customer_id)
        if not customer or not customer.is_active:
            raise CustomerNotFound()

        pricing = compute_pricing(
            payload.items,
            payload.origin,
            payload.destination,
            payload.service_type,
            discount=payload.discount,
            config=self.pricing_config,
        )
        now = self.clock()
        order_number = await self._new_order_number(payload.domain, now)

        doc = {
            "order_number": order_number,
            "domain": payload.domain.value,
            "customer_id": customer.id,
            "partner_id": None,
            "items": [item.model_dump(mode="python") for item in payload.items],
            "origin": payload.origin.model_dump(mode="python"),
            "destination": payload.destination.model_dump(mode="python"),
            "service_type": payload.service_type.value,
            "payment_method": payload.payment_method.value,
            "payment_status": PaymentStatus.PENDING.value,
            "refund_pending": False,
            "status": OrderStatus.PENDING.value,
            "distance_km": pricing.distance_km,
            "pricing": pricing.model_dump(mode="python"),
            "estimated_completion_at": estimate_completion_time(payload.service_type, pricing.distance_km, now),
            "scheduled_pickup_at": payload.scheduled_pickup_at,
            "scheduled_delivery_at": payload.scheduled_delivery_at,
            "notes": payload.notes,
            "timeline": [_timeline_entry(OrderStatus.PENDING, now, "Order placed", customer.id)],
            "rating": {
                "customer_rating": None,
                "customer_comment": None,
                "partner_rating": None,
                "partner_comment": None,
            },
            "cancellation": None,
            "completed_at": None,
        }
        order = await self.orders.insert(doc, now=now)
        log.info("order created id=%s number=%s customer=%s", order.id, order.order_number, customer.id)

        pickup = await self.otp.issue(customer.id, OtpPurpose.PICKUP, order_id=order.id)
        delivery = await self.otp.issue(customer.id, OtpPurpose.DELIVERY, order_id=order.id)
        await self.notifier.send_email(
            customer.email,
            f"Your order {order.order_number}",
            generate_order_otps_email_html(order.order_number, pickup.code, delivery.code, order.domain),
        )
        return order

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def assign_partner(self, order_id: Any, partner_id: Any, actor_id: Any = None) -> OrderOut:
        """
        Attach a partner to a pending order and confirm it.

        Raises:
            OrderNotFound, AlreadyAssigned, InvalidStateError (not pending),
            PartnerIneligible (missing, inactive or not a partner).
        """
        order = await self._load(order_id)
        if order.partner_id is not None:
            raise AlreadyAssigned()
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(f"Order cannot be assigned while {order.status_label}")

        partner = await self.accounts.find_by_id(partner_id)
        if not partner or not partner.is_active or partner.role != UserRole.PARTNER:
            raise PartnerIneligible()

        now = self.clock()
        updated = await self.orders.conditional_update(
            order.id,
            {"status": OrderStatus.PENDING, "partner_id": None},
            {
                "$set": {"partner_id": partner.id, "status": OrderStatus.CONFIRMED.value},
                "$push": {
                    "timeline": _timeline_entry(
                        OrderStatus.CONFIRMED, now, "Partner assigned", actor_id if actor_id is not None else partner.id
                    )
                },
            },
            now=now,
        )
        if updated is None:
            current = await self._load(order.id)
            if current.partner_id is not None:
                raise AlreadyAssigned()
            raise InvalidStateError(f"Order cannot be assigned while {current.status_label}")

        log.info("partner assigned order=%s partner=%s", order.id, partner.id)
        return updated

    async def accept_order(self, order_id: Any, partner_id: Any) -> OrderOut:
        return await self.assign_partner(order_id, partner_id, actor_id=partner_id)

    async def transition(
        self,
        order_id: Any,
        new_status: OrderStatus,
        notes: Optional[str] = None,
        actor_id: Any = None,
    ) -> OrderOut:
        """
        Move an order along the transition table.

        Raises:
            OrderNotFound, InvalidTransition (not in the table, or the order moved
            concurrently).
        """
        new_status = OrderStatus(new_status)
        order = await self._load(order_id)
        if not can_transition(order.status, new_status):
            raise InvalidTransition(
                f"Invalid status transition from {order.status_label} to {new_status.label_for(order.domain)}"
            )

        now = self.clock()
        fields: Dict[str, Any] = {"status": new_status.value}
        if new_status == OrderStatus.DELIVERED:
            fields["completed_at"] = now
        updated = await self.orders.conditional_update(
            order.id,
            {"status": order.status},
            {"$set": fields, "$push": {"timeline": _timeline_entry(new_status, now, notes, actor_id)}},
            now=now,
        )
        if updated is None:
            raise InvalidTransition("Order status changed concurrently, reload and retry")

        log.info("order status changed id=%s %s -> %s", order.id, order.status.value, new_status.value)
        return updated

    async def update_status(
        self,
        order_id: Any,
        new_status: OrderStatus,
        actor: Dict[str, Any],
        notes: Optional[str] = None,
    ) -> OrderOut:
        """Manual status change by the assigned partner or an admin."""
        new_status = OrderStatus(new_status)
        order = await self._load(order_id)
        if actor.get("role") != UserRole.ADMIN.value:
            if order.partner_id is None or str(order.partner_id) != str(actor.get("user_id")):
                raise UnauthorizedError("Order is not assigned to this partner")
        if new_status in _GUARDED_TARGETS:
            raise InvalidTransition(
                f"{new_status.label_for(order.domain)} is reached through its dedicated endpoint"
            )
        return await self.transition(order.id, new_status, notes=notes, actor_id=actor.get("user_id"))

    async def _verify_gate(
        self,
        order_id: Any,
        code: str,
        partner_id: Any,
        expected: OrderStatus,
        purpose: OtpPurpose,
        target: OrderStatus,
    ) -> OrderOut:
        order = await self._load(order_id)
        if order.partner_id is None or str(order.partner_id) != str(partner_id):
            raise UnauthorizedError("Order is not assigned to this partner")
        if order.status != expected:
            raise NotReady(
                f"Order must be {expected.label_for(order.domain)} to verify "
                f"{purpose.label_for(order.domain)}, it is {order.status_label}"
            )
        await self.otp.verify(order.customer_id, purpose, code, order_id=order.id)
        return await self.transition(
            order.id,
            target,
            notes=f"{purpose.label_for(order.domain).capitalize()} verified with OTP",
            actor_id=partner_id,
        )

    async def verify_pickup_otp(self, order_id: Any, code: str, partner_id: Any) -> OrderOut:
        return await self._verify_gate(
            order_id, code, partner_id, OrderStatus.CONFIRMED, OtpPurpose.PICKUP, OrderStatus.PICKED_UP
        )

    async def verify_delivery_otp(self, order_id: Any, code: str, partner_id: Any) -> OrderOut:
        return await self._verify_gate(
            order_id, code, partner_id, OrderStatus.OUT_FOR_DELIVERY, OtpPurpose.DELIVERY, OrderStatus.DELIVERED
        )

    async def resend_order_otp(self, order_id: Any, purpose: OtpPurpose, customer_id: Any) -> OtpOut:
        """
        Issue a fresh pickup or delivery code for the order's customer.

        The new code supersedes the old one and starts with a full attempt budget.
        """
        purpose = OtpPurpose(purpose)
        if purpose not in (OtpPurpose.PICKUP, OtpPurpose.DELIVERY):
            raise ValidationError("purpose must be pickup or delivery")
        order = await self._load(order_id)
        if str(order.customer_id) != str(customer_id):
            raise UnauthorizedError("You are not the customer on this order")
        if order.status.is_terminal:
            raise InvalidStateError(f"Order is {order.status_label}, no codes can be issued")
        if purpose == OtpPurpose.PICKUP and order.status not in (OrderStatus.PENDING, OrderStatus.CONFIRMED):
            raise NotReady(f"{purpose.label_for(order.domain).capitalize()} has already happened")

        if self.cooldown is not None:
            scope = f"{purpose.value}:{order.id}"
            if not await self.cooldown.acquire(order.customer_id, scope):
                wait = await self.cooldown.seconds_left(order.customer_id, scope)
                raise RateLimited(f"Please wait {wait}s before requesting another code")

        record = await self.otp.issue(order.customer_id, purpose, order_id=order.id)
        customer = await self.accounts.find_by_id(order.customer_id)
        if customer is not None:
            await self.notifier.send_email(
                customer.email,
                f"Your {purpose.label_for(order.domain)} code for {order.order_number}",
                generate_otp_email_html(record.code, purpose, order.domain),
            )
        return record.to_public()

    async def cancel_order(self, order_id: Any, reason: str, cancelled_by: Any) -> OrderOut:
        """
        Cancel from any non-terminal state.

        Completed payments leave a refund_pending flag for the payments side.
        The order's outstanding codes are expired.
        """
        order = await self._load(order_id)
        if order.status.is_terminal:
            raise InvalidTransition(f"Cannot cancel an order that is {order.status_label}")

        now = self.clock()
        fields: Dict[str, Any] = {
            "status": OrderStatus.CANCELLED.value,
            "cancellation": {"reason": reason, "cancelled_by": str(cancelled_by), "cancelled_at": now},
        }
        if order.payment_status == PaymentStatus.COMPLETED:
            fields["refund_pending"] = True
        updated = await self.orders.conditional_update(
            order.id,
            {"status": order.status},
            {
                "$set": fields,
                "$push": {"timeline": _timeline_entry(OrderStatus.CANCELLED, now, reason, cancelled_by)},
            },
            now=now,
        )
        if updated is None:
            raise InvalidTransition("Order status changed concurrently, reload and retry")

        await self.otp.invalidate_order(order.id)
        log.info("order cancelled id=%s by=%s refund_pending=%s", order.id, cancelled_by, updated.refund_pending)
        return updated

    async def rate_order(
        self,
        order_id: Any,
        rating: int,
        comment: str,
        rating_type: RatingType,
        rater_id: Any = None,
    ) -> OrderOut:
        """
        Attach a 1..5 rating to a delivered order, once per rating type.

        A customer rating also folds into the partner's running average.
        """
        rating_type = RatingType(rating_type)
        if not 1 <= int(rating) <= 5:
            raise ValidationError("rating must be between 1 and 5")
        order = await self._load(order_id)
        if rater_id is not None:
            owner = order.customer_id if rating_type == RatingType.CUSTOMER else order.partner_id
            if owner is None or str(owner) != str(rater_id):
                raise UnauthorizedError(f"Only the order's {rating_type.value} can leave this rating")
        if order.status != OrderStatus.DELIVERED:
            raise NotDeliverable()

        prefix = "customer" if rating_type == RatingType.CUSTOMER else "partner"
        if getattr(order.rating, f"{prefix}_rating") is not None:
            raise AlreadyRated(f"Order already has a {prefix} rating")

        updated = await self.orders.conditional_update(
            order.id,
            {"status": OrderStatus.DELIVERED, f"rating.{prefix}_rating": None},
            {"$set": {f"rating.{prefix}_rating": int(rating), f"rating.{prefix}_comment": comment or ""}},
            now=self.clock(),
        )
        if updated is None:
            raise AlreadyRated(f"Order already has a {prefix} rating")

        if rating_type == RatingType.CUSTOMER and order.partner_id is not None:
            await self.accounts.update_rating(order.partner_id, int(rating))
        log.info("order rated id=%s type=%s rating=%s", order.id, rating_type.value, rating)
        return updated

    async def update_payment_status(self, order_id: Any, payment_status: PaymentStatus) -> OrderOut:
        payment_status = PaymentStatus(payment_status)
        order = await self._load(order_id)
        updated = await self.orders.conditional_update(
            order.id,
            {"payment_status": order.payment_status.value},
            {"$set": {"payment_status": payment_status.value}},
            now=self.clock(),
        )
        if updated is None:
            raise InvalidStateError("Payment status changed concurrently, reload and retry")
        log.info("payment status id=%s %s -> %s", order.id, order.payment_status.value, payment_status.value)
        return updated
