"""Order lifecycle engine.

``OrderLifecycleService`` owns every state change of an order: creation,
payment intents and verified payments, seller status updates, tracking,
cancellation and refunds. It depends only on the ports from ``domain.py``
and on ``OrderRepository``; views obtain a wired instance from
``providers.get_lifecycle_service``.

Every mutation follows the same shape:

1. Load the order and run the access check. Denials never touch the store.
2. Perform any gateway call. A gateway failure leaves the order as it was.
3. Re-read the order under its row lock, re-check the state precondition,
   and write all dependent fields plus the audit row with one versioned
   ``save``.
4. Queue notifications to run after the transaction commits.
"""

import json
import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import access
from .adapters import LoggingNotifier
from .domain import (
    FORWARD_RANK,
    SYSTEM_ACTOR,
    Actor,
    ListingsPort,
    NotifierPort,
    Order,
    OrderStatus,
    PaymentDetails,
    PaymentGatewayPort,
    PaymentIntent,
    PaymentRecord,
    PaymentStatus,
    RefundStatus,
    TrackingInfo,
    Transition,
    from_minor_units,
    money,
)
from .errors import (
    Conflict,
    GatewayError,
    InvalidAmount,
    InvalidSignature,
    NotFound,
    RefundExceedsCapture,
    ValidationError,
)
from .repository import OrderRepository

logger = logging.getLogger(__name__)

_ALL = frozenset(OrderStatus)

# Target status -> statuses it may be entered from.
TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PENDING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.CONFIRMED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    }),
    OrderStatus.DELIVERED: frozenset({
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
    }),
    OrderStatus.CANCELLED: frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED}),
    OrderStatus.REFUNDED: _ALL - {OrderStatus.REFUNDED},
}

CLOSED = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})
_NEEDS_PAYMENT = frozenset({OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED})


def reconcile_payment_status(captured: Decimal, total: Decimal, failed: bool = False) -> PaymentStatus:
    """Derive the payment status from what the gateway has captured.

    Args:
        captured: Sum of all captured payments.
        total: Order total.
        failed: Whether the gateway reported a failed attempt.

    Returns:
        PaymentStatus: ``PAID`` once the total is covered, ``PARTIAL`` for
        a positive capture below it, ``FAILED`` when nothing was captured
        and the gateway reported a failure, ``PENDING`` otherwise.
    """
    if captured > 0 and captured >= total:
        return PaymentStatus.PAID
    if captured > 0:
        return PaymentStatus.PARTIAL
    if failed:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def can_enter(current: OrderStatus, target: OrderStatus) -> bool:
    return current in TRANSITIONS.get(target, frozenset())


class OrderLifecycleService:
    """State machine and payment reconciliation for orders.

    Args:
        listings: Listing lookup port.
        gateway: Payment gateway port.
        notifier: Notification port; defaults to ``LoggingNotifier``.
        orders: Order repository; defaults to the ORM-backed one.
    """

    def __init__(self, listings: ListingsPort, gateway: PaymentGatewayPort,
                 notifier: Optional[NotifierPort] = None, orders: Optional[OrderRepository] = None):
        self.listings = listings
        self.gateway = gateway
        self.notifier = notifier or LoggingNotifier()
        self.orders = orders or OrderRepository()

    # ---- notifications ----
    def _notify(self, event: str, order: Order, **data) -> None:
        transaction.on_commit(lambda: self._dispatch(event, order, data))

    def _dispatch(self, event: str, order: Order, data: dict) -> None:
        try:
            self.notifier.notify(event, order, **data)
        except Exception:
            logger.exception("notification failed", extra={"event": event, "order_id": order.id})

    # ---- reads ----
    def get_order(self, actor: Actor, order_id: str) -> Order:
        order = self.orders.get(order_id)
        access.ensure(access.can_view(actor, order))
        return order

    def list_orders(self, actor: Actor, status: Optional[OrderStatus] = None, page: int = 1, page_size: int = 20):
        access.ensure(access.can_list_orders(actor))
        return self.orders.find_active_orders_for(actor, status=status, page=page, page_size=page_size)

    def list_payments(self, actor: Actor, page: int = 1, page_size: int = 20):
        access.ensure(access.can_list_orders(actor))
        return self.orders.payments_for_actor(actor, page=page, page_size=page_size)

    def order_stats(self, actor: Actor) -> dict:
        access.ensure(access.can_list_orders(actor))
        return self.orders.stats_for(actor)

    def list_transitions(self, actor: Actor, order_id: str) -> list[Transition]:
        self.get_order(actor, order_id)
        return self.orders.transitions_for(order_id)

    # ---- creation ----
    def create_order(self, actor: Actor, listing_id: str, amount: Decimal, quantity: int = 1,
                     shipping_cost: Decimal = Decimal("0"), notes: Optional[str] = None) -> Order:
        """Create a ``pending`` order for an active listing.

        Raises:
            Forbidden: If the actor is not a buyer.
            NotFound: ``LISTING_NOT_FOUND``.
            Conflict: ``LISTING_NOT_ACTIVE``.
            ValidationError: ``SELF_PURCHASE`` when the buyer owns the listing.
            InvalidAmount: For a non-positive amount or negative shipping.
            GatewayUnavailable: When the listing service cannot be reached.
        """
        access.ensure(access.can_create_order(actor))
        amount = money(amount)
        shipping_cost = money(shipping_cost or 0)
        if amount <= 0 or shipping_cost < 0:
            raise InvalidAmount("INVALID_AMOUNT", "Amount must be greater than zero")
        if quantity < 1:
            raise ValidationError("INVALID_QUANTITY", "Quantity must be at least one")

        listing = self.listings.get_listing(listing_id)
        if listing is None:
            raise NotFound("LISTING_NOT_FOUND", "Listing not found")
        if not listing.is_active:
            raise Conflict("LISTING_NOT_ACTIVE", "Listing is not available")
        if listing.seller_id == actor.id:
            raise ValidationError("SELF_PURCHASE", "You cannot order your own listing")

        order = Order(
            id=None,
            listing_id=listing.id,
            buyer_id=actor.id,
            seller_id=listing.seller_id,
            quantity=quantity,
            unit_price=money(listing.price),
            amount=amount,
            shipping_cost=shipping_cost,
            total_amount=amount + shipping_cost,
            currency=listing.currency or getattr(settings, "ORDERS_DEFAULT_CURRENCY", "INR"),
            notes=notes or "",
        )
        order = self.orders.create(order, actor)
        logger.info("order created", extra={"order_id": order.id, "listing_id": listing.id})
        self._notify("order.created", order)
        return order

    # ---- payments ----
    def create_payment_intent(self, actor: Actor, order_id: str, amount: Decimal) -> tuple[Order, PaymentIntent]:
        """Open a gateway order for ``amount`` and bind it to the order.

        Raises:
            InvalidAmount: If ``amount`` is not positive or exceeds the
                outstanding balance.
            Conflict: ``ORDER_NOT_PAYABLE`` for closed orders,
                ``ORDER_ALREADY_PAID`` when nothing is outstanding.
            GatewayUnavailable: If the provider cannot be reached.
        """
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmount("INVALID_AMOUNT", "Amount must be greater than zero")
        order = self.orders.get(order_id)
        access.ensure(access.can_pay(actor, order))
        self._ensure_payable(order)
        if amount > order.outstanding:
            raise InvalidAmount("AMOUNT_EXCEEDS_BALANCE", "Amount exceeds the outstanding balance")

        intent = self.gateway.create_payment_intent(order.id, amount, order.currency)

        with self.orders.lock(order_id) as current:
            current.intent_gateway_order_id = intent.gateway_order_id
            current.intent_amount = money(intent.amount)
            self.orders.save(current)
        logger.info(
            "payment intent created",
            extra={"order_id": order_id, "gateway_order_id": intent.gateway_order_id},
        )
        return current, intent

    def verify_payment(self, actor: Actor, order_id: str, gateway_payment_id: str, gateway_order_id: str,
                       signature: str) -> tuple[Order, bool]:
        """Apply a signed checkout callback.

        Returns:
            tuple[Order, bool]: The order and whether this payment had
            already been applied (a retried callback).

        Raises:
            InvalidSignature: If the signature does not verify.
            Conflict: ``NO_PAYMENT_INTENT`` when no intent is open, so the
                captured amount is unknown.
            GatewayError: ``GATEWAY_ORDER_MISMATCH`` when the callback is for
                a different gateway order than the open intent.
        """
        order = self.orders.get(order_id)
        access.ensure(access.can_pay(actor, order))
        self._verify_signature(order_id, gateway_order_id, gateway_payment_id, signature)

        applied = self._already_applied(order, gateway_payment_id)
        if applied is not None:
            return applied, True

        self._ensure_intent_matches(order, gateway_order_id)
        record = PaymentRecord(
            gateway_payment_id=gateway_payment_id,
            gateway_order_id=gateway_order_id,
            amount=money(order.intent_amount),
        )
        return self._apply_payment(order_id, record, actor, signature)

    def record_advance_payment(self, actor: Actor, order_id: str, advance_amount: Decimal,
                               gateway_payment_id: str, gateway_order_id: str,
                               signature: str) -> tuple[Order, bool]:
        """Apply a signed advance (partial) payment.

        Raises:
            InvalidAmount: For a non-positive amount, one above the
                outstanding balance, or one that differs from the open intent.
            InvalidSignature: If the signature does not verify.
            Conflict: ``NO_PAYMENT_INTENT`` when no intent is open.
        """
        advance_amount = money(advance_amount)
        if advance_amount <= 0:
            raise InvalidAmount("INVALID_AMOUNT", "Advance amount must be greater than zero")
        order = self.orders.get(order_id)
        access.ensure(access.can_pay(actor, order))
        self._verify_signature(order_id, gateway_order_id, gateway_payment_id, signature)

        applied = self._already_applied(order, gateway_payment_id)
        if applied is not None:
            return applied, True

        self._ensure_payable(order)
        self._ensure_intent_matches(order, gateway_order_id)
        if order.intent_amount != advance_amount:
            raise InvalidAmount("ADVANCE_AMOUNT_MISMATCH", "Advance amount differs from the payment intent")
        if advance_amount > order.outstanding:
            raise InvalidAmount("AMOUNT_EXCEEDS_BALANCE", "Advance exceeds the outstanding balance")
        record = PaymentRecord(
            gateway_payment_id=gateway_payment_id,
            gateway_order_id=gateway_order_id,
            amount=advance_amount,
            kind="advance",
        )
        return self._apply_payment(order_id, record, actor, signature)

    def handle_webhook(self, body: bytes, signature: str) -> dict:
        """Process a signed gateway webhook.

        Returns:
            dict: ``{"event": ..., "status": ...}`` acknowledging the event,
            plus ``order_id`` when one was affected.

        Raises:
            InvalidSignature: If the body signature does not verify.
            ValidationError: ``MALFORMED_WEBHOOK`` for unparseable bodies.
            NotFound: If a payment event names no known order.
        """
        if not self.gateway.verify_webhook_signature(body, signature):
            logger.warning("webhook signature mismatch")
            raise InvalidSignature("INVALID_SIGNATURE", "Webhook signature mismatch")
        try:
            event = json.loads(body)
            kind = event["event"]
        except (ValueError, KeyError, TypeError):
            raise ValidationError("MALFORMED_WEBHOOK", "Webhook body is not a gateway event")

        payload = event.get("payload") or {}
        if kind == "payment.captured":
            entity = self._entity(payload, "payment")
            order = self._order_for_event(entity)
            try:
                record = PaymentRecord(
                    gateway_payment_id=entity["id"],
                    gateway_order_id=entity.get("order_id") or "",
                    amount=from_minor_units(entity["amount"]),
                )
            except (KeyError, TypeError, ValueError):
                raise ValidationError("MALFORMED_WEBHOOK", "Payment entity is incomplete")
            applied = self._already_applied(order, record.gateway_payment_id)
            if applied is not None:
                return {"event": kind, "status": "already_applied", "order_id": order.id}
            self._apply_payment(order.id, record, SYSTEM_ACTOR, "")
            return {"event": kind, "status": "applied", "order_id": order.id}

        if kind == "payment.failed":
            order = self._order_for_event(self._entity(payload, "payment"))
            with self.orders.lock(order.id) as current:
                if current.captured_amount == 0 and current.status not in CLOSED:
                    current.payment_status = reconcile_payment_status(
                        current.captured_amount, current.total_amount, failed=True
                    )
                    self.orders.save(current)
                    self._notify("payment.failed", current)
            return {"event": kind, "status": "recorded", "order_id": order.id}

        if kind == "refund.processed":
            entity = (payload.get("refund") or {}).get("entity") or {}
            logger.info(
                "refund processed by gateway",
                extra={"refund_id": entity.get("id"), "gateway_payment_id": entity.get("payment_id")},
            )
            return {"event": kind, "status": "acknowledged"}

        logger.info("webhook ignored", extra={"event": kind})
        return {"event": kind, "status": "ignored"}

    # ---- status ----
    def change_status(self, actor: Actor, order_id: str, status: OrderStatus, reason: Optional[str] = None) -> Order:
        """Move an order to ``status`` on behalf of ``actor``.

        Raises:
            Forbidden: If the actor may not request ``status``.
            Conflict: ``INVALID_TRANSITION`` or ``PAYMENT_REQUIRED``.
        """
        order = self.orders.get(order_id)
        access.ensure(access.can_transition(actor.role, actor.id, order, status))
        if status == OrderStatus.CANCELLED:
            return self.cancel(actor, order_id, reason)
        if status == OrderStatus.REFUNDED:
            return self.issue_refund(actor, order_id)

        with self.orders.lock(order_id) as order:
            self._ensure_transition(order, status)
            if (
                getattr(settings, "ORDERS_REQUIRE_PAYMENT_BEFORE_DELIVERY", False)
                and status in _NEEDS_PAYMENT
                and order.payment_status != PaymentStatus.PAID
            ):
                raise Conflict("PAYMENT_REQUIRED", "Order must be paid before it ships")
            previous = order.status
            order.status = status
            if status == OrderStatus.DELIVERED and order.tracking_info and not order.tracking_info.actual_delivery:
                order.tracking_info.actual_delivery = timezone.localdate().isoformat()
            self.orders.save(order, self._transition(previous, status, actor, reason))
        logger.info(
            "order status changed",
            extra={"order_id": order_id, "from_status": previous.value, "to_status": status.value},
        )
        self._notify(f"order.{status.value}", order)
        return order

    def update_tracking(self, actor: Actor, order_id: str, carrier: str, tracking_number: str,
                        estimated_delivery=None, actual_delivery=None) -> Order:
        order = self.orders.get(order_id)
        access.ensure(access.can_update_tracking(actor, order))
        with self.orders.lock(order_id) as order:
            if FORWARD_RANK.get(order.status, -1) < FORWARD_RANK[OrderStatus.SHIPPED]:
                raise Conflict("ORDER_NOT_SHIPPED", "Tracking can be added once the order has shipped")
            order.tracking_info = TrackingInfo(
                carrier=carrier,
                tracking_number=tracking_number,
                estimated_delivery=estimated_delivery.isoformat() if estimated_delivery else None,
                actual_delivery=actual_delivery.isoformat() if actual_delivery else None,
            )
            self.orders.save(order)
        self._notify("order.tracking_updated", order, carrier=carrier, tracking_number=tracking_number)
        return order

    def cancel(self, actor: Actor, order_id: str, reason: Optional[str] = None) -> Order:
        """Cancel a ``pending`` or ``confirmed`` order.

        When money was captured, the refund owed is the lesser of the
        capture and the order total and is queued as ``refund_status =
        pending`` for an admin to issue.

        Raises:
            Forbidden: If the actor may not cancel this order.
            Conflict: ``ORDER_NOT_CANCELLABLE`` in any other status.
        """
        order = self.orders.get(order_id)
        access.ensure(access.can_transition(actor.role, actor.id, order, OrderStatus.CANCELLED))
        with self.orders.lock(order_id) as order:
            if not can_enter(order.status, OrderStatus.CANCELLED):
                raise Conflict("ORDER_NOT_CANCELLABLE", f"Orders in status {order.status.value} cannot be cancelled")
            previous = order.status
            order.status = OrderStatus.CANCELLED
            order.cancellation_reason = reason
            if order.captured_amount > 0:
                order.refund_amount = min(order.captured_amount, order.total_amount)
                order.refund_status = RefundStatus.PENDING
            self.orders.save(order, self._transition(previous, OrderStatus.CANCELLED, actor, reason))
        logger.info("order cancelled", extra={"order_id": order_id, "actor_role": actor.role.value})
        self._notify(
            "order.cancelled",
            order,
            refund_amount=str(order.refund_amount) if order.refund_amount is not None else None,
        )
        return order

    def issue_refund(self, actor: Actor, order_id: str, amount: Optional[Decimal] = None) -> Order:
        """Refund captured money through the gateway, then mark the order refunded.

        The gateway is called once per applied payment until ``amount``
        (default: everything still refundable) is covered. The order only
        changes after every gateway call succeeded; refunds the gateway did
        accept before a failure are still booked on their payment records.

        Raises:
            Forbidden: If the actor is not an admin.
            Conflict: ``NOTHING_TO_REFUND``.
            RefundExceedsCapture: If ``amount`` is above what is refundable.
            GatewayUnavailable: If the provider cannot be reached.
        """
        order = self.orders.get(order_id)
        access.ensure(access.can_refund(actor, order))
        payments = self.orders.payments_for(order_id)
        refundable = money(sum((p.refundable for p in payments), Decimal("0")))
        if refundable <= 0:
            raise Conflict("NOTHING_TO_REFUND", "No captured payment to refund")
        target = refundable if amount is None else money(amount)
        if target <= 0:
            raise InvalidAmount("INVALID_AMOUNT", "Refund amount must be greater than zero")
        if target > refundable:
            raise RefundExceedsCapture("REFUND_EXCEEDS_CAPTURE", "Refund exceeds captured amount")

        issued = []
        remaining = target
        try:
            for payment in payments:
                if remaining <= 0:
                    break
                portion = min(payment.refundable, remaining)
                if portion <= 0:
                    continue
                full = portion == payment.amount
                refund = self.gateway.issue_refund(payment.gateway_payment_id, None if full else portion)
                issued.append((payment, portion, refund))
                remaining -= portion
        except GatewayError:
            if issued:
                with transaction.atomic():
                    for payment, portion, _ in issued:
                        self.orders.record_refund(payment.gateway_payment_id, portion)
                logger.error(
                    "refund interrupted",
                    extra={"order_id": order_id, "refund_ids": [r.refund_id for _, _, r in issued]},
                )
            raise

        already_refunded = sum((p.refunded_amount for p in payments), Decimal("0"))
        with self.orders.lock(order_id) as order:
            for payment, portion, _ in issued:
                self.orders.record_refund(payment.gateway_payment_id, portion)
            previous = order.status
            order.status = OrderStatus.REFUNDED
            order.payment_status = PaymentStatus.REFUNDED
            order.refund_status = RefundStatus.PROCESSED
            # Per-payment records keep the exact figures; the order total is capped.
            order.refund_amount = money(min(already_refunded + target, order.total_amount))
            order.refund_ids = order.refund_ids + [r.refund_id for _, _, r in issued]
            transition = None
            if previous != OrderStatus.REFUNDED:
                transition = self._transition(previous, OrderStatus.REFUNDED, actor, "refund issued")
            self.orders.save(order, transition)
        logger.info("order refunded", extra={"order_id": order_id, "refund_amount": str(target)})
        self._notify("order.refunded", order, refund_amount=str(target))
        return order

    # ---- internals ----
    def _transition(self, previous: OrderStatus, target: OrderStatus, actor: Actor,
                    reason: Optional[str]) -> Transition:
        return Transition(
            from_status=previous.value,
            to_status=target.value,
            actor_id=actor.id,
            actor_role=actor.role.value,
            reason=reason or "",
        )

    def _ensure_transition(self, order: Order, target: OrderStatus) -> None:
        if not can_enter(order.status, target):
            raise Conflict(
                "INVALID_TRANSITION",
                f"Cannot move an order from {order.status.value} to {target.value}",
            )

    def _ensure_payable(self, order: Order) -> None:
        if order.status in CLOSED:
            raise Conflict("ORDER_NOT_PAYABLE", f"Orders in status {order.status.value} cannot be paid")
        if order.outstanding <= 0:
            raise Conflict("ORDER_ALREADY_PAID", "Nothing is outstanding on this order")

    def _ensure_intent_matches(self, order: Order, gateway_order_id: str) -> None:
        if not order.intent_gateway_order_id:
            raise Conflict("NO_PAYMENT_INTENT", "No payment intent is open for this order")
        if order.intent_gateway_order_id != gateway_order_id:
            raise GatewayError("GATEWAY_ORDER_MISMATCH", "Payment does not belong to the open payment intent")

    def _verify_signature(self, order_id: str, gateway_order_id: str, gateway_payment_id: str,
                          signature: str) -> None:
        if not self.gateway.verify_callback_signature(gateway_order_id, gateway_payment_id, signature):
            logger.warning(
                "payment signature mismatch",
                extra={"order_id": order_id, "gateway_payment_id": gateway_payment_id},
            )
            raise InvalidSignature("INVALID_SIGNATURE", "Payment signature mismatch")

    def _already_applied(self, order: Order, gateway_payment_id: str) -> Optional[Order]:
        found = self.orders.find_payment(gateway_payment_id)
        if found is None:
            return None
        if found[0] != order.id:
            raise Conflict("PAYMENT_BELONGS_TO_OTHER_ORDER", "Payment was applied to another order", http_status=409)
        return self.orders.get(order.id)

    def _entity(self, payload: dict, name: str) -> dict:
        entity = (payload.get(name) or {}).get("entity")
        if not isinstance(entity, dict):
            raise ValidationError("MALFORMED_WEBHOOK", f"Webhook has no {name} entity")
        return entity

    def _order_for_event(self, entity: dict) -> Order:
        booking_id = (entity.get("notes") or {}).get("booking_id")
        if booking_id:
            return self.orders.get(booking_id)
        order = self.orders.find_by_intent(entity.get("order_id") or "")
        if order is None:
            raise NotFound("ORDER_NOT_FOUND", "No order for this payment")
        return order

    def _apply_payment(self, order_id: str, record: PaymentRecord, actor: Actor,
                       signature: str) -> tuple[Order, bool]:
        with self.orders.lock(order_id) as order:
            # A concurrent callback may have won the row lock first.
            if self.orders.find_payment(record.gateway_payment_id) is not None:
                return order, True
            self.orders.add_payment(order.id, record)

            order.captured_amount = money(order.captured_amount + record.amount)
            if record.kind == "advance":
                order.advance_amount = money(order.advance_amount + record.amount)
            order.payment_details = PaymentDetails(
                transaction_id=record.gateway_payment_id,
                gateway_order_id=record.gateway_order_id,
                signature=signature,
                gateway=self.gateway.name,
                settled_at=timezone.now(),
            )
            if order.intent_gateway_order_id == record.gateway_order_id:
                order.intent_gateway_order_id = None
                order.intent_amount = None

            transition = None
            if order.status in CLOSED:
                # Money landed after the order closed: owe it back.
                if order.status == OrderStatus.CANCELLED:
                    order.payment_status = reconcile_payment_status(order.captured_amount, order.total_amount)
                refunded = sum((p.refunded_amount for p in self.orders.payments_for(order.id)), Decimal("0"))
                owed = min(order.captured_amount - refunded, order.total_amount)
                order.refund_amount = money(max(owed, Decimal("0")))
                order.refund_status = RefundStatus.PENDING
                logger.warning(
                    "payment received for closed order",
                    extra={"order_id": order.id, "gateway_payment_id": record.gateway_payment_id},
                )
            else:
                order.payment_status = reconcile_payment_status(order.captured_amount, order.total_amount)
                if order.status == OrderStatus.PENDING:
                    transition = self._transition(
                        OrderStatus.PENDING, OrderStatus.CONFIRMED, actor, "payment verified"
                    )
                    order.status = OrderStatus.CONFIRMED
            self.orders.save(order, transition)
        logger.info(
            "payment applied",
            extra={
                "order_id": order.id,
                "gateway_payment_id": record.gateway_payment_id,
                "amount": str(record.amount),
                "payment_status": order.payment_status.value,
            },
        )
        self._notify("payment.captured", order, amount=str(record.amount), kind=record.kind)
        return order, False
