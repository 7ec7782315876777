"""Repository layer for persisting orders and transport jobs.

The repositories map between the domain dataclasses in ``domain.py`` and
the Django ORM models so the lifecycle engine is not coupled to ORM
details. Every write that changes ``status`` or ``payment_status`` goes
through ``save``, which writes all dependent fields in one UPDATE guarded
by the ``version`` column (compare-and-set). Callers that need a
read-modify-write hold the row lock from ``lock`` for the duration.
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import Count, F
from django.utils import timezone

from .domain import (
    Actor,
    Order,
    OrderStatus,
    PaymentDetails,
    PaymentRecord,
    PaymentStatus,
    RefundStatus,
    Role,
    TrackingInfo,
    Transition,
    TransportJob,
    TransportStatus,
    money,
)
from .errors import Conflict, NotFound
from .models import OrderModel, OrderPaymentModel, OrderTransitionModel, TransportJobModel


def _details_to_json(details: Optional[PaymentDetails]) -> Optional[dict]:
    if details is None:
        return None
    return {
        "transaction_id": details.transaction_id,
        "gateway_order_id": details.gateway_order_id,
        "signature": details.signature,
        "gateway": details.gateway,
        "settled_at": details.settled_at.isoformat(),
    }


def _details_from_json(data: Optional[dict]) -> Optional[PaymentDetails]:
    if not data:
        return None
    return PaymentDetails(
        transaction_id=data["transaction_id"],
        gateway_order_id=data.get("gateway_order_id", ""),
        signature=data.get("signature", ""),
        gateway=data.get("gateway", ""),
        settled_at=datetime.fromisoformat(data["settled_at"]),
    )


def _tracking_to_json(info: Optional[TrackingInfo]) -> Optional[dict]:
    if info is None:
        return None
    return {
        "carrier": info.carrier,
        "tracking_number": info.tracking_number,
        "estimated_delivery": info.estimated_delivery,
        "actual_delivery": info.actual_delivery,
    }


def _tracking_from_json(data: Optional[dict]) -> Optional[TrackingInfo]:
    if not data:
        return None
    return TrackingInfo(**data)


def _order_to_domain(o: OrderModel) -> Order:
    return Order(
        id=str(o.id),
        listing_id=o.listing_id,
        buyer_id=o.buyer_id,
        seller_id=o.seller_id,
        quantity=o.quantity,
        unit_price=money(o.unit_price),
        amount=money(o.amount),
        shipping_cost=money(o.shipping_cost),
        total_amount=money(o.total_amount),
        currency=o.currency,
        status=OrderStatus(o.status),
        payment_status=PaymentStatus(o.payment_status),
        advance_amount=money(o.advance_amount),
        captured_amount=money(o.captured_amount),
        intent_gateway_order_id=o.intent_gateway_order_id,
        intent_amount=money(o.intent_amount) if o.intent_amount is not None else None,
        payment_details=_details_from_json(o.payment_details),
        tracking_info=_tracking_from_json(o.tracking_info),
        cancellation_reason=o.cancellation_reason,
        refund_amount=money(o.refund_amount) if o.refund_amount is not None else None,
        refund_status=RefundStatus(o.refund_status) if o.refund_status else None,
        refund_ids=list(o.refund_ids or []),
        notes=o.notes,
        version=o.version,
        created_at=o.created_at,
        updated_at=o.updated_at,
    )


def _order_fields(order: Order) -> dict:
    """Mutable columns written by ``save``; references never change."""
    return {
        "status": order.status.value,
        "payment_status": order.payment_status.value,
        "advance_amount": order.advance_amount,
        "captured_amount": order.captured_amount,
        "intent_gateway_order_id": order.intent_gateway_order_id,
        "intent_amount": order.intent_amount,
        "payment_details": _details_to_json(order.payment_details),
        "tracking_info": _tracking_to_json(order.tracking_info),
        "cancellation_reason": order.cancellation_reason,
        "refund_amount": order.refund_amount,
        "refund_status": order.refund_status.value if order.refund_status else None,
        "refund_ids": list(order.refund_ids),
        "notes": order.notes,
    }


def _payment_to_domain(p: OrderPaymentModel) -> PaymentRecord:
    return PaymentRecord(
        gateway_payment_id=p.gateway_payment_id,
        gateway_order_id=p.gateway_order_id,
        amount=money(p.amount),
        kind=p.kind,
        refunded_amount=money(p.refunded_amount),
        created_at=p.created_at,
        order_id=str(p.order_id),
    )


def _job_to_domain(j: TransportJobModel) -> TransportJob:
    return TransportJob(
        id=str(j.id),
        order_id=str(j.order_id),
        transporter_id=j.transporter_id,
        quote=money(j.quote),
        status=TransportStatus(j.status),
        tracking=j.tracking,
        version=j.version,
        created_at=j.created_at,
        updated_at=j.updated_at,
    )


def _scoped(qs, actor: Actor, prefix: str = ""):
    # Buyers see what they placed, sellers what was placed with them, admins everything.
    if actor.role == Role.BUYER:
        return qs.filter(**{f"{prefix}buyer_id": actor.id})
    if actor.role == Role.SELLER:
        return qs.filter(**{f"{prefix}seller_id": actor.id})
    if actor.role == Role.ADMIN:
        return qs
    return qs.none()


def _page(qs, page: int, page_size: int):
    p = Paginator(qs, page_size)
    page_obj = p.get_page(page)
    return page_obj.object_list, p.count, page_obj.number


class OrderRepository:
    """Repository that persists ``Order`` domain objects using Django ORM."""

    def create(self, order: Order, actor: Actor) -> Order:
        """Persist a new order together with its initial transition row.

        Args:
            order: Domain order with commercial fields populated.
            actor: The buyer creating the order.

        Returns:
            The persisted order, with ``id`` and timestamps filled in.
        """
        with transaction.atomic():
            obj = OrderModel.objects.create(
                listing_id=order.listing_id,
                buyer_id=order.buyer_id,
                seller_id=order.seller_id,
                quantity=order.quantity,
                unit_price=order.unit_price,
                amount=order.amount,
                shipping_cost=order.shipping_cost,
                total_amount=order.total_amount,
                currency=order.currency,
                **_order_fields(order),
            )
            OrderTransitionModel.objects.create(
                order=obj,
                from_status="",
                to_status=order.status.value,
                actor_id=actor.id,
                actor_role=actor.role.value,
            )
        return _order_to_domain(obj)

    def get(self, order_id: str) -> Order:
        try:
            return _order_to_domain(OrderModel.objects.get(id=order_id))
        except (OrderModel.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("ORDER_NOT_FOUND")

    @contextmanager
    def lock(self, order_id: str) -> Iterator[Order]:
        """Open a transaction holding the order's row lock.

        Yields:
            Order: The freshly read order. Changes must be written with
            ``save`` before the context exits.
        """
        with transaction.atomic():
            try:
                obj = OrderModel.objects.select_for_update().get(id=order_id)
            except (OrderModel.DoesNotExist, ValueError, DjangoValidationError):
                raise NotFound("ORDER_NOT_FOUND")
            yield _order_to_domain(obj)

    def save(self, order: Order, transition: Optional[Transition] = None) -> Order:
        """Write every mutable field of ``order`` in a single guarded UPDATE.

        Args:
            order: Domain order carrying the version it was read at.
            transition: Optional audit row written in the same transaction.

        Returns:
            The same order with ``version`` advanced.

        Raises:
            Conflict: ``CONCURRENT_MODIFICATION`` (409) when another writer
                bumped the version first.
        """
        now = timezone.now()
        with transaction.atomic():
            updated = OrderModel.objects.filter(id=order.id, version=order.version).update(
                version=F("version") + 1, updated_at=now, **_order_fields(order)
            )
            if updated == 0:
                raise Conflict("CONCURRENT_MODIFICATION", http_status=409)
            if transition is not None:
                OrderTransitionModel.objects.create(
                    order_id=order.id,
                    from_status=transition.from_status,
                    to_status=transition.to_status,
                    actor_id=transition.actor_id,
                    actor_role=transition.actor_role,
                    reason=transition.reason,
                )
        order.version += 1
        order.updated_at = now
        return order

    def add_payment(self, order_id: str, record: PaymentRecord) -> None:
        try:
            # Nested savepoint: a duplicate only rolls back this insert.
            with transaction.atomic():
                OrderPaymentModel.objects.create(
                    order_id=order_id,
                    gateway_payment_id=record.gateway_payment_id,
                    gateway_order_id=record.gateway_order_id,
                    amount=record.amount,
                    kind=record.kind,
                )
        except IntegrityError:
            raise Conflict("PAYMENT_ALREADY_APPLIED", http_status=409)

    def find_payment(self, gateway_payment_id: str) -> Optional[tuple[str, PaymentRecord]]:
        p = OrderPaymentModel.objects.filter(gateway_payment_id=gateway_payment_id).first()
        if p is None:
            return None
        return str(p.order_id), _payment_to_domain(p)

    def payments_for(self, order_id: str) -> list[PaymentRecord]:
        return [_payment_to_domain(p) for p in OrderPaymentModel.objects.filter(order_id=order_id)]

    def record_refund(self, gateway_payment_id: str, amount: Decimal) -> None:
        OrderPaymentModel.objects.filter(gateway_payment_id=gateway_payment_id).update(
            refunded_amount=F("refunded_amount") + amount
        )

    def find_by_intent(self, gateway_order_id: str) -> Optional[Order]:
        obj = OrderModel.objects.filter(intent_gateway_order_id=gateway_order_id).first()
        return _order_to_domain(obj) if obj else None

    def find_active_orders_for(self, actor: Actor, status: Optional[OrderStatus] = None,
                               page: int = 1, page_size: int = 20):
        """Role-scoped, paginated order listing.

        Buyers see orders they placed, sellers orders placed with them and
        admins every order.

        Returns:
            tuple[list[Order], int, int]: (orders, total count, page number).
        """
        qs = _scoped(OrderModel.objects.order_by("-created_at"), actor)
        if status is not None:
            qs = qs.filter(status=status.value)
        rows, count, number = _page(qs, page, page_size)
        return [_order_to_domain(o) for o in rows], count, number

    def payments_for_actor(self, actor: Actor, page: int = 1, page_size: int = 20):
        """Payment history across the orders ``actor`` can see, newest first.

        Returns:
            tuple[list[PaymentRecord], int, int]: (payments, total count, page number).
        """
        qs = _scoped(OrderPaymentModel.objects.order_by("-created_at", "-id"), actor, prefix="order__")
        rows, count, number = _page(qs, page, page_size)
        return [_payment_to_domain(p) for p in rows], count, number

    def stats_for(self, actor: Actor, recent: int = 10) -> dict:
        """Order counts by status and payment status, plus the latest orders."""
        qs = _scoped(OrderModel.objects.all(), actor)
        by_status = {
            row["status"]: row["count"]
            for row in qs.values("status").annotate(count=Count("id")).order_by()
        }
        by_payment = {
            row["payment_status"]: row["count"]
            for row in qs.values("payment_status").annotate(count=Count("id")).order_by()
        }
        latest = [_order_to_domain(o) for o in qs.order_by("-created_at")[:recent]]
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_payment_status": by_payment,
            "recent": latest,
        }

    def transitions_for(self, order_id: str) -> list[Transition]:
        return [
            Transition(
                from_status=t.from_status,
                to_status=t.to_status,
                actor_id=t.actor_id,
                actor_role=t.actor_role,
                reason=t.reason,
                created_at=t.created_at,
            )
            for t in OrderTransitionModel.objects.filter(order_id=order_id)
        ]


class TransportJobRepository:
    """Repository for ``TransportJob`` records."""

    def create(self, job: TransportJob) -> TransportJob:
        try:
            with transaction.atomic():
                obj = TransportJobModel.objects.create(
                    order_id=job.order_id,
                    transporter_id=job.transporter_id,
                    quote=job.quote,
                    status=job.status.value,
                    tracking=job.tracking,
                )
        except IntegrityError:
            raise Conflict("ACTIVE_JOB_EXISTS", http_status=409)
        return _job_to_domain(obj)

    def get(self, job_id: str) -> TransportJob:
        try:
            return _job_to_domain(TransportJobModel.objects.get(id=job_id))
        except (TransportJobModel.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("TRANSPORT_JOB_NOT_FOUND")

    @contextmanager
    def lock(self, job_id: str) -> Iterator[TransportJob]:
        with transaction.atomic():
            try:
                obj = TransportJobModel.objects.select_for_update().get(id=job_id)
            except (TransportJobModel.DoesNotExist, ValueError, DjangoValidationError):
                raise NotFound("TRANSPORT_JOB_NOT_FOUND")
            yield _job_to_domain(obj)

    def save(self, job: TransportJob) -> TransportJob:
        now = timezone.now()
        updated = TransportJobModel.objects.filter(id=job.id, version=job.version).update(
            status=job.status.value,
            tracking=job.tracking,
            is_active=job.status != TransportStatus.DELIVERED,
            version=F("version") + 1,
            updated_at=now,
        )
        if updated == 0:
            raise Conflict("CONCURRENT_MODIFICATION", http_status=409)
        job.version += 1
        job.updated_at = now
        return job

    def active_for_order(self, order_id: str) -> Optional[TransportJob]:
        obj = TransportJobModel.objects.filter(order_id=order_id, is_active=True).first()
        return _job_to_domain(obj) if obj else None

    def list_for(self, actor: Actor, status: Optional[TransportStatus] = None,
                 page: int = 1, page_size: int = 20):
        """Transporters see their jobs, admins all, buyers/sellers jobs for their orders."""
        qs = TransportJobModel.objects.order_by("-created_at")
        if actor.role == Role.TRANSPORTER:
            qs = qs.filter(transporter_id=actor.id)
        elif actor.role == Role.BUYER:
            qs = qs.filter(order__buyer_id=actor.id)
        elif actor.role == Role.SELLER:
            qs = qs.filter(order__seller_id=actor.id)
        if status is not None:
            qs = qs.filter(status=status.value)
        rows, count, number = _page(qs, page, page_size)
        return [_job_to_domain(j) for j in rows], count, number
