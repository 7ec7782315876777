"""Transport jobs linked to orders.

A transport job moves through ``assigned -> picked -> in-transit ->
delivered``. Jobs can only be opened for orders that are confirmed and not
yet delivered, and an order has at most one active job at a time. The
order row lock serializes concurrent accepts; the conditional unique
constraint on ``transport_jobs`` backs it up at the database level.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction

from . import access
from .adapters import LoggingNotifier
from .domain import (
    FORWARD_RANK,
    TRANSPORT_RANK,
    Actor,
    NotifierPort,
    OrderStatus,
    TransportJob,
    TransportStatus,
    money,
)
from .errors import Conflict, ValidationError
from .repository import OrderRepository, TransportJobRepository

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_RATES = {
    "truck": {"base": "1500", "per_unit": "20"},
    "tempo": {"base": "800", "per_unit": "15"},
    "pickup": {"base": "500", "per_unit": "10"},
}


def estimate_quote(vehicle_type: str, quantity: int) -> Decimal:
    """Deterministic estimate: a base fare plus a charge per unit carried.

    Raises:
        ValidationError: ``UNKNOWN_VEHICLE_TYPE`` for unconfigured vehicles.
    """
    rates = getattr(settings, "TRANSPORT_QUOTE_RATES", DEFAULT_QUOTE_RATES)
    rate = rates.get(vehicle_type)
    if rate is None:
        raise ValidationError("UNKNOWN_VEHICLE_TYPE", f"Supported vehicles: {', '.join(sorted(rates))}")
    return money(Decimal(str(rate["base"])) + Decimal(str(rate["per_unit"])) * quantity)


class TransportService:
    def __init__(self, orders: Optional[OrderRepository] = None, jobs: Optional[TransportJobRepository] = None,
                 notifier: Optional[NotifierPort] = None):
        self.orders = orders or OrderRepository()
        self.jobs = jobs or TransportJobRepository()
        self.notifier = notifier or LoggingNotifier()

    def _notify(self, event: str, order, **data) -> None:
        try:
            self.notifier.notify(event, order, **data)
        except Exception:
            logger.exception("notification failed", extra={"event": event, "order_id": order.id})

    def request_quote(self, actor: Actor, order_id: str, pickup_location: str, delivery_location: str,
                      vehicle_type: str = "truck") -> dict:
        order = self.orders.get(order_id)
        access.ensure(access.can_request_quote(actor, order))
        return {
            "orderId": order.id,
            "estimatedQuote": str(estimate_quote(vehicle_type, order.quantity)),
            "currency": order.currency,
            "vehicleType": vehicle_type,
            "pickupLocation": pickup_location,
            "deliveryLocation": delivery_location,
        }

    def accept_job(self, actor: Actor, order_id: str, quote: Decimal) -> TransportJob:
        """Open a job for ``order_id`` owned by the accepting transporter.

        Raises:
            Forbidden: If the actor is not a transporter.
            Conflict: ``ORDER_NOT_TRANSPORTABLE`` unless the order is between
                confirmed and out for delivery; ``ACTIVE_JOB_EXISTS`` (409)
                when another job is still open.
        """
        access.ensure(access.can_accept_transport(actor))
        with self.orders.lock(order_id) as order:
            rank = FORWARD_RANK.get(order.status, -1)
            if not FORWARD_RANK[OrderStatus.CONFIRMED] <= rank < FORWARD_RANK[OrderStatus.DELIVERED]:
                raise Conflict(
                    "ORDER_NOT_TRANSPORTABLE",
                    f"Orders in status {order.status.value} cannot be transported",
                )
            if self.jobs.active_for_order(order.id) is not None:
                raise Conflict("ACTIVE_JOB_EXISTS", "Order already has an active transport job", http_status=409)
            job = self.jobs.create(TransportJob(
                id=None,
                order_id=order.id,
                transporter_id=actor.id,
                quote=money(quote),
            ))
        logger.info("transport job accepted", extra={"job_id": job.id, "order_id": order_id})
        transaction.on_commit(
            lambda: self._notify("transport.assigned", order, job_id=job.id, transporter_id=actor.id)
        )
        return job

    def update_job(self, actor: Actor, job_id: str, status: TransportStatus,
                   tracking: Optional[str] = None) -> TransportJob:
        job = self.jobs.get(job_id)
        access.ensure(access.can_update_transport(actor, job))
        with self.jobs.lock(job_id) as job:
            if job.status == TransportStatus.DELIVERED:
                raise Conflict("TRANSPORT_JOB_CLOSED", "Delivered jobs cannot be updated")
            current, target = TRANSPORT_RANK[job.status], TRANSPORT_RANK[status]
            if target < current or (target == current and tracking is None):
                raise Conflict(
                    "INVALID_TRANSPORT_TRANSITION",
                    f"Cannot move a job from {job.status.value} to {status.value}",
                )
            job.status = status
            if tracking is not None:
                job.tracking = tracking
            self.jobs.save(job)
        logger.info("transport job updated", extra={"job_id": job_id, "status": status.value})
        return job

    def get_job(self, actor: Actor, job_id: str) -> TransportJob:
        job = self.jobs.get(job_id)
        order = self.orders.get(job.order_id)
        access.ensure(access.can_view_transport(actor, job, order))
        return job

    def list_jobs(self, actor: Actor, status: Optional[TransportStatus] = None, page: int = 1, page_size: int = 20):
        return self.jobs.list_for(actor, status=status, page=page, page_size=page_size)
