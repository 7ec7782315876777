import uuid
from django.db import models, transaction
from django.db.models import Q

from .domain import OrderStatus, PaymentStatus, RefundStatus, TransportStatus


def _choices(enum_cls):
    return [(m.value, m.value) for m in enum_cls]


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Human-facing incremental order number
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    listing_id = models.CharField(max_length=64, db_index=True)
    buyer_id = models.CharField(max_length=64, db_index=True)
    seller_id = models.CharField(max_length=64, db_index=True)

    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="INR")

    status = models.CharField(max_length=32, choices=_choices(OrderStatus), default=OrderStatus.PENDING.value)
    payment_status = models.CharField(
        max_length=16, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value
    )
    advance_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    captured_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    intent_gateway_order_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    intent_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_details = models.JSONField(null=True, blank=True)
    tracking_info = models.JSONField(null=True, blank=True)

    cancellation_reason = models.TextField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_status = models.CharField(max_length=16, choices=_choices(RefundStatus), null=True, blank=True)
    refund_ids = models.JSONField(default=list, blank=True)

    notes = models.TextField(blank=True, default="")
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "payment_status"], name="orders_status_idx")]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .exclude(internal_id=None)
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if not last else last.internal_id + 1

        super().save(*args, **kwargs)


class OrderPaymentModel(models.Model):
    """A gateway payment applied to an order; the unique id makes callbacks idempotent."""

    order = models.ForeignKey(OrderModel, related_name="payments", on_delete=models.PROTECT)
    gateway_payment_id = models.CharField(max_length=64, unique=True)
    gateway_order_id = models.CharField(max_length=64, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    kind = models.CharField(max_length=16, default="full")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_payments"
        ordering = ["created_at", "id"]


class OrderTransitionModel(models.Model):
    order = models.ForeignKey(OrderModel, related_name="transitions", on_delete=models.PROTECT)
    from_status = models.CharField(max_length=32, blank=True, default="")
    to_status = models.CharField(max_length=32)
    actor_id = models.CharField(max_length=64)
    actor_role = models.CharField(max_length=16)
    reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_transitions"
        ordering = ["created_at", "id"]


class TransportJobModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(OrderModel, related_name="transport_jobs", on_delete=models.PROTECT)
    transporter_id = models.CharField(max_length=64, db_index=True)
    quote = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=16, choices=_choices(TransportStatus), default=TransportStatus.ASSIGNED.value
    )
    tracking = models.CharField(max_length=255, blank=True, default="")
    # Cleared once the job reaches its terminal status
    is_active = models.BooleanField(default=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "transport_jobs"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(is_active=True),
                name="uq_active_transport_job_per_order",
            )
        ]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, unique=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict, blank=True)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
