"""Pydantic schemas for the orders, bookings and transport APIs.

Request schemas validate incoming bodies and query strings; read schemas
render domain objects with the camelCase keys clients expect. Money is
rendered as decimal strings so no precision is lost on the wire.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .domain import Order, OrderStatus, PaymentRecord, Transition, TransportJob, TransportStatus
from .errors import ValidationError


def parse(schema: type[BaseModel], data):
    """Validate ``data`` against ``schema`` or raise a domain ``ValidationError``.

    Field errors are reported as ``errors: [{"loc": [...], "msg": "..."}]``
    without echoing the submitted values back.
    """
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        errors = [{"loc": [str(p) for p in err["loc"]], "msg": err["msg"]} for err in e.errors()]
        raise ValidationError("VALIDATION_ERROR", "Request validation failed", details={"errors": errors})


class _In(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CreateOrderDTO(_In):
    """Schema for creating an order.

    Attributes:
        listing_id: Listing being purchased (``listingId``).
        amount: Agreed price for the whole quantity, in major units.
        quantity: Units purchased, at least one.
        shipping_cost: Optional shipping charge added to the total.
        notes: Free-text instructions for the seller.
    """

    listing_id: str = Field(alias="listingId", min_length=1, max_length=64)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    quantity: int = Field(default=1, ge=1)
    shipping_cost: Decimal = Field(default=Decimal("0"), alias="shippingCost", ge=0, max_digits=12,
                                   decimal_places=2)
    notes: str = Field(default="", max_length=1000)


class StatusUpdateDTO(_In):
    status: OrderStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class CancelDTO(_In):
    reason: Optional[str] = Field(default=None, max_length=500)


class TrackingUpdateDTO(_In):
    carrier: str = Field(min_length=1, max_length=100)
    tracking_number: str = Field(alias="trackingNumber", min_length=1, max_length=100)
    estimated_delivery: Optional[date] = Field(default=None, alias="estimatedDelivery")
    actual_delivery: Optional[date] = Field(default=None, alias="actualDelivery")


class RefundDTO(_In):
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)


class PaymentCreateQuery(_In):
    """Query string of ``GET /bookings/payment/create``.

    ``amount`` is range-checked by the engine so a non-positive value
    surfaces as ``INVALID_AMOUNT``.
    """

    booking_id: str = Field(min_length=1)
    amount: Decimal = Field(max_digits=12, decimal_places=2)


class PaymentVerifyQuery(_In):
    """Query string of ``GET /bookings/payment/verify``.

    The gateway's own parameter names (``razorpay_*``) are accepted too.
    """

    booking_id: str = Field(min_length=1)
    gateway_payment_id: str = Field(
        min_length=1, validation_alias=AliasChoices("gateway_payment_id", "razorpay_payment_id")
    )
    gateway_order_id: str = Field(
        min_length=1, validation_alias=AliasChoices("gateway_order_id", "razorpay_order_id")
    )
    signature: str = Field(min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature"))


class AdvancePaymentDTO(PaymentVerifyQuery):
    advance_amount: Decimal = Field(max_digits=12, decimal_places=2)


class TransportQuoteDTO(_In):
    order_id: str = Field(alias="orderId", min_length=1)
    pickup_location: str = Field(alias="pickupLocation", min_length=1, max_length=255)
    delivery_location: str = Field(alias="deliveryLocation", min_length=1, max_length=255)
    vehicle_type: str = Field(default="truck", alias="vehicleType", max_length=32)

    @field_validator("vehicle_type")
    @classmethod
    def normalize_vehicle_type(cls, v: str) -> str:
        return v.lower()


class TransportAcceptDTO(_In):
    order_id: str = Field(alias="orderId", min_length=1)
    quote: Decimal = Field(ge=0, max_digits=12, decimal_places=2)


class TransportUpdateDTO(_In):
    status: TransportStatus
    tracking: Optional[str] = Field(default=None, max_length=255)


class ListQuery(_In):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class OrderListQuery(ListQuery):
    status: Optional[OrderStatus] = None


class TransportListQuery(ListQuery):
    status: Optional[TransportStatus] = None


# ---- Read schemas ----
class _Out(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class PaymentDetailsRead(_Out):
    transaction_id: str
    gateway_order_id: str
    gateway: str
    settled_at: datetime


class TrackingRead(_Out):
    carrier: str
    tracking_number: str
    estimated_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None


class OrderReadDTO(_Out):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    quantity: int
    unit_price: Decimal
    amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    currency: str
    status: OrderStatus
    payment_status: str
    advance_amount: Decimal
    captured_amount: Decimal
    payment_details: Optional[PaymentDetailsRead] = None
    tracking_info: Optional[TrackingRead] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_status: Optional[str] = None
    notes: str = ""
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, o: Order) -> "OrderReadDTO":
        details = o.payment_details
        tracking = o.tracking_info
        return cls(
            id=o.id,
            listing_id=o.listing_id,
            buyer_id=o.buyer_id,
            seller_id=o.seller_id,
            quantity=o.quantity,
            unit_price=o.unit_price,
            amount=o.amount,
            shipping_cost=o.shipping_cost,
            total_amount=o.total_amount,
            currency=o.currency,
            status=o.status,
            payment_status=o.payment_status.value,
            advance_amount=o.advance_amount,
            captured_amount=o.captured_amount,
            payment_details=PaymentDetailsRead(
                transaction_id=details.transaction_id,
                gateway_order_id=details.gateway_order_id,
                gateway=details.gateway,
                settled_at=details.settled_at,
            ) if details else None,
            tracking_info=TrackingRead(
                carrier=tracking.carrier,
                tracking_number=tracking.tracking_number,
                estimated_delivery=tracking.estimated_delivery,
                actual_delivery=tracking.actual_delivery,
            ) if tracking else None,
            cancellation_reason=o.cancellation_reason,
            refund_amount=o.refund_amount,
            refund_status=o.refund_status.value if o.refund_status else None,
            notes=o.notes,
            version=o.version,
            created_at=o.created_at,
            updated_at=o.updated_at,
        )


class TransitionReadDTO(_Out):
    from_status: str
    to_status: str
    actor_id: str
    actor_role: str
    reason: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, t: Transition) -> "TransitionReadDTO":
        return cls(
            from_status=t.from_status,
            to_status=t.to_status,
            actor_id=t.actor_id,
            actor_role=t.actor_role,
            reason=t.reason,
            created_at=t.created_at,
        )


class PaymentRecordReadDTO(_Out):
    order_id: Optional[str] = None
    gateway_payment_id: str
    gateway_order_id: str
    amount: Decimal
    kind: str
    refunded_amount: Decimal
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, p: PaymentRecord) -> "PaymentRecordReadDTO":
        return cls(
            order_id=p.order_id,
            gateway_payment_id=p.gateway_payment_id,
            gateway_order_id=p.gateway_order_id,
            amount=p.amount,
            kind=p.kind,
            refunded_amount=p.refunded_amount,
            created_at=p.created_at,
        )


class RecentOrderRead(_Out):
    id: str
    status: OrderStatus
    payment_status: str
    total_amount: Decimal
    created_at: Optional[datetime] = None


class OrderStatsReadDTO(_Out):
    """Counts of the caller's orders; status keys are not camel-cased."""

    total: int
    by_status: dict[str, int]
    by_payment_status: dict[str, int]
    recent: list[RecentOrderRead]

    @classmethod
    def from_domain(cls, stats: dict) -> "OrderStatsReadDTO":
        return cls(
            total=stats["total"],
            by_status=stats["by_status"],
            by_payment_status=stats["by_payment_status"],
            recent=[
                RecentOrderRead(
                    id=o.id,
                    status=o.status,
                    payment_status=o.payment_status.value,
                    total_amount=o.total_amount,
                    created_at=o.created_at,
                )
                for o in stats["recent"]
            ],
        )


class TransportJobReadDTO(_Out):
    id: str
    order_id: str
    transporter_id: str
    quote: Decimal
    status: TransportStatus
    tracking: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, j: TransportJob) -> "TransportJobReadDTO":
        return cls(
            id=j.id,
            order_id=j.order_id,
            transporter_id=j.transporter_id,
            quote=j.quote,
            status=j.status,
            tracking=j.tracking,
            created_at=j.created_at,
            updated_at=j.updated_at,
        )
