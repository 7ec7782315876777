"""Domain models and ports for the order/booking lifecycle.

This module contains the closed enumerations for every status axis,
simple dataclasses used as DTOs between the store, the lifecycle engine
and the views, and protocol definitions (ports) for the collaborators the
engine consumes: listing lookup, the payment gateway and notification
dispatch.

Money is carried as ``Decimal`` in major currency units (rupees for INR).
Conversion to integer minor units happens at the gateway boundary only.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Protocol

TWO_PLACES = Decimal("0.01")


def money(value) -> Decimal:
    """Normalize a numeric value to a two-place ``Decimal``."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount into integer minor units (paise)."""
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return money(Decimal(int(amount)) / 100)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Order status axis.

    The forward path is ``PENDING`` to ``DELIVERED``; ``CANCELLED`` and
    ``REFUNDED`` are terminal side exits.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Position on the forward path; side exits are absent.
FORWARD_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.SHIPPED: 3,
    OrderStatus.OUT_FOR_DELIVERY: 4,
    OrderStatus.DELIVERED: 5,
}


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class TransportStatus(str, Enum):
    ASSIGNED = "assigned"
    PICKED = "picked"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"


TRANSPORT_RANK = {
    TransportStatus.ASSIGNED: 0,
    TransportStatus.PICKED: 1,
    TransportStatus.IN_TRANSIT: 2,
    TransportStatus.DELIVERED: 3,
}


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    TRANSPORTER = "transporter"
    ADMIN = "admin"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Actor:
    """Authenticated caller, resolved once at the HTTP boundary.

    Attributes:
        id: Opaque user identifier issued by the auth service.
        role: The caller's ``Role``.
    """

    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


SYSTEM_ACTOR = Actor(id="system", role=Role.ADMIN)


@dataclass(frozen=True)
class Listing:
    """The slice of a marketplace listing the order engine needs."""

    id: str
    status: str
    price: Decimal
    seller_id: str
    currency: str = "INR"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class Decision:
    """Outcome of an access-control check.

    Attributes:
        allowed: Whether the action may proceed.
        reason: Error code explaining a denial, ``None`` when allowed.
    """

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)


@dataclass(frozen=True)
class PaymentIntent:
    gateway_order_id: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class Refund:
    refund_id: str
    status: str
    amount: Decimal


@dataclass
class PaymentDetails:
    """Details of the most recent verified gateway payment."""

    transaction_id: str
    gateway_order_id: str
    signature: str
    gateway: str
    settled_at: datetime


@dataclass
class TrackingInfo:
    carrier: str = ""
    tracking_number: str = ""
    estimated_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None


@dataclass
class PaymentRecord:
    """One gateway payment applied to an order.

    ``gateway_payment_id`` is unique across all orders; it is the key the
    engine uses to recognise retried callbacks.
    """

    gateway_payment_id: str
    gateway_order_id: str
    amount: Decimal
    kind: str = "full"  # full | advance
    refunded_amount: Decimal = Decimal("0.00")
    created_at: Optional[datetime] = None
    order_id: Optional[str] = None

    @property
    def refundable(self) -> Decimal:
        return money(self.amount - self.refunded_amount)


@dataclass
class Order:
    """One buyer's purchase of one listing from one seller.

    Attributes:
        id: Persistent identifier, ``None`` until saved.
        listing_id, buyer_id, seller_id: Opaque references fixed at creation.
        quantity, unit_price, amount, shipping_cost, total_amount:
            Commercial fields; ``total_amount == amount + shipping_cost``.
        advance_amount: Amount settled as advance payments.
        captured_amount: Everything the gateway has captured so far.
        intent_gateway_order_id, intent_amount: The open payment intent a
            later callback must bind to.
        version: Optimistic concurrency counter, bumped on every write.
    """

    id: Optional[str]
    listing_id: str
    buyer_id: str
    seller_id: str
    quantity: int = 1
    unit_price: Decimal = Decimal("0.00")
    amount: Decimal = Decimal("0.00")
    shipping_cost: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    currency: str = "INR"
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    advance_amount: Decimal = Decimal("0.00")
    captured_amount: Decimal = Decimal("0.00")
    intent_gateway_order_id: Optional[str] = None
    intent_amount: Optional[Decimal] = None
    payment_details: Optional[PaymentDetails] = None
    tracking_info: Optional[TrackingInfo] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_status: Optional[RefundStatus] = None
    refund_ids: List[str] = field(default_factory=list)
    notes: str = ""
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def outstanding(self) -> Decimal:
        return money(max(self.total_amount - self.captured_amount, Decimal("0")))


@dataclass
class TransportJob:
    """A transporter's commitment to deliver one order."""

    id: Optional[str]
    order_id: str
    transporter_id: str
    quote: Decimal
    status: TransportStatus = TransportStatus.ASSIGNED
    tracking: str = ""
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Transition:
    """Audit row for one status change of an order."""

    from_status: str
    to_status: str
    actor_id: str
    actor_role: str
    reason: str
    created_at: Optional[datetime] = None


# ---- Ports (DIP) ----
class ListingsPort(Protocol):
    """Port describing listing lookup used by the domain."""

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Fetch a listing by id.

        Returns:
            The listing, or None when it does not exist.

        Raises:
            GatewayUnavailable: When the listing service cannot be reached.
        """
        raise NotImplementedError()


class PaymentGatewayPort(Protocol):
    """Port describing the external payment provider.

    Implementations are stateless; they never touch the order store.
    """

    name: str

    def create_payment_intent(self, order_id: str, amount: Decimal, currency: str) -> PaymentIntent:
        """Create a gateway order the client can pay against.

        Raises:
            InvalidAmount: If ``amount`` is not positive.
            GatewayUnavailable: If the provider cannot be reached.
        """
        raise NotImplementedError()

    def verify_callback_signature(self, gateway_order_id: str, gateway_payment_id: str,
                                  signature: str) -> bool:
        """Check the keyed hash of ``gateway_order_id|gateway_payment_id``."""
        raise NotImplementedError()

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        raise NotImplementedError()

    def issue_refund(self, gateway_payment_id: str, amount: Optional[Decimal] = None) -> Refund:
        """Refund a captured payment; omit ``amount`` for a full refund.

        Raises:
            RefundExceedsCapture: If the gateway rejects the amount.
            GatewayUnavailable: If the provider cannot be reached.
        """
        raise NotImplementedError()


class NotifierPort(Protocol):
    """Fire-and-forget notification dispatch (email, SMS, push)."""

    def notify(self, event: str, order: Order, **data) -> None:
        raise NotImplementedError()
