"""In-process stub adapters for the orders domain ports.

These stubs implement ``ListingsPort``, ``PaymentGatewayPort`` and
``NotifierPort`` without any network calls. They are intended for unit
tests and local development where deterministic behavior is useful and
the listing service and payment provider are not required. Signature
checks are real: the stub gateway signs with the configured key secret,
so forged callbacks are rejected exactly as in production.
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, Optional

from django.conf import settings

from .domain import Listing, ListingsPort, NotifierPort, Order, PaymentGatewayPort, PaymentIntent, Refund, money
from .errors import InvalidAmount
from .signing import payment_signature, signatures_match, webhook_signature

logger = logging.getLogger(__name__)


class ListingsStub(ListingsPort):
    """Stub implementation of ``ListingsPort`` backed by a class-level catalog.

    Tests populate ``catalog`` (typically through ``monkeypatch``) with the
    listings a scenario needs; unknown ids resolve to ``None``.
    """

    catalog: Dict[str, Listing] = {}

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        return self.catalog.get(listing_id)


class GatewayStub(PaymentGatewayPort):
    """Stub implementation of ``PaymentGatewayPort``.

    Gateway order, payment and refund ids are random but shaped like the
    provider's (``order_…``, ``pay_…``, ``rfnd_…``). Refund amounts are
    trusted: the lifecycle engine already bounds them by the captured
    amount before calling out.
    """

    def __init__(self, key_secret: str | None = None, webhook_secret: str | None = None, name: str | None = None):
        self.key_secret = key_secret or settings.GATEWAY_KEY_SECRET
        self.webhook_secret = webhook_secret or settings.GATEWAY_WEBHOOK_SECRET
        self.name = name or getattr(settings, "GATEWAY_NAME", "razorpay")

    def create_payment_intent(self, order_id: str, amount: Decimal, currency: str) -> PaymentIntent:
        if amount is None or amount <= 0:
            raise InvalidAmount("INVALID_AMOUNT", "Amount must be greater than zero")
        return PaymentIntent(
            gateway_order_id=f"order_{uuid.uuid4().hex[:14]}",
            amount=money(amount),
            currency=currency,
        )

    def verify_callback_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        expected = payment_signature(self.key_secret, gateway_order_id, gateway_payment_id)
        return signatures_match(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        return signatures_match(webhook_signature(self.webhook_secret, body), signature)

    def issue_refund(self, gateway_payment_id: str, amount: Optional[Decimal] = None) -> Refund:
        return Refund(
            refund_id=f"rfnd_{uuid.uuid4().hex[:14]}",
            status="processed",
            amount=money(amount) if amount is not None else Decimal("0.00"),
        )

    def sign(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        """Produce the signature the provider's checkout would return."""
        return payment_signature(self.key_secret, gateway_order_id, gateway_payment_id)


class LoggingNotifier(NotifierPort):
    """Notification dispatch that only writes a structured log line.

    Email and SMS delivery live outside this service; the log line is what
    the delivery worker tails.
    """

    def notify(self, event: str, order: Order, **data) -> None:
        logger.info(
            "order notification",
            extra={
                "event": event,
                "order_id": order.id,
                "buyer_id": order.buyer_id,
                "seller_id": order.seller_id,
                "status": order.status.value,
                **data,
            },
        )
