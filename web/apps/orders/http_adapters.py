"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements concrete HTTP clients for the domain ports using
``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per downstream service (listings, payment provider) to
    avoid hammering unhealthy dependencies, with a HALF_OPEN trial call after a
    timeout.
- Simple retry policy with exponential backoff for transport errors and 5xx.
- Refund idempotency: every ``issue_refund`` call sends one
    ``Idempotency-Key`` across all of its retries so the provider never
    refunds twice for a single request.

Transport failures, exhausted retries and open circuits all surface as
``GatewayUnavailable``; calls never block longer than the configured
timeout times the retry budget.
"""

import threading
import time
import uuid
from decimal import Decimal
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import (
    Listing,
    ListingsPort,
    PaymentGatewayPort,
    PaymentIntent,
    Refund,
    from_minor_units,
    money,
    to_minor_units,
)
from .errors import GatewayError, GatewayUnavailable, InvalidAmount, RefundExceedsCapture
from .signing import payment_signature, signatures_match, webhook_signature

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful trial call; stays HALF_OPEN while a
      single trial call is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Raises:
            GatewayUnavailable: If the circuit is OPEN or a HALF_OPEN trial call
                is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise GatewayUnavailable("GATEWAY_UNAVAILABLE", f"{self.name} circuit open")
            if st == "HALF_OPEN":
                if self._half_open_trial_in_flight:
                    raise GatewayUnavailable("GATEWAY_UNAVAILABLE", f"{self.name} circuit half-open")
                self._half_open_trial_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_trial_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_trial_in_flight = False


# Per-service instances
_listings_cb = CircuitBreaker(
    "listings",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)
_gateway_cb = CircuitBreaker(
    "payment-gateway",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # Retry only on transport errors or 5xx
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def _call(breaker: CircuitBreaker, client: httpx.Client, method: str, url: str,
          headers: dict, **kwargs) -> httpx.Response:
    """Send one logical request through the breaker with retries.

    Any response below 500 is returned to the caller for business mapping
    and counts as a success for the breaker.

    Raises:
        GatewayUnavailable: On open circuit, or when transport errors / 5xx
            persist after the retry budget.
    """
    max_retries, backoff = _retry_policy()
    tries = 0
    state = breaker.before_call()
    headers = {**headers, "X-Circuit-State": state, "X-Retry-Count": "0"}
    try:
        while True:
            resp = None
            exc = None
            try:
                resp = client.request(method, url, headers=headers, **kwargs)
                if not _should_retry(resp, None):
                    breaker.on_success()
                    return resp
            except httpx.RequestError as e:
                exc = e

            tries += 1
            headers["X-Retry-Count"] = str(tries)
            if tries > max_retries:
                breaker.on_failure()
                raise GatewayUnavailable("GATEWAY_UNAVAILABLE", f"{breaker.name} unavailable")

            sleep_s = backoff * (2 ** (tries - 1))
            cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
            time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


def _error_body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return (data or {}).get("error") or {}


# ---------------- Listings Adapter ---------------- #

class HttpListingsClient(ListingsPort):
    """HTTP client for the listings service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.LISTINGS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Fetch a listing; 404 maps to ``None``.

        Raises:
            GatewayUnavailable: When the listings service cannot be reached.
            GatewayError: For unexpected 4xx responses.
        """
        with httpx.Client(timeout=self.timeout) as client:
            resp = _call(_listings_cb, client, "GET", f"{self.base_url}/listings/{listing_id}", _request_headers())
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise GatewayError("LISTINGS_ERROR", "Listing lookup failed", http_status=502)
        data = resp.json()
        return Listing(
            id=str(data["id"]),
            status=data.get("status", ""),
            price=money(data.get("price", 0)),
            seller_id=str(data["seller_id"]),
            currency=data.get("currency", "INR"),
        )


# ---------------- Payment Gateway Adapter ---------------- #

class RazorpayGatewayClient(PaymentGatewayPort):
    """HTTP client for a Razorpay-compatible payment provider.

    Amounts cross the wire in integer minor units (paise). Requests use
    HTTP basic auth with the key id and key secret; signatures are checked
    locally and never require a network call.
    """

    name = "razorpay"

    def __init__(self, base_url: str | None = None, key_id: str | None = None, key_secret: str | None = None,
                 webhook_secret: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.GATEWAY_BASE_URL
        self.key_id = key_id or settings.GATEWAY_KEY_ID
        self.key_secret = key_secret or settings.GATEWAY_KEY_SECRET
        self.webhook_secret = webhook_secret or settings.GATEWAY_WEBHOOK_SECRET
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.name = getattr(settings, "GATEWAY_NAME", self.name)

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, auth=(self.key_id, self.key_secret))

    def create_payment_intent(self, order_id: str, amount: Decimal, currency: str) -> PaymentIntent:
        """Create a provider order for ``amount``.

        Raises:
            InvalidAmount: If ``amount`` is not positive.
            GatewayUnavailable: If the provider cannot be reached.
            GatewayError: If the provider rejects the request.
        """
        if amount is None or amount <= 0:
            raise InvalidAmount("INVALID_AMOUNT", "Amount must be greater than zero")
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": f"booking_{order_id}",
            "notes": {"booking_id": order_id},
        }
        with self._client() as client:
            resp = _call(_gateway_cb, client, "POST", f"{self.base_url}/v1/orders", _request_headers(), json=payload)
        if resp.status_code != 200:
            raise GatewayError("GATEWAY_REJECTED", _error_body(resp).get("description", "Payment order rejected"))
        data = resp.json()
        return PaymentIntent(
            gateway_order_id=data["id"],
            amount=from_minor_units(data["amount"]),
            currency=data.get("currency", currency),
        )

    def verify_callback_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        expected = payment_signature(self.key_secret, gateway_order_id, gateway_payment_id)
        return signatures_match(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        return signatures_match(webhook_signature(self.webhook_secret, body), signature)

    def issue_refund(self, gateway_payment_id: str, amount: Optional[Decimal] = None) -> Refund:
        """Refund a captured payment.

        Raises:
            RefundExceedsCapture: When the provider reports the amount is
                larger than what was captured.
            GatewayUnavailable: If the provider cannot be reached.
            GatewayError: For other rejections.
        """
        payload = {}
        if amount is not None:
            payload["amount"] = to_minor_units(amount)
        headers = _request_headers({"Idempotency-Key": f"refund-{uuid.uuid4()}"})
        with self._client() as client:
            resp = _call(
                _gateway_cb, client, "POST", f"{self.base_url}/v1/payments/{gateway_payment_id}/refund",
                headers, json=payload,
            )
        if resp.status_code == 200:
            data = resp.json()
            return Refund(
                refund_id=data["id"],
                status=data.get("status", "processed"),
                amount=from_minor_units(data.get("amount", 0)),
            )
        err = _error_body(resp)
        description = err.get("description", "")
        if err.get("reason") == "refund_amount_greater_than_captured" or "greater than" in description.lower():
            raise RefundExceedsCapture("REFUND_EXCEEDS_CAPTURE", "Refund exceeds captured amount")
        raise GatewayError("REFUND_REJECTED", description or "Refund rejected")
