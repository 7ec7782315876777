"""Unit tests for the HTTP adapters to the listings service and payment provider.

These tests verify that the clients convert money to minor units, map
provider responses onto domain results and errors, and forward the
request id, by monkeypatching ``httpx.Client.request``.
"""
from decimal import Decimal

import httpx
import pytest

from apps.orders.errors import GatewayError, InvalidAmount, RefundExceedsCapture
from apps.orders.http_adapters import HttpListingsClient, RazorpayGatewayClient, _gateway_cb, _listings_cb
from apps.orders.signing import payment_signature, webhook_signature
from gateway.middleware import REQUEST_ID_CTX


class DummyResp:
    """Minimal httpx-like response stub for adapter tests.

    Args:
        status_code (int): HTTP status code to simulate.
        json_data (dict | None): JSON body to return from ``json()``.
    """
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json


class Recorder(list):
    reply = DummyResp(200)


@pytest.fixture(autouse=True)
def closed_breakers():
    _listings_cb.on_success()
    _gateway_cb.on_success()
    yield
    _listings_cb.on_success()
    _gateway_cb.on_success()


@pytest.fixture
def sent(monkeypatch):
    """Install a fake transport answering with ``sent.reply`` and record each request."""
    recorder = Recorder()

    def fake_request(self, method, url, headers=None, json=None, **kw):
        recorder.append({"method": method, "url": url, "headers": dict(headers or {}), "json": json, "auth": self.auth})
        return recorder.reply

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return recorder


def _gateway():
    return RazorpayGatewayClient(base_url="http://gw", key_id="rzp_test", key_secret="secret", webhook_secret="wh")


def test_listing_found(sent):
    sent.reply = DummyResp(200, {"id": "L1", "status": "active", "price": "1200.5", "seller_id": "S1"})
    listing = HttpListingsClient(base_url="http://listings").get_listing("L1")

    assert sent[0]["method"] == "GET"
    assert sent[0]["url"] == "http://listings/listings/L1"
    assert listing.id == "L1"
    assert listing.is_active
    assert listing.price == Decimal("1200.50")
    assert listing.seller_id == "S1"


def test_missing_listing_is_none(sent):
    sent.reply = DummyResp(404, {"detail": "not found"})
    assert HttpListingsClient(base_url="http://listings").get_listing("nope") is None


def test_unexpected_listing_response(sent):
    sent.reply = DummyResp(403)
    with pytest.raises(GatewayError) as exc:
        HttpListingsClient(base_url="http://listings").get_listing("L1")
    assert exc.value.code == "LISTINGS_ERROR"
    assert exc.value.http_status == 502


def test_payment_intent_amount_in_paise(sent):
    sent.reply = DummyResp(200, {"id": "order_abc", "amount": 100050, "currency": "INR"})
    intent = _gateway().create_payment_intent("o-1", Decimal("1000.50"), "INR")

    req = sent[0]
    assert req["url"] == "http://gw/v1/orders"
    assert req["json"] == {
        "amount": 100050,
        "currency": "INR",
        "receipt": "booking_o-1",
        "notes": {"booking_id": "o-1"},
    }
    assert isinstance(req["auth"], httpx.BasicAuth)
    assert intent.gateway_order_id == "order_abc"
    assert intent.amount == Decimal("1000.50")


def test_payment_intent_rejects_non_positive_amount(sent):
    with pytest.raises(InvalidAmount):
        _gateway().create_payment_intent("o-1", Decimal("0"), "INR")
    assert sent == []


def test_payment_intent_rejected_by_provider(sent):
    sent.reply = DummyResp(400, {"error": {"code": "BAD_REQUEST_ERROR", "description": "currency not supported"}})
    with pytest.raises(GatewayError) as exc:
        _gateway().create_payment_intent("o-1", Decimal("10"), "XYZ")
    assert exc.value.code == "GATEWAY_REJECTED"
    assert exc.value.message == "currency not supported"


def test_request_id_is_forwarded(sent):
    sent.reply = DummyResp(404)
    token = REQUEST_ID_CTX.set("rid-77")
    try:
        HttpListingsClient(base_url="http://listings").get_listing("L1")
    finally:
        REQUEST_ID_CTX.reset(token)
    assert sent[0]["headers"]["X-Request-ID"] == "rid-77"


def test_partial_refund_sends_amount_and_idempotency_key(sent):
    sent.reply = DummyResp(200, {"id": "rfnd_1", "amount": 40000, "status": "processed"})
    refund = _gateway().issue_refund("pay_1", Decimal("400"))

    req = sent[0]
    assert req["url"] == "http://gw/v1/payments/pay_1/refund"
    assert req["json"] == {"amount": 40000}
    assert req["headers"]["Idempotency-Key"].startswith("refund-")
    assert refund.refund_id == "rfnd_1"
    assert refund.amount == Decimal("400.00")


def test_full_refund_sends_no_amount(sent):
    sent.reply = DummyResp(200, {"id": "rfnd_2", "amount": 100000})
    _gateway().issue_refund("pay_1")
    assert sent[0]["json"] == {}


def test_refund_above_capture_maps_to_domain_error(sent):
    sent.reply = DummyResp(400, {"error": {
        "code": "BAD_REQUEST_ERROR",
        "reason": "refund_amount_greater_than_captured",
        "description": "The refund amount provided is greater than amount captured",
    }})
    with pytest.raises(RefundExceedsCapture):
        _gateway().issue_refund("pay_1", Decimal("5000"))


def test_other_refund_rejection(sent):
    sent.reply = DummyResp(400, {"error": {"description": "payment not captured"}})
    with pytest.raises(GatewayError) as exc:
        _gateway().issue_refund("pay_1")
    assert exc.value.code == "REFUND_REJECTED"


def test_signatures_are_checked_locally(sent):
    gw = _gateway()
    assert gw.verify_callback_signature("order_1", "pay_1", payment_signature("secret", "order_1", "pay_1"))
    assert not gw.verify_callback_signature("order_1", "pay_1", payment_signature("other", "order_1", "pay_1"))
    assert gw.verify_webhook_signature(b"{}", webhook_signature("wh", b"{}"))
    assert sent == []
