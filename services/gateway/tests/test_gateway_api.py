"""Tests for the payment gateway sandbox (FastAPI ``TestClient``)."""

import hashlib
import hmac
import uuid


def _order(client, auth, amount=100000):
    r = client.post(
        "/v1/orders",
        json={"amount": amount, "currency": "INR", "receipt": "booking_1", "notes": {"booking_id": "b-1"}},
        auth=auth,
    )
    assert r.status_code == 200
    return r.json()


def _pay(client, order_id):
    r = client.post(f"/v1/orders/{order_id}/pay")
    assert r.status_code == 200
    return r.json()


def test_merchant_endpoints_require_basic_auth(client):
    r = client.post("/v1/orders", json={"amount": 1000, "currency": "INR"})
    assert r.status_code == 401

    r = client.post("/v1/orders", json={"amount": 1000, "currency": "INR"}, auth=("rzp_test_key", "wrong"))
    assert r.status_code == 401


def test_create_order_echoes_amount_and_notes(client, auth):
    order = _order(client, auth, amount=250050)
    assert order["id"].startswith("order_")
    assert order["amount"] == 250050
    assert order["status"] == "created"
    assert order["notes"] == {"booking_id": "b-1"}


def test_checkout_returns_signed_callback(client, auth):
    order = _order(client, auth)
    cb = _pay(client, order["id"])

    expected = hmac.new(
        b"sandbox-secret",
        f"{cb['razorpay_order_id']}|{cb['razorpay_payment_id']}".encode(),
        hashlib.sha256,
    ).hexdigest()
    assert cb["razorpay_order_id"] == order["id"]
    assert cb["razorpay_signature"] == expected

    payment = client.get(f"/v1/payments/{cb['razorpay_payment_id']}", auth=auth).json()
    assert payment["amount"] == 100000
    assert payment["status"] == "captured"


def test_order_cannot_be_paid_twice(client, auth):
    order = _order(client, auth)
    _pay(client, order["id"])
    r = client.post(f"/v1/orders/{order['id']}/pay")
    assert r.status_code == 400
    assert r.json()["error"]["reason"] == "order_already_paid"


def test_refund_bounded_by_capture(client, auth):
    order = _order(client, auth, amount=100000)
    pay_id = _pay(client, order["id"])["razorpay_payment_id"]

    r = client.post(f"/v1/payments/{pay_id}/refund", json={"amount": 60000}, auth=auth)
    assert r.status_code == 200
    assert r.json()["amount"] == 60000

    r = client.post(f"/v1/payments/{pay_id}/refund", json={"amount": 50000}, auth=auth)
    assert r.status_code == 400
    assert r.json()["error"]["reason"] == "refund_amount_greater_than_captured"

    r = client.post(f"/v1/payments/{pay_id}/refund", json={}, auth=auth)
    assert r.status_code == 200
    assert r.json()["amount"] == 40000

    payment = client.get(f"/v1/payments/{pay_id}", auth=auth).json()
    assert payment["amount_refunded"] == 100000
    assert payment["status"] == "refunded"


def test_refund_unknown_payment_is_404(client, auth):
    r = client.post("/v1/payments/pay_missing/refund", json={}, auth=auth)
    assert r.status_code == 404


def test_refund_idempotency_key_replays_and_conflicts(client, auth):
    order = _order(client, auth, amount=100000)
    pay_id = _pay(client, order["id"])["razorpay_payment_id"]
    key = f"refund-{uuid.uuid4()}"

    r1 = client.post(f"/v1/payments/{pay_id}/refund", json={"amount": 10000}, auth=auth,
                     headers={"Idempotency-Key": key})
    r2 = client.post(f"/v1/payments/{pay_id}/refund", json={"amount": 10000}, auth=auth,
                     headers={"Idempotency-Key": key})
    assert r1.status_code == r2.status_code == 200
    assert r1.json()["id"] == r2.json()["id"]
    assert client.get(f"/v1/payments/{pay_id}", auth=auth).json()["amount_refunded"] == 10000

    r3 = client.post(f"/v1/payments/{pay_id}/refund", json={"amount": 20000}, auth=auth,
                     headers={"Idempotency-Key": key})
    assert r3.status_code == 409


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "rid-123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "rid-123"
