import json
from decimal import Decimal

import pytest

from apps.orders.adapters import GatewayStub
from apps.orders.errors import GatewayUnavailable
from apps.orders.models import OrderPaymentModel, OrderTransitionModel
from apps.orders.signing import webhook_signature
from apps.orders.tests.support import ADMIN, BUYER, SELLER, WEBHOOK_URL, detail_url, status_url


def _refund(client, order_id, headers=ADMIN, **payload):
    return client.post(f"{detail_url(order_id)}refund/", data=payload, content_type="application/json", **headers)


@pytest.mark.django_db
def test_admin_refunds_cancelled_order_in_full(client, paid_order):
    client.delete(detail_url(paid_order["id"]), **BUYER)

    r = _refund(client, paid_order["id"])
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "refunded"
    assert body["paymentStatus"] == "refunded"
    assert body["refundStatus"] == "processed"
    assert body["refundAmount"] == "1000.00"

    payment = OrderPaymentModel.objects.get(order_id=paid_order["id"])
    assert payment.refunded_amount == Decimal("1000.00")
    assert OrderTransitionModel.objects.filter(
        order_id=paid_order["id"], from_status="cancelled", to_status="refunded"
    ).exists()


@pytest.mark.django_db
def test_refund_through_status_patch(client, paid_order):
    r = client.patch(
        status_url(paid_order["id"]), data={"status": "refunded"}, content_type="application/json", **ADMIN
    )
    assert r.status_code == 200
    assert r.json()["status"] == "refunded"
    assert r.json()["refundAmount"] == "1000.00"


@pytest.mark.django_db
def test_partial_refunds_add_up(client, paid_order):
    oid = paid_order["id"]
    r = _refund(client, oid, amount="400")
    assert r.status_code == 200
    assert r.json()["refundAmount"] == "400.00"
    assert r.json()["status"] == "refunded"

    r = _refund(client, oid, amount="600")
    assert r.status_code == 200
    assert r.json()["refundAmount"] == "1000.00"
    assert OrderTransitionModel.objects.filter(order_id=oid, to_status="refunded").count() == 1

    r = _refund(client, oid)
    assert r.status_code == 400
    assert r.json()["detail"] == "NOTHING_TO_REFUND"


@pytest.mark.django_db
def test_refund_cannot_exceed_capture(client, paid_order):
    r = _refund(client, paid_order["id"], amount="1000.01")
    assert r.status_code == 400
    assert r.json()["detail"] == "REFUND_EXCEEDS_CAPTURE"
    assert client.get(detail_url(paid_order["id"]), **ADMIN).json()["status"] == "confirmed"


@pytest.mark.django_db
def test_unpaid_order_has_nothing_to_refund(client, create_order):
    order = create_order()
    r = _refund(client, order["id"])
    assert r.status_code == 400
    assert r.json()["detail"] == "NOTHING_TO_REFUND"


@pytest.mark.django_db
@pytest.mark.parametrize("headers", [BUYER, SELLER])
def test_only_admins_refund(client, paid_order, headers):
    r = _refund(client, paid_order["id"], headers=headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "ONLY_ADMIN_CAN_REFUND"


@pytest.mark.django_db
def test_gateway_outage_leaves_order_untouched(client, paid_order, monkeypatch):
    def down(self, gateway_payment_id, amount=None):
        raise GatewayUnavailable("GATEWAY_UNAVAILABLE", "Payment gateway unavailable")

    monkeypatch.setattr(GatewayStub, "issue_refund", down)

    r = _refund(client, paid_order["id"])
    assert r.status_code == 502
    assert r.json()["detail"] == "GATEWAY_UNAVAILABLE"

    current = client.get(detail_url(paid_order["id"]), **ADMIN).json()
    assert current["status"] == "confirmed"
    assert current["paymentStatus"] == "paid"
    assert current["refundStatus"] is None
    assert current["version"] == paid_order["version"]


@pytest.mark.django_db
def test_interrupted_refund_books_what_the_gateway_accepted(client, create_order, pay, monkeypatch):
    order = create_order()
    assert pay(order["id"], amount="400", payment_id="pay_a").status_code == 200
    assert pay(order["id"], amount="600", payment_id="pay_b").status_code == 200

    original = GatewayStub.issue_refund

    def flaky(self, gateway_payment_id, amount=None):
        if gateway_payment_id == "pay_b":
            raise GatewayUnavailable("GATEWAY_UNAVAILABLE", "Payment gateway unavailable")
        return original(self, gateway_payment_id, amount)

    monkeypatch.setattr(GatewayStub, "issue_refund", flaky)

    r = _refund(client, order["id"])
    assert r.status_code == 502
    assert OrderPaymentModel.objects.get(gateway_payment_id="pay_a").refunded_amount == Decimal("400.00")
    assert OrderPaymentModel.objects.get(gateway_payment_id="pay_b").refunded_amount == Decimal("0.00")
    assert client.get(detail_url(order["id"]), **ADMIN).json()["status"] == "confirmed"

    monkeypatch.setattr(GatewayStub, "issue_refund", original)
    r = _refund(client, order["id"])
    assert r.status_code == 200
    assert r.json()["refundAmount"] == "1000.00"


@pytest.mark.django_db
def test_late_payment_on_refunded_order_owes_only_new_money(client, settings, paid_order):
    oid = paid_order["id"]
    assert _refund(client, oid).json()["refundAmount"] == "1000.00"

    event = {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {"id": "pay_late", "order_id": "order_late", "amount": 30000, "notes": {"booking_id": oid}}
            }
        },
    }
    body = json.dumps(event).encode()
    r = client.post(
        WEBHOOK_URL,
        data=body,
        content_type="application/json",
        HTTP_X_RAZORPAY_SIGNATURE=webhook_signature(settings.GATEWAY_WEBHOOK_SECRET, body),
    )
    assert r.json()["status"] == "applied"

    current = client.get(detail_url(oid), **ADMIN).json()
    assert current["status"] == "refunded"
    assert current["capturedAmount"] == "1300.00"
    assert current["refundAmount"] == "300.00"
    assert current["refundStatus"] == "pending"

    r = _refund(client, oid)
    assert r.status_code == 200
    assert r.json()["refundAmount"] == "1000.00"
    assert r.json()["refundStatus"] == "processed"
    assert OrderPaymentModel.objects.get(gateway_payment_id="pay_late").refunded_amount == Decimal("300.00")
