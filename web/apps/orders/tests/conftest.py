from decimal import Decimal

import pytest

from apps.orders.adapters import GatewayStub, ListingsStub
from apps.orders.domain import Listing
from apps.orders.tests.support import BUYER, ORDERS_URL, PAY_CREATE_URL, PAY_VERIFY_URL


@pytest.fixture
def listings(monkeypatch):
    catalog = {
        "L1": Listing(id="L1", status="active", price=Decimal("1000.00"), seller_id="S1"),
        "L2": Listing(id="L2", status="sold", price=Decimal("500.00"), seller_id="S1"),
        "L3": Listing(id="L3", status="active", price=Decimal("250.00"), seller_id="B1"),
    }
    monkeypatch.setattr(ListingsStub, "catalog", catalog)
    return catalog


@pytest.fixture
def gateway():
    return GatewayStub()


@pytest.fixture
def create_order(client, listings):
    def _create(amount="1000", headers=BUYER, **extra):
        payload = {"listingId": "L1", "amount": amount, **extra}
        r = client.post(ORDERS_URL, data=payload, content_type="application/json", **headers)
        assert r.status_code == 201, r.json()
        return r.json()

    return _create


@pytest.fixture
def pay(client, gateway):
    """Run the checkout round trip: payment intent, then signed verify."""

    def _pay(order_id, amount="1000", payment_id="pay_test_1", headers=BUYER):
        r = client.get(PAY_CREATE_URL, {"booking_id": order_id, "amount": amount}, **headers)
        assert r.status_code == 200, r.json()
        gateway_order_id = r.json()["gateway_order_id"]
        return client.get(
            PAY_VERIFY_URL,
            {
                "booking_id": order_id,
                "gateway_payment_id": payment_id,
                "gateway_order_id": gateway_order_id,
                "signature": gateway.sign(gateway_order_id, payment_id),
            },
            **headers,
        )

    return _pay


@pytest.fixture
def paid_order(create_order, pay):
    order = create_order()
    r = pay(order["id"])
    assert r.status_code == 200, r.json()
    return r.json()["order"]

