import pytest

from apps.orders.adapters import ListingsStub
from apps.orders.errors import GatewayUnavailable
from apps.orders.models import IdempotencyKey, OrderModel
from apps.orders.tests.support import BUYER, ORDERS_URL, OTHER_BUYER


def _post(client, payload, key, headers=BUYER):
    return client.post(
        ORDERS_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **headers
    )


@pytest.mark.django_db
def test_retry_replays_first_response(client, listings):
    payload = {"listingId": "L1", "amount": 1000}
    r1 = _post(client, payload, "k-1")
    r2 = _post(client, payload, "k-1")

    assert r1.status_code == r2.status_code == 201
    assert r1.json()["id"] == r2.json()["id"]
    assert r2["Idempotent-Replay"] == "true"
    assert "Idempotent-Replay" not in r1
    assert OrderModel.objects.count() == 1
    assert str(IdempotencyKey.objects.get(key="k-1").order_id) == r1.json()["id"]


@pytest.mark.django_db
def test_same_key_different_payload_conflicts(client, listings):
    _post(client, {"listingId": "L1", "amount": 1000}, "k-2")
    r = _post(client, {"listingId": "L1", "amount": 900}, "k-2")
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_same_key_from_another_actor_conflicts(client, listings):
    payload = {"listingId": "L1", "amount": 1000}
    _post(client, payload, "k-3")
    r = _post(client, payload, "k-3", headers=OTHER_BUYER)
    assert r.status_code == 409


@pytest.mark.django_db
def test_client_errors_are_replayed(client, listings):
    payload = {"listingId": "L2", "amount": 500}
    r1 = _post(client, payload, "k-4")
    assert r1.status_code == 400

    r2 = _post(client, payload, "k-4")
    assert r2.status_code == 400
    assert r2.json()["detail"] == "LISTING_NOT_ACTIVE"
    assert r2["Idempotent-Replay"] == "true"


@pytest.mark.django_db
def test_upstream_failure_releases_the_key(client, listings, monkeypatch):
    def down(self, listing_id):
        raise GatewayUnavailable("GATEWAY_UNAVAILABLE", "listings unavailable")

    payload = {"listingId": "L1", "amount": 1000}
    with monkeypatch.context() as m:
        m.setattr(ListingsStub, "get_listing", down)
        assert _post(client, payload, "k-5").status_code == 502
    assert not IdempotencyKey.objects.filter(key="k-5").exists()

    r = _post(client, payload, "k-5")
    assert r.status_code == 201
    assert "Idempotent-Replay" not in r
