"""Edge concerns: health, request ids, payload limits, logging and notifications."""

import logging

import httpx
import pytest

from apps.orders.adapters import LoggingNotifier
from apps.orders.tests.support import BUYER, ORDERS_URL, SELLER, status_url
from gateway.logging_filters import RequestIdFilter
from gateway.middleware import REQUEST_ID_CTX

HEALTH_URL = "/api/health/"


@pytest.mark.django_db
def test_health_reports_database(client):
    r = client.get(HEALTH_URL)
    assert r.status_code == 200
    assert r.json() == {"ok": True, "components": {"db": {"ok": True}}}


@pytest.mark.django_db
def test_deep_health_checks_upstreams(client, settings, monkeypatch):
    settings.USE_HTTP_ADAPTERS = True
    settings.LISTINGS_BASE_URL = "http://listings"
    settings.GATEWAY_BASE_URL = "http://gw"

    def fake_get(url, **kwargs):
        if url.startswith("http://gw"):
            raise httpx.ConnectError("down")
        return httpx.Response(200, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", fake_get)

    r = client.get(HEALTH_URL, {"deep": "1"})
    assert r.status_code == 503
    assert r.json()["components"] == {"db": {"ok": True}, "listings": {"ok": True}, "gateway": {"ok": False}}


def test_request_id_generated_when_missing(client):
    r = client.get(f"{ORDERS_URL}ping/")
    assert len(r["X-Request-ID"]) == 36


def test_request_id_echoed(client):
    r = client.get(f"{ORDERS_URL}ping/", HTTP_X_REQUEST_ID="abc-123")
    assert r["X-Request-ID"] == "abc-123"


def test_oversized_api_body_is_rejected(client, settings):
    settings.API_MAX_BYTES = 64
    r = client.post(ORDERS_URL, data={"notes": "x" * 200}, content_type="application/json", **BUYER)
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"


def test_request_id_filter_stamps_records():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    token = REQUEST_ID_CTX.set("rid-9")
    try:
        RequestIdFilter().filter(record)
    finally:
        REQUEST_ID_CTX.reset(token)
    assert record.request_id == "rid-9"

    outside = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    RequestIdFilter().filter(outside)
    assert outside.request_id == "-"


@pytest.mark.django_db
def test_notifications_sent_after_commit(client, listings, monkeypatch, django_capture_on_commit_callbacks):
    events = []
    monkeypatch.setattr(LoggingNotifier, "notify", lambda self, event, order, **data: events.append(event))

    with django_capture_on_commit_callbacks(execute=True):
        r = client.post(ORDERS_URL, data={"listingId": "L1", "amount": 1000}, content_type="application/json", **BUYER)
    assert r.status_code == 201

    with django_capture_on_commit_callbacks(execute=True):
        client.patch(status_url(r.json()["id"]), data={"status": "confirmed"}, content_type="application/json",
                     **SELLER)
    assert events == ["order.created", "order.confirmed"]


@pytest.mark.django_db
def test_failed_notification_does_not_fail_request(client, listings, monkeypatch, caplog,
                                                   django_capture_on_commit_callbacks):
    def boom(self, event, order, **data):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(LoggingNotifier, "notify", boom)

    with caplog.at_level(logging.ERROR, logger="apps.orders.lifecycle"):
        with django_capture_on_commit_callbacks(execute=True):
            r = client.post(ORDERS_URL, data={"listingId": "L1", "amount": 1000}, content_type="application/json",
                            **BUYER)
    assert r.status_code == 201
    assert any(rec.getMessage() == "notification failed" for rec in caplog.records)
