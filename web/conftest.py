import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.ORDERS_REQUIRE_PAYMENT_BEFORE_DELIVERY = False
    settings.GATEWAY_KEY_SECRET = "test-key-secret"
    settings.GATEWAY_WEBHOOK_SECRET = "test-webhook-secret"
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0


@pytest.fixture(autouse=True)
def reset_throttles():
    # Scoped throttle counters live in the default cache
    cache.clear()
    yield
    cache.clear()
