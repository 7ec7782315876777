"""Service provider helpers for wiring the orders services with ports.

``get_lifecycle_service`` and ``get_transport_service`` return configured
service instances. When ``settings.USE_HTTP_ADAPTERS`` is truthy the
lifecycle engine talks to the listing service and the payment provider
over HTTP; otherwise it uses the in-process stubs suitable for tests and
local development.
"""

from django.conf import settings

from .adapters import GatewayStub, ListingsStub, LoggingNotifier
from .http_adapters import HttpListingsClient, RazorpayGatewayClient
from .lifecycle import OrderLifecycleService
from .transport import TransportService


def get_lifecycle_service() -> OrderLifecycleService:
    """Return an ``OrderLifecycleService`` wired for the current settings."""
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return OrderLifecycleService(
            listings=HttpListingsClient(),
            gateway=RazorpayGatewayClient(),
            notifier=LoggingNotifier(),
        )

    return OrderLifecycleService(
        listings=ListingsStub(),
        gateway=GatewayStub(),
        notifier=LoggingNotifier(),
    )


def get_transport_service() -> TransportService:
    return TransportService(notifier=LoggingNotifier())
