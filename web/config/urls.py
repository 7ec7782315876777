from django.urls import include, path

from apps.orders.urls import booking_urlpatterns, transport_urlpatterns

urlpatterns = [
    path("api/orders/", include("apps.orders.urls")),
    path("api/bookings/", include((booking_urlpatterns, "bookings"))),
    path("api/transport/", include((transport_urlpatterns, "transport"))),
    path("api/", include("apps.monitoring.urls")),
]
