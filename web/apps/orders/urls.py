from django.urls import path

from .views import (
    AdvancePaymentView,
    OrderDetailView,
    OrderPaymentsView,
    OrderRefundView,
    OrdersCollectionView,
    OrdersPingView,
    OrderStatsView,
    OrderStatusView,
    OrderTrackingView,
    OrderTransitionsView,
    PaymentCreateView,
    PaymentVerifyView,
    PaymentWebhookView,
    TransportAcceptView,
    TransportCollectionView,
    TransportDetailView,
    TransportQuoteView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("payments/", OrderPaymentsView.as_view(), name="orders-payments"),
    path("stats/", OrderStatsView.as_view(), name="orders-stats"),
    path("<str:oid>/", OrderDetailView.as_view(), name="orders-detail"),  # GET / DELETE (cancel)
    path("<str:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<str:oid>/tracking/", OrderTrackingView.as_view(), name="orders-tracking"),
    path("<str:oid>/refund/", OrderRefundView.as_view(), name="orders-refund"),
    path("<str:oid>/transitions/", OrderTransitionsView.as_view(), name="orders-transitions"),
]

booking_urlpatterns = [
    path("payment/create/", PaymentCreateView.as_view(), name="payment-create"),
    path("payment/verify/", PaymentVerifyView.as_view(), name="payment-verify"),
    path("payment/webhook/", PaymentWebhookView.as_view(), name="payment-webhook"),
    path("advance-payment/", AdvancePaymentView.as_view(), name="advance-payment"),
]

transport_urlpatterns = [
    path("", TransportCollectionView.as_view(), name="transport-collection"),
    path("quote/", TransportQuoteView.as_view(), name="transport-quote"),
    path("accept/", TransportAcceptView.as_view(), name="transport-accept"),
    path("<str:jid>/", TransportDetailView.as_view(), name="transport-detail"),
]
