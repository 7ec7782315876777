"""HTTP views for orders, booking payments and transport jobs.

Views are kept intentionally small: they validate the request with a
Pydantic schema, resolve the calling ``Actor`` (set on ``request.user`` by
``gateway.auth.ActorHeaderAuthentication``), delegate to the lifecycle or
transport service, and render the result with a read schema. Domain
errors propagate to the project's DRF exception handler, which renders
``{"detail": CODE, "message": ...}``.

Services are obtained through ``providers`` on every request so tests and
local development can swap adapters without changing view logic.

Idempotency: ``POST /orders`` honours an ``Idempotency-Key`` header. The
first request stores its response; retries with the same payload replay
it with ``Idempotent-Replay: true``; the same key with a different payload
returns 409 ``IDEMPOTENCY_CONFLICT``.
"""

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .errors import DomainError, render_error
from .idempotency import finalize, get_or_create_idempotent
from .schemas import (
    AdvancePaymentDTO,
    CancelDTO,
    CreateOrderDTO,
    ListQuery,
    OrderListQuery,
    OrderReadDTO,
    OrderStatsReadDTO,
    PaymentCreateQuery,
    PaymentRecordReadDTO,
    PaymentVerifyQuery,
    RefundDTO,
    StatusUpdateDTO,
    TrackingUpdateDTO,
    TransitionReadDTO,
    TransportAcceptDTO,
    TransportJobReadDTO,
    TransportListQuery,
    TransportQuoteDTO,
    TransportUpdateDTO,
    parse,
)


def _actor(request):
    return request.user.actor


def _query(request) -> dict:
    return {k: v for k, v in request.query_params.items()}


def _page(results: list, count: int, page: int, page_size: int) -> Response:
    return Response({"count": count, "page": page, "page_size": page_size, "results": results})


class ScopedView(APIView):
    throttle_classes = [ScopedRateThrottle]


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module; returns ``{"ok": true}``."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(ScopedView):
    """``GET /orders`` (role-scoped listing) and ``POST /orders`` (create)."""

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return super().get_throttles()

    def get(self, request):
        q = parse(OrderListQuery, _query(request))
        orders, count, page = providers.get_lifecycle_service().list_orders(
            _actor(request), status=q.status, page=q.page, page_size=q.page_size
        )
        return _page([OrderReadDTO.from_domain(o).to_json() for o in orders], count, page, q.page_size)

    def post(self, request):
        """Create a new order.

        Returns:
            Response: 201 with the order; a stored response with
            ``Idempotent-Replay: true`` on retries; 409
            ``IDEMPOTENCY_CONFLICT`` when a key is reused with a different
            payload; any domain error otherwise.
        """
        actor = _actor(request)
        dto = parse(CreateOrderDTO, request.data)

        idem_key = request.headers.get("Idempotency-Key")
        rec = None
        if idem_key:
            existing, rec = get_or_create_idempotent(idem_key, actor, request.data)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status or status.HTTP_200_OK)
                resp["Idempotent-Replay"] = "true"
                return resp

        try:
            order = providers.get_lifecycle_service().create_order(
                actor,
                listing_id=dto.listing_id,
                amount=dto.amount,
                quantity=dto.quantity,
                shipping_cost=dto.shipping_cost,
                notes=dto.notes,
            )
        except DomainError as e:
            if rec is not None:
                if e.http_status >= 500:
                    # Transient upstream failure: let the client retry for real.
                    rec.delete()
                else:
                    resp = render_error(e)
                    finalize(rec, resp.status_code, resp.data)
            raise

        body = OrderReadDTO.from_domain(order).to_json()
        if rec is not None:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class OrderPaymentsView(ScopedView):
    """``GET /orders/payments`` lists the gateway payments on the caller's orders."""

    throttle_scope = "orders_list"

    def get(self, request):
        q = parse(ListQuery, _query(request))
        payments, count, page = providers.get_lifecycle_service().list_payments(
            _actor(request), page=q.page, page_size=q.page_size
        )
        return _page([PaymentRecordReadDTO.from_domain(p).to_json() for p in payments], count, page, q.page_size)


class OrderStatsView(ScopedView):
    throttle_scope = "orders_list"

    def get(self, request):
        stats = providers.get_lifecycle_service().order_stats(_actor(request))
        return Response(OrderStatsReadDTO.from_domain(stats).to_json())


class OrderDetailView(ScopedView):
    """``GET /orders/:id`` and ``DELETE /orders/:id`` (cancellation)."""

    throttle_scope = "orders_detail"

    def get(self, request, oid: str):
        order = providers.get_lifecycle_service().get_order(_actor(request), oid)
        return Response(OrderReadDTO.from_domain(order).to_json())

    def delete(self, request, oid: str):
        dto = parse(CancelDTO, request.data or {})
        order = providers.get_lifecycle_service().cancel(_actor(request), oid, dto.reason)
        return Response(OrderReadDTO.from_domain(order).to_json())


class OrderStatusView(ScopedView):
    throttle_scope = "orders_update"

    def patch(self, request, oid: str):
        dto = parse(StatusUpdateDTO, request.data)
        order = providers.get_lifecycle_service().change_status(_actor(request), oid, dto.status, dto.reason)
        return Response(OrderReadDTO.from_domain(order).to_json())


class OrderTrackingView(ScopedView):
    throttle_scope = "orders_update"

    def patch(self, request, oid: str):
        dto = parse(TrackingUpdateDTO, request.data)
        order = providers.get_lifecycle_service().update_tracking(
            _actor(request),
            oid,
            carrier=dto.carrier,
            tracking_number=dto.tracking_number,
            estimated_delivery=dto.estimated_delivery,
            actual_delivery=dto.actual_delivery,
        )
        return Response(OrderReadDTO.from_domain(order).to_json())


class OrderRefundView(ScopedView):
    throttle_scope = "payments"

    def post(self, request, oid: str):
        dto = parse(RefundDTO, request.data or {})
        order = providers.get_lifecycle_service().issue_refund(_actor(request), oid, dto.amount)
        return Response(OrderReadDTO.from_domain(order).to_json())


class OrderTransitionsView(ScopedView):
    throttle_scope = "orders_detail"

    def get(self, request, oid: str):
        transitions = providers.get_lifecycle_service().list_transitions(_actor(request), oid)
        return Response({"results": [TransitionReadDTO.from_domain(t).to_json() for t in transitions]})


class PaymentCreateView(ScopedView):
    """``GET /bookings/payment/create?booking_id=&amount=`` opens a gateway order."""

    throttle_scope = "payments"

    def get(self, request):
        q = parse(PaymentCreateQuery, _query(request))
        order, intent = providers.get_lifecycle_service().create_payment_intent(
            _actor(request), q.booking_id, q.amount
        )
        return Response({
            "booking_id": order.id,
            "gateway_order_id": intent.gateway_order_id,
            "amount": str(intent.amount),
            "currency": intent.currency,
            "key_id": getattr(settings, "GATEWAY_KEY_ID", ""),
        })


class PaymentVerifyView(ScopedView):
    """``GET /bookings/payment/verify`` applies a signed checkout callback."""

    throttle_scope = "payments"

    def get(self, request):
        q = parse(PaymentVerifyQuery, _query(request))
        order, already_applied = providers.get_lifecycle_service().verify_payment(
            _actor(request),
            q.booking_id,
            gateway_payment_id=q.gateway_payment_id,
            gateway_order_id=q.gateway_order_id,
            signature=q.signature,
        )
        return Response({
            "payment_status": "verified",
            "booking_status": order.status.value,
            "already_applied": already_applied,
            "order": OrderReadDTO.from_domain(order).to_json(),
        })


class AdvancePaymentView(ScopedView):
    throttle_scope = "payments"

    def post(self, request):
        dto = parse(AdvancePaymentDTO, request.data)
        order, already_applied = providers.get_lifecycle_service().record_advance_payment(
            _actor(request),
            dto.booking_id,
            advance_amount=dto.advance_amount,
            gateway_payment_id=dto.gateway_payment_id,
            gateway_order_id=dto.gateway_order_id,
            signature=dto.signature,
        )
        return Response({
            "payment_status": "verified",
            "booking_status": order.status.value,
            "already_applied": already_applied,
            "order": OrderReadDTO.from_domain(order).to_json(),
        })


class PaymentWebhookView(ScopedView):
    """Gateway-to-server webhook; authenticated by the body signature only."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_scope = "webhooks"

    def post(self, request):
        signature = request.headers.get("X-Razorpay-Signature", "")
        result = providers.get_lifecycle_service().handle_webhook(request.body, signature)
        return Response(result)


class TransportCollectionView(ScopedView):
    throttle_scope = "transport"

    def get(self, request):
        q = parse(TransportListQuery, _query(request))
        jobs, count, page = providers.get_transport_service().list_jobs(
            _actor(request), status=q.status, page=q.page, page_size=q.page_size
        )
        return _page([TransportJobReadDTO.from_domain(j).to_json() for j in jobs], count, page, q.page_size)


class TransportQuoteView(ScopedView):
    throttle_scope = "transport"

    def post(self, request):
        dto = parse(TransportQuoteDTO, request.data)
        quote = providers.get_transport_service().request_quote(
            _actor(request),
            dto.order_id,
            pickup_location=dto.pickup_location,
            delivery_location=dto.delivery_location,
            vehicle_type=dto.vehicle_type,
        )
        return Response(quote)


class TransportAcceptView(ScopedView):
    throttle_scope = "transport"

    def post(self, request):
        dto = parse(TransportAcceptDTO, request.data)
        job = providers.get_transport_service().accept_job(_actor(request), dto.order_id, dto.quote)
        return Response(TransportJobReadDTO.from_domain(job).to_json(), status=status.HTTP_201_CREATED)


class TransportDetailView(ScopedView):
    throttle_scope = "transport"

    def get(self, request, jid: str):
        job = providers.get_transport_service().get_job(_actor(request), jid)
        return Response(TransportJobReadDTO.from_domain(job).to_json())

    def patch(self, request, jid: str):
        dto = parse(TransportUpdateDTO, request.data)
        job = providers.get_transport_service().update_job(_actor(request), jid, dto.status, dto.tracking)
        return Response(TransportJobReadDTO.from_domain(job).to_json())
