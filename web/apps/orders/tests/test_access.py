"""Authorization matrix tests; pure functions, no database."""

from decimal import Decimal

import pytest

from apps.orders import access
from apps.orders.domain import Actor, Order, OrderStatus, Role, TransportJob
from apps.orders.errors import Forbidden


def _order(status=OrderStatus.PENDING):
    return Order(
        id="o-1",
        listing_id="L1",
        buyer_id="B1",
        seller_id="S1",
        amount=Decimal("1000.00"),
        total_amount=Decimal("1000.00"),
        status=status,
    )


@pytest.mark.parametrize("status", list(OrderStatus))
def test_buyer_requesting_shipped_is_always_denied(status):
    decision = access.can_transition(Role.BUYER, "B1", _order(status), OrderStatus.SHIPPED)
    assert not decision.allowed
    assert decision.reason == "ROLE_CANNOT_REQUEST_STATUS"


@pytest.mark.parametrize(
    "role, actor_id, target, allowed",
    [
        (Role.BUYER, "B1", OrderStatus.CANCELLED, True),
        (Role.BUYER, "B1", OrderStatus.CONFIRMED, False),
        (Role.BUYER, "B1", OrderStatus.REFUNDED, False),
        (Role.SELLER, "S1", OrderStatus.CONFIRMED, True),
        (Role.SELLER, "S1", OrderStatus.PROCESSING, True),
        (Role.SELLER, "S1", OrderStatus.SHIPPED, True),
        (Role.SELLER, "S1", OrderStatus.OUT_FOR_DELIVERY, True),
        (Role.SELLER, "S1", OrderStatus.DELIVERED, True),
        (Role.SELLER, "S1", OrderStatus.CANCELLED, True),
        (Role.SELLER, "S1", OrderStatus.REFUNDED, False),
        (Role.ADMIN, "A1", OrderStatus.REFUNDED, True),
        (Role.ADMIN, "A1", OrderStatus.PENDING, True),
        (Role.TRANSPORTER, "T1", OrderStatus.DELIVERED, False),
    ],
)
def test_role_target_matrix(role, actor_id, target, allowed):
    assert access.can_transition(role, actor_id, _order(), target).allowed is allowed


def test_non_party_is_denied_before_role_check():
    decision = access.can_transition(Role.SELLER, "S2", _order(), OrderStatus.SHIPPED)
    assert decision.reason == "NOT_ORDER_PARTY"

    decision = access.can_transition(Role.BUYER, "B2", _order(), OrderStatus.CANCELLED)
    assert decision.reason == "NOT_ORDER_PARTY"


def test_only_buyers_create_orders():
    assert access.can_create_order(Actor("B1", Role.BUYER)).allowed
    for role in (Role.SELLER, Role.TRANSPORTER, Role.ADMIN):
        assert access.can_create_order(Actor("X", role)).reason == "ONLY_BUYERS_CAN_ORDER"


def test_view_requires_party_or_admin():
    order = _order()
    assert access.can_view(Actor("B1", Role.BUYER), order).allowed
    assert access.can_view(Actor("S1", Role.SELLER), order).allowed
    assert access.can_view(Actor("A1", Role.ADMIN), order).allowed
    assert not access.can_view(Actor("B2", Role.BUYER), order).allowed
    assert not access.can_view(Actor("T1", Role.TRANSPORTER), order).allowed


def test_payment_tracking_and_refund_rules():
    order = _order()
    assert access.can_pay(Actor("B1", Role.BUYER), order).allowed
    assert not access.can_pay(Actor("S1", Role.SELLER), order).allowed
    assert access.can_update_tracking(Actor("S1", Role.SELLER), order).allowed
    assert not access.can_update_tracking(Actor("B1", Role.BUYER), order).allowed
    assert access.can_refund(Actor("A1", Role.ADMIN), order).allowed
    assert not access.can_refund(Actor("S1", Role.SELLER), order).allowed


def test_transport_job_owner_rules():
    job = TransportJob(id="j-1", order_id="o-1", transporter_id="T1", quote=Decimal("100.00"))
    assert access.can_update_transport(Actor("T1", Role.TRANSPORTER), job).allowed
    assert access.can_update_transport(Actor("A1", Role.ADMIN), job).allowed
    assert access.can_update_transport(Actor("T2", Role.TRANSPORTER), job).reason == "NOT_JOB_OWNER"
    assert access.can_view_transport(Actor("B1", Role.BUYER), job, _order()).allowed
    assert not access.can_view_transport(Actor("B2", Role.BUYER), job, _order()).allowed


def test_ensure_raises_forbidden_with_reason():
    with pytest.raises(Forbidden) as exc:
        access.ensure(access.can_refund(Actor("B1", Role.BUYER), _order()))
    assert exc.value.code == "ONLY_ADMIN_CAN_REFUND"
    assert exc.value.http_status == 403
