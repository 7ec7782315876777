"""Persistence behavior of the order and transport repositories."""

from decimal import Decimal

import pytest

from apps.orders.domain import Actor, Order, OrderStatus, PaymentRecord, Role, TransportJob
from apps.orders.errors import Conflict, NotFound
from apps.orders.models import OrderModel, TransportJobModel
from apps.orders.repository import OrderRepository, TransportJobRepository

BUYER = Actor("B1", Role.BUYER)


def _new(repo: OrderRepository) -> Order:
    return repo.create(
        Order(
            id=None,
            listing_id="L1",
            buyer_id="B1",
            seller_id="S1",
            amount=Decimal("1000.00"),
            total_amount=Decimal("1000.00"),
        ),
        BUYER,
    )


@pytest.mark.django_db
def test_create_assigns_incremental_internal_ids():
    repo = OrderRepository()
    first, second = _new(repo), _new(repo)
    ids = [OrderModel.objects.get(id=o.id).internal_id for o in (first, second)]
    assert ids[1] == ids[0] + 1


@pytest.mark.django_db
def test_save_with_stale_version_conflicts():
    repo = OrderRepository()
    order = _new(repo)
    stale = repo.get(order.id)

    order.status = OrderStatus.CONFIRMED
    repo.save(order)
    assert order.version == 1

    stale.status = OrderStatus.CANCELLED
    with pytest.raises(Conflict) as exc:
        repo.save(stale)
    assert exc.value.code == "CONCURRENT_MODIFICATION"
    assert exc.value.http_status == 409
    assert repo.get(order.id).status == OrderStatus.CONFIRMED


@pytest.mark.django_db
def test_duplicate_payment_is_rejected():
    repo = OrderRepository()
    order = _new(repo)
    record = PaymentRecord(gateway_payment_id="pay_1", gateway_order_id="order_1", amount=Decimal("500.00"))

    repo.add_payment(order.id, record)
    with pytest.raises(Conflict) as exc:
        repo.add_payment(order.id, record)
    assert exc.value.code == "PAYMENT_ALREADY_APPLIED"

    owner, found = repo.find_payment("pay_1")
    assert owner == order.id
    assert found.amount == Decimal("500.00")
    assert found.refundable == Decimal("500.00")


@pytest.mark.django_db
def test_refunds_reduce_refundable_balance():
    repo = OrderRepository()
    order = _new(repo)
    repo.add_payment(order.id, PaymentRecord("pay_1", "order_1", Decimal("500.00")))
    repo.record_refund("pay_1", Decimal("200.00"))

    [payment] = repo.payments_for(order.id)
    assert payment.refunded_amount == Decimal("200.00")
    assert payment.refundable == Decimal("300.00")


@pytest.mark.django_db
@pytest.mark.parametrize("oid", ["missing", "00000000-0000-0000-0000-000000000000"])
def test_unknown_order_is_not_found(oid):
    with pytest.raises(NotFound):
        OrderRepository().get(oid)
    with pytest.raises(NotFound):
        with OrderRepository().lock(oid):
            pass


@pytest.mark.django_db
def test_database_allows_one_active_job_per_order():
    order = _new(OrderRepository())
    jobs = TransportJobRepository()
    job = jobs.create(TransportJob(id=None, order_id=order.id, transporter_id="T1", quote=Decimal("100")))

    with pytest.raises(Conflict) as exc:
        jobs.create(TransportJob(id=None, order_id=order.id, transporter_id="T2", quote=Decimal("90")))
    assert exc.value.code == "ACTIVE_JOB_EXISTS"

    TransportJobModel.objects.filter(id=job.id).update(is_active=False)
    jobs.create(TransportJob(id=None, order_id=order.id, transporter_id="T2", quote=Decimal("90")))
    assert jobs.active_for_order(order.id).transporter_id == "T2"
