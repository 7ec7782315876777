"""Per-actor authorization rules for orders and transport jobs.

Every function here is pure: it inspects the actor and the entity and
returns a ``Decision`` without touching the store. The lifecycle engine
and the transport service call these before any mutation; ``ensure``
turns a denial into a ``Forbidden`` error.
"""

from .domain import Actor, Decision, Order, OrderStatus, Role, TransportJob
from .errors import Forbidden

# Target statuses each role may request on an order it is party to.
ROLE_TARGETS: dict[Role, frozenset[OrderStatus]] = {
    Role.BUYER: frozenset({OrderStatus.CANCELLED}),
    Role.SELLER: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    Role.TRANSPORTER: frozenset(),
    Role.ADMIN: frozenset(OrderStatus),
}


def ensure(decision: Decision) -> None:
    """Raise ``Forbidden`` when the decision is a denial."""
    if not decision.allowed:
        raise Forbidden(decision.reason or "FORBIDDEN")


def is_party(actor: Actor, order: Order) -> bool:
    if actor.role == Role.BUYER:
        return order.buyer_id == actor.id
    if actor.role == Role.SELLER:
        return order.seller_id == actor.id
    return False


def can_create_order(actor: Actor) -> Decision:
    if actor.role != Role.BUYER:
        return Decision.deny("ONLY_BUYERS_CAN_ORDER")
    return Decision.allow()


def can_list_orders(actor: Actor) -> Decision:
    if actor.role in (Role.BUYER, Role.SELLER, Role.ADMIN):
        return Decision.allow()
    return Decision.deny("ROLE_CANNOT_LIST_ORDERS")


def can_view(actor: Actor, order: Order) -> Decision:
    if actor.is_admin or is_party(actor, order):
        return Decision.allow()
    return Decision.deny("NOT_ORDER_PARTY")


def can_transition(actor_role: Role, actor_id: str, order: Order, requested_status: OrderStatus) -> Decision:
    """Decide whether an actor may request ``requested_status`` on ``order``.

    The check is independent of the order's current status: a role asking
    for a status outside its allowed set is denied even if the transition
    itself would be invalid.

    Args:
        actor_role: Role of the caller.
        actor_id: Identifier of the caller.
        order: The order being changed.
        requested_status: Target status.

    Returns:
        Decision: ``allow`` or ``deny`` with one of ``NOT_ORDER_PARTY`` or
        ``ROLE_CANNOT_REQUEST_STATUS``.
    """
    actor = Actor(id=actor_id, role=actor_role)
    if not actor.is_admin and not is_party(actor, order):
        return Decision.deny("NOT_ORDER_PARTY")
    if requested_status not in ROLE_TARGETS.get(actor_role, frozenset()):
        return Decision.deny("ROLE_CANNOT_REQUEST_STATUS")
    return Decision.allow()


def can_pay(actor: Actor, order: Order) -> Decision:
    if actor.is_admin or (actor.role == Role.BUYER and order.buyer_id == actor.id):
        return Decision.allow()
    return Decision.deny("ONLY_BUYER_CAN_PAY")


def can_update_tracking(actor: Actor, order: Order) -> Decision:
    if actor.is_admin or (actor.role == Role.SELLER and order.seller_id == actor.id):
        return Decision.allow()
    return Decision.deny("ONLY_SELLER_CAN_TRACK")


def can_refund(actor: Actor, order: Order) -> Decision:
    if actor.is_admin:
        return Decision.allow()
    return Decision.deny("ONLY_ADMIN_CAN_REFUND")


def can_request_quote(actor: Actor, order: Order) -> Decision:
    if actor.is_admin or (actor.role == Role.BUYER and order.buyer_id == actor.id):
        return Decision.allow()
    return Decision.deny("ONLY_BUYER_CAN_REQUEST_QUOTE")


def can_accept_transport(actor: Actor) -> Decision:
    if actor.role == Role.TRANSPORTER:
        return Decision.allow()
    return Decision.deny("ONLY_TRANSPORTERS_CAN_ACCEPT")


def can_update_transport(actor: Actor, job: TransportJob) -> Decision:
    if actor.is_admin:
        return Decision.allow()
    if actor.role == Role.TRANSPORTER and job.transporter_id == actor.id:
        return Decision.allow()
    return Decision.deny("NOT_JOB_OWNER")


def can_view_transport(actor: Actor, job: TransportJob, order: Order) -> Decision:
    if can_update_transport(actor, job).allowed or is_party(actor, order):
        return Decision.allow()
    return Decision.deny("NOT_JOB_PARTY")
