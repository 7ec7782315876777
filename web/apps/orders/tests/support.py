ORDERS_URL = "/api/orders/"
PAY_CREATE_URL = "/api/bookings/payment/create/"
PAY_VERIFY_URL = "/api/bookings/payment/verify/"
ADVANCE_URL = "/api/bookings/advance-payment/"
WEBHOOK_URL = "/api/bookings/payment/webhook/"
TRANSPORT_URL = "/api/transport/"


def actor(actor_id: str, role: str) -> dict:
    """Headers the upstream auth layer sets for an authenticated caller."""
    return {"HTTP_X_ACTOR_ID": actor_id, "HTTP_X_ACTOR_ROLE": role}


BUYER = actor("B1", "buyer")
OTHER_BUYER = actor("B2", "buyer")
SELLER = actor("S1", "seller")
OTHER_SELLER = actor("S2", "seller")
TRANSPORTER = actor("T1", "transporter")
OTHER_TRANSPORTER = actor("T2", "transporter")
ADMIN = actor("A1", "admin")


def detail_url(order_id: str) -> str:
    return f"{ORDERS_URL}{order_id}/"


def status_url(order_id: str) -> str:
    return f"{ORDERS_URL}{order_id}/status/"
