"""Payment gateway sandbox API built with FastAPI.

A stand-in for a Razorpay-style provider used in local and end-to-end
environments:

- ``POST /v1/orders``: create a gateway order (amount in paise).
- ``POST /v1/orders/{id}/pay``: simulate the hosted checkout; captures the
  full amount and returns the signed callback triple the browser would
  post back. When ``WEBHOOK_URL`` is set, a signed ``payment.captured``
  webhook is also delivered there.
- ``POST /v1/payments/{id}/refund``: refund with capture enforcement and
  ``Idempotency-Key`` support.

Merchant endpoints require HTTP basic auth with the configured key id and
secret. Errors use the provider's ``{"error": {code, description, reason}}``
envelope.
"""

import json
import logging
import os
import secrets
import time
import uuid
from typing import Annotated, Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field, constr
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError

from repo import (
    KEY_ID,
    KEY_SECRET,
    GatewayRepo,
    IdempotencyKey,
    RefundTooLarge,
    canonical_hash,
    engine,
    get_session,
    payment_signature,
    webhook_signature,
)

app = FastAPI(title="Payment Gateway Sandbox")
security = HTTPBasic()

Currency = constr(pattern=r"^[A-Z]{3}$")
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")

logger = logging.getLogger("gateway")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # Wait briefly until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)


def merchant(credentials: Annotated[HTTPBasicCredentials, Depends(security)]) -> str:
    ok_id = secrets.compare_digest(credentials.username.encode(), KEY_ID.encode())
    ok_secret = secrets.compare_digest(credentials.password.encode(), KEY_SECRET.encode())
    if not (ok_id and ok_secret):
        raise HTTPException(status_code=401, detail="BAD_CREDENTIALS", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


def gateway_error(status_code: int, code: str, description: str, reason: str) -> JSONResponse:
    return JSONResponse(
        {"error": {"code": code, "description": description, "reason": reason}},
        status_code=status_code,
    )


class OrderRequest(BaseModel):
    """Body of ``POST /v1/orders``.

    Attributes:
        amount: Amount in minor units (paise), at least 100.
        currency: ISO currency code.
        receipt: Merchant reference.
        notes: Free-form key/value notes echoed on payments and webhooks.
    """

    amount: int = Field(ge=100)
    currency: Currency = "INR"
    receipt: Optional[str] = Field(default=None, max_length=64)
    notes: dict[str, str] = Field(default_factory=dict)


class RefundRequest(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0)


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/v1/orders")
def create_order(req: OrderRequest, _merchant: Annotated[str, Depends(merchant)]):
    order = GatewayRepo().create_order(req.amount, req.currency, req.receipt, req.notes)
    logger.info("gateway order created", extra={"gateway_order_id": order["id"], "amount": req.amount})
    return order


@app.get("/v1/orders/{order_id}")
def get_order(order_id: str, _merchant: Annotated[str, Depends(merchant)]):
    order = GatewayRepo().get_order(order_id)
    if order is None:
        return gateway_error(404, "BAD_REQUEST_ERROR", "The id provided does not exist", "order_not_found")
    return order


def _deliver_webhook(event: str, payment: dict) -> None:
    body = json.dumps({"event": event, "payload": {"payment": {"entity": payment}}}).encode("utf-8")
    try:
        resp = httpx.post(
            WEBHOOK_URL,
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": webhook_signature(body)},
            timeout=3.0,
        )
    except httpx.HTTPError as e:
        logger.warning("webhook delivery failed", extra={"event": event, "error": str(e)})
        return
    logger.info("webhook delivered", extra={"event": event, "status_code": resp.status_code})


@app.post("/v1/orders/{order_id}/pay")
def pay(order_id: str):
    """Simulate a successful hosted checkout for ``order_id``."""
    order = GatewayRepo().get_order(order_id)
    if order is None:
        return gateway_error(404, "BAD_REQUEST_ERROR", "The id provided does not exist", "order_not_found")
    if order["status"] == "paid":
        return gateway_error(400, "BAD_REQUEST_ERROR", "Order has already been paid", "order_already_paid")
    payment = GatewayRepo().capture(order_id)
    if WEBHOOK_URL:
        _deliver_webhook("payment.captured", payment)
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment["id"],
        "razorpay_signature": payment_signature(order_id, payment["id"]),
    }


@app.get("/v1/payments/{payment_id}")
def get_payment(payment_id: str, _merchant: Annotated[str, Depends(merchant)]):
    payment = GatewayRepo().get_payment(payment_id)
    if payment is None:
        return gateway_error(404, "BAD_REQUEST_ERROR", "The id provided does not exist", "payment_not_found")
    return payment


@app.post("/v1/payments/{payment_id}/refund")
def refund(
    payment_id: str,
    req: RefundRequest,
    _merchant: Annotated[str, Depends(merchant)],
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Refund a captured payment, at most once per ``Idempotency-Key``.

    Returns:
        dict: The refund entity. A retry with the same key and body returns
        the original refund; the same key with another body is a 409.
    """
    repo = GatewayRepo()
    payload_hash = canonical_hash({"payment_id": payment_id, **req.model_dump()})

    if idempotency_key:
        with get_session() as s:
            try:
                s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash))
                s.commit()
            except IntegrityError:
                s.rollback()
                rec = s.execute(
                    select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key).with_for_update()
                ).scalars().first()
                if rec.request_hash != payload_hash:
                    raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")
                if rec.refund_id:
                    return repo.get_refund(rec.refund_id)

    try:
        out = repo.refund(payment_id, req.amount)
    except RefundTooLarge:
        return gateway_error(
            400,
            "BAD_REQUEST_ERROR",
            "The refund amount provided is greater than amount captured",
            "refund_amount_greater_than_captured",
        )
    if out is None:
        return gateway_error(404, "BAD_REQUEST_ERROR", "The id provided does not exist", "payment_not_found")

    if idempotency_key:
        with get_session() as s:
            rec = s.get(IdempotencyKey, idempotency_key)
            rec.refund_id = out["id"]
            s.commit()
    logger.info("refund processed", extra={"refund_id": out["id"], "payment_id": payment_id, "amount": out["amount"]})
    return out


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
