"""Listings sandbox API built with FastAPI.

Serves listing lookups for the orders service (``GET /listings/{id}``) and
lets local environments seed listings (``PUT /listings/{id}``).
Persistence is delegated to ``repo.ListingsRepo``.
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import Literal

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field, constr
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import ListingsRepo, engine, init_db

app = FastAPI(title="Listings Service")

Currency = constr(pattern=r"^[A-Z]{3}$")

logger = logging.getLogger("listings")
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
    init_db()


class ListingIn(BaseModel):
    """Seed body for a listing.

    Attributes:
        seller_id: Owner of the listing.
        status: ``active`` listings can be ordered; others cannot.
        price: Unit price in major currency units.
        currency: ISO currency code.
    """

    seller_id: str = Field(min_length=1, max_length=64)
    status: Literal["active", "inactive", "sold", "draft"] = "active"
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    currency: Currency = "INR"


class ListingOut(BaseModel):
    id: str
    seller_id: str
    status: str
    price: Decimal
    currency: str


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/listings/{listing_id}", response_model=ListingOut)
def get_listing(listing_id: str):
    found = ListingsRepo().get(listing_id)
    if found is None:
        raise HTTPException(status_code=404, detail="LISTING_NOT_FOUND")
    return found


@app.put("/listings/{listing_id}", response_model=ListingOut)
def put_listing(listing_id: str, body: ListingIn):
    return ListingsRepo().upsert(listing_id, body.seller_id, body.status, body.price, body.currency)


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
