"""Idempotency keys for order creation.

A client that retries ``POST /orders`` with the same ``Idempotency-Key``
gets the stored response of the first attempt instead of a second order.
Keys are scoped to the calling actor: the stored hash covers the actor
and the payload, so reusing a key with a different body (or as a
different user) is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .domain import Actor
from .errors import Conflict
from .models import IdempotencyKey


def _hash(actor: Actor, payload: dict) -> str:
    """Stable SHA-256 over the actor and the JSON-normalized payload."""
    body = json.dumps(
        {"actor": [actor.id, actor.role.value], "payload": payload},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, actor: Actor, payload: dict):
    """Get-or-create the idempotency record for ``key``.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``. ``existing`` is
        False when the record was created by this call and the caller must
        ``finalize`` it.

    Raises:
        Conflict: ``IDEMPOTENCY_CONFLICT`` (409) when the key was used with
            a different payload or by another actor.
    """
    h = _hash(actor, payload)

    try:
        # Nested savepoint: if IntegrityError occurs, only this block is rolled back.
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise Conflict("IDEMPOTENCY_CONFLICT", "Idempotency-Key reused with a different request", http_status=409)
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the final response so retries can replay it."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])
