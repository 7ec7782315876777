"""Keyed-hash helpers for gateway callbacks and webhooks.

Checkout callbacks are signed as ``HMAC_SHA256(key_secret,
"<gateway_order_id>|<gateway_payment_id>")`` and webhooks as
``HMAC_SHA256(webhook_secret, raw_body)``, both hex encoded.
"""

import hashlib
import hmac


def payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def webhook_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signatures_match(expected: str, provided: str | None) -> bool:
    """Constant-time comparison that tolerates a missing signature."""
    if not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.strip().encode("utf-8"))
