"""
Payment signatures — HMAC-SHA256 over "<order_id>|<payment_id>".

    signature = sign_payment("order_9", "pay_4", secret)
    verify_signature("order_9", "pay_4", signature, secret)  # True
"""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def signature_payload(order_id: str, payment_id: str) -> bytes:
    return f"{order_id}|{payment_id}".encode()


def sign_payment(order_id: str, payment_id: str, secret: str) -> str:
    """Hex digest the gateway sends back after a successful payment."""
    return hmac.new(
        secret.encode(),
        signature_payload(order_id, payment_id),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Constant-time check. An unset secret verifies nothing."""
    if not secret:
        logger.warning("payment secret is not configured; rejecting signature")
        return False
    expected = sign_payment(order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


__all__ = ("signature_payload", "sign_payment", "verify_signature")
