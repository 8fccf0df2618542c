"""
Payment types — intents and server-side payment records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from tally._types import MinorUnits


# ═══════════════════════════════════════════════════════════════════════════════
# Payment Intent — what the gateway hands back
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    """A gateway-side order the customer pays against."""

    gateway_order_id: str
    amount_minor: MinorUnits
    currency: str
    receipt: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Payment Record — our memory of the intent
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentState(Enum):
    """
    Lifecycle:
        CREATED → VERIFIED → (consumed: row deleted with the order commit)
                → (expired: purged)
    """

    CREATED = "created"
    VERIFIED = "verified"


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    gateway_order_id: str
    owner_key: str
    amount_minor: MinorUnits
    currency: str
    state: PaymentState
    created_at: datetime
    expires_at: datetime
    payment_id: str | None = None
    signature: str | None = None

    def is_expired(self, at: datetime) -> bool:
        return self.expires_at <= at

    @property
    def is_verified(self) -> bool:
        return self.state is PaymentState.VERIFIED


__all__ = ("PaymentIntent", "PaymentState", "PaymentRecord")
