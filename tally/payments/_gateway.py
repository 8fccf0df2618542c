"""
Payment gateway boundary.

Only intent creation crosses it; signature verification is local (HMAC with
the shared key secret), so a gateway implementation stays tiny.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Protocol

from tally._types import MinorUnits
from tally.errors import ValidationError
from tally.payments._signature import sign_payment
from tally.payments._types import PaymentIntent


class PaymentGateway(Protocol):
    async def create_payment_intent(
        self,
        amount_minor_units: MinorUnits,
        currency: str,
        *,
        receipt: str | None = None,
    ) -> PaymentIntent: ...


@dataclass(slots=True)
class SimulatedGateway:
    """
    In-process gateway for development and tests.

    complete() plays the customer paying: it returns the payment id and the
    signature a real gateway would post back.

        gateway = SimulatedGateway(secret="s3cret")
        intent = await gateway.create_payment_intent(114000, "INR")
        payment_id, signature = gateway.complete(intent.gateway_order_id)
    """

    secret: str
    intents: dict[str, PaymentIntent] = field(default_factory=dict[str, PaymentIntent])

    async def create_payment_intent(
        self,
        amount_minor_units: MinorUnits,
        currency: str,
        *,
        receipt: str | None = None,
    ) -> PaymentIntent:
        if amount_minor_units <= 0:
            raise ValidationError("Payment amount must be positive")
        intent = PaymentIntent(
            gateway_order_id=f"order_{uuid.uuid4().hex[:14]}",
            amount_minor=amount_minor_units,
            currency=currency,
            receipt=receipt,
        )
        self.intents[intent.gateway_order_id] = intent
        return intent

    def complete(self, gateway_order_id: str) -> tuple[str, str]:
        if gateway_order_id not in self.intents:
            raise KeyError(f"Unknown gateway order {gateway_order_id}")
        payment_id = f"pay_{uuid.uuid4().hex[:14]}"
        return payment_id, sign_payment(gateway_order_id, payment_id, self.secret)


__all__ = ("PaymentGateway", "SimulatedGateway")
