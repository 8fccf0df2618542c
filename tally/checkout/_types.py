"""
Checkout types — requests in, views out.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from tally._types import MinorUnits, Money
from tally.config import Settings
from tally.db import PaymentMethod, Repository, ShippingAddress
from tally.errors import TallyError, ValidationError
from tally.identity import CustomerIdentity
from tally.payments import PaymentGateway, PaymentRecordStore
from tally.pricing import Coupon, OrderTotals, normalize_code


# ═══════════════════════════════════════════════════════════════════════════════
# Inputs
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StoreContext:
    """Collaborators every checkout graph run needs."""

    repo: Repository
    payments: PaymentRecordStore
    gateway: PaymentGateway
    settings: Settings


@dataclass(frozen=True, slots=True)
class QuoteRequest:
    """
    One pricing evaluation.

    Only a coupon code travels from the client; amounts never do.
    """

    identity: CustomerIdentity
    at: datetime
    coupon_code: str | None = None
    shipping_address: ShippingAddress | None = None

    def __post_init__(self) -> None:
        code = self.coupon_code
        object.__setattr__(
            self,
            "coupon_code",
            normalize_code(code) if code is not None and code.strip() else None,
        )


@dataclass(frozen=True, slots=True)
class PlaceOrderRequest:
    identity: CustomerIdentity
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = PaymentMethod.ONLINE
    coupon_code: str | None = None
    gateway_order_id: str | None = None
    payment_id: str | None = None
    signature: str | None = None

    def payment_proof(self) -> tuple[str, str, str]:
        """(gateway_order_id, payment_id, signature) for online orders."""
        if not (self.gateway_order_id and self.payment_id and self.signature):
            raise ValidationError("Online orders require gateway order id, payment id and signature")
        return self.gateway_order_id, self.payment_id, self.signature


# ═══════════════════════════════════════════════════════════════════════════════
# Outputs
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CouponCheck:
    """Outcome of validating the held coupon; at most one side is set."""

    coupon: Coupon | None = None
    error: TallyError | None = None

    def require(self) -> Coupon | None:
        """The coupon, or raise its rejection."""
        if self.error is not None:
            raise self.error
        return self.coupon


@dataclass(frozen=True, slots=True)
class Summary:
    """
    What cart and checkout pages render.

    coupon_error is set when the requested code was dropped; totals are then
    computed without it.
    """

    totals: OrderTotals
    coupon: Coupon | None = None
    coupon_error: TallyError | None = None

    @property
    def is_empty(self) -> bool:
        return not self.totals.items

    @property
    def is_shipping_estimate(self) -> bool:
        return self.totals.shipping_quote.is_estimate


@dataclass(frozen=True, slots=True)
class CouponQuote:
    """A valid coupon and what it takes off the current cart."""

    coupon: Coupon
    discount: Money


@dataclass(frozen=True, slots=True)
class PaymentOrder:
    """Handed to the client to open the gateway checkout."""

    gateway_order_id: str
    amount_minor: MinorUnits
    currency: str
    expires_at: datetime
    totals: OrderTotals


__all__ = (
    "StoreContext",
    "QuoteRequest",
    "PlaceOrderRequest",
    "CouponCheck",
    "Summary",
    "CouponQuote",
    "PaymentOrder",
)
