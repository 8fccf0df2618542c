"""
Order persistence types.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from tally._types import Money
from tally.errors import ValidationError
from tally.identity import CustomerIdentity
from tally.pricing import OrderTotals


class PaymentMethod(Enum):
    ONLINE = "online"
    COD = "cod"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    first_name: str
    address1: str
    city: str
    postal_code: str
    last_name: str = ""
    state: str | None = None
    country: str = "India"
    phone: str | None = None

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("first_name", "address1", "city", "postal_code")
            if not getattr(self, name).strip()
        ]
        if missing:
            raise ValidationError(f"Shipping address is missing: {', '.join(missing)}")

    def to_json(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """Everything commit_order writes; totals are always server-computed."""

    identity: CustomerIdentity
    totals: OrderTotals
    payment_method: PaymentMethod
    shipping_address: ShippingAddress
    currency: str = "INR"
    gateway_order_id: str | None = None
    payment_id: str | None = None

    @property
    def payment_status(self) -> PaymentStatus:
        match self.payment_method:
            case PaymentMethod.ONLINE:
                return PaymentStatus.PAID
            case PaymentMethod.COD:
                return PaymentStatus.PENDING


@dataclass(frozen=True, slots=True)
class PlacedOrder:
    order_id: str
    order_number: str
    total: Money
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    coupon_code: str | None = None


__all__ = (
    "PaymentMethod",
    "PaymentStatus",
    "ShippingAddress",
    "OrderDraft",
    "PlacedOrder",
)
