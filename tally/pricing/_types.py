"""
Pricing types — core data structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from tally._types import Money, MinorUnits
from tally.errors import ValidationError
from tally.money import ZERO, round_money, to_minor_units

_HUNDRED = Decimal(100)

# ═══════════════════════════════════════════════════════════════════════════════
# Discount — closed variant
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Percentage:
    """Percent off, 0 < value <= 100 to be usable."""

    value: Decimal

    @property
    def kind(self) -> str:
        return "percentage"

    @property
    def usable(self) -> bool:
        return self.value > 0

    def apply(self, price: Decimal) -> Decimal:
        return price * (1 - self.value / _HUNDRED)


@dataclass(frozen=True, slots=True)
class Fixed:
    """Flat amount off."""

    value: Decimal

    @property
    def kind(self) -> str:
        return "fixed"

    @property
    def usable(self) -> bool:
        return self.value > 0

    def apply(self, price: Decimal) -> Decimal:
        return price - self.value


type Discount = Percentage | Fixed


def parse_discount(kind: str | None, value: Decimal | int | str | None) -> Discount | None:
    """
    Build a Discount from its stored (kind, value) pair.

    Missing kind or value means "no discount configured".

        parse_discount("percentage", "10")  # Percentage(Decimal("10"))
        parse_discount(None, None)          # None
    """
    if kind is None or value is None:
        return None
    amount = Decimal(str(value))
    match kind.strip().lower():
        case "percentage" | "percent":
            return Percentage(amount)
        case "fixed":
            return Fixed(amount)
        case other:
            raise ValidationError(f"Unknown discount type: {other!r}")


def usable(discount: Discount | None) -> Discount | None:
    """Return the discount only when it would actually take money off."""
    if discount is not None and discount.usable:
        return discount
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# Customer Discount Profile
# ═══════════════════════════════════════════════════════════════════════════════


class CustomerType(Enum):
    REGULAR = "regular"
    SUBSCRIPTION = "subscription"
    RETAILER = "retailer"
    DISTRIBUTOR = "distributor"
    SELF_EMPLOYED = "self_employed"


@dataclass(frozen=True, slots=True)
class CategoryDiscount:
    """Per-category override; sale_discount applies only to on-sale items."""

    category_id: str
    discount: Discount | None = None
    sale_discount: Discount | None = None


@dataclass(frozen=True, slots=True)
class DiscountProfile:
    """
    What a customer is entitled to.

    Note: at most one CategoryDiscount per category — enforced here so that
    precedence never depends on list order.
    """

    customer_type: CustomerType = CustomerType.REGULAR
    discount: Discount | None = None
    sale_discount: Discount | None = None
    category_discounts: tuple[CategoryDiscount, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for entry in self.category_discounts:
            if entry.category_id in seen:
                raise ValidationError(
                    f"Duplicate category discount for {entry.category_id!r}"
                )
            seen.add(entry.category_id)

    @property
    def is_subscription(self) -> bool:
        return self.customer_type is CustomerType.SUBSCRIPTION

    def for_category(self, category_id: str | None) -> CategoryDiscount | None:
        if category_id is None:
            return None
        for entry in self.category_discounts:
            if entry.category_id == category_id:
                return entry
        return None

    @classmethod
    def regular(cls) -> DiscountProfile:
        return cls()


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class LineItem:
    """
    One cart row as seen by pricing.

    unit_base_price is already variant-resolved by the cart snapshot.
    """

    product_id: str
    quantity: int
    unit_base_price: Money
    unit_sale_price: Money | None = None
    category_id: str | None = None
    variant_id: str | None = None
    combo_offer_id: str | None = None
    weight_kg: Decimal = Decimal("0")
    requested_delivery_date: date | None = None
    title: str = ""
    gst_rate: Decimal = Decimal("18")
    cart_item_id: str | None = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValidationError(
                f"Quantity for {self.product_id!r} must be at least 1, got {self.quantity}"
            )
        if self.unit_base_price < 0:
            raise ValidationError(f"Negative price for {self.product_id!r}")
        if self.unit_sale_price is not None and self.unit_sale_price < 0:
            raise ValidationError(f"Negative sale price for {self.product_id!r}")
        if self.weight_kg < 0:
            raise ValidationError(f"Negative weight for {self.product_id!r}")

    @property
    def sale_active(self) -> bool:
        return (
            self.unit_sale_price is not None
            and self.unit_sale_price < self.unit_base_price
        )

    @property
    def current_price(self) -> Money:
        if self.unit_sale_price is not None and self.sale_active:
            return self.unit_sale_price
        return self.unit_base_price

    @property
    def total_weight_kg(self) -> Decimal:
        return self.weight_kg * self.quantity


@dataclass(frozen=True, slots=True)
class PricedItem:
    """A LineItem after subscription/sale resolution."""

    item: LineItem
    unit_original_price: Money
    unit_effective_price: Money
    has_discount: bool
    applied_discount: Discount | None = None

    @property
    def line_original_total(self) -> Money:
        return self.unit_original_price * self.item.quantity

    @property
    def line_total(self) -> Money:
        return self.unit_effective_price * self.item.quantity


# ═══════════════════════════════════════════════════════════════════════════════
# Combo Offers
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ComboOffer:
    id: str
    product_ids: frozenset[str]
    original_price: Money
    combo_price: Money
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None
    name: str = ""

    def __post_init__(self) -> None:
        if not self.product_ids:
            raise ValidationError(f"Combo offer {self.id!r} has no products")

    @property
    def per_set_discount(self) -> Money:
        """Saving for one complete set; a mispriced offer saves nothing."""
        return max(ZERO, round_money(self.original_price - self.combo_price))

    def is_live(self, at: datetime) -> bool:
        if not self.is_active:
            return False
        if self.start_date is not None and self.start_date > at:
            return False
        if self.end_date is not None and self.end_date < at:
            return False
        return True


@dataclass(frozen=True, slots=True)
class ComboApplication:
    """One combo offer that paid out."""

    offer_id: str
    sets: int
    discount: Money


# ═══════════════════════════════════════════════════════════════════════════════
# Coupons
# ═══════════════════════════════════════════════════════════════════════════════


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True, slots=True)
class Coupon:
    code: str
    discount: Discount
    product_id: str | None = None
    min_cart_total: Money | None = None
    min_quantity: int | None = None
    max_uses: int | None = None
    used_count: int = 0
    expires_at: datetime | None = None
    is_active: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", normalize_code(self.code))

    @property
    def is_store_wide(self) -> bool:
        return self.product_id is None

    def is_expired(self, at: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < at

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.used_count >= self.max_uses


# ═══════════════════════════════════════════════════════════════════════════════
# Shipping
# ═══════════════════════════════════════════════════════════════════════════════


class Region(Enum):
    CHENNAI = "chennai"
    PAN_INDIA = "pan_india"


@dataclass(frozen=True, slots=True)
class DeliveryTier:
    label: str
    up_to_weight_kg: Decimal
    chennai_fee: Money
    pan_india_fee: Money
    is_active: bool = True

    def fee_for(self, region: Region) -> Money:
        match region:
            case Region.CHENNAI:
                return self.chennai_fee
            case Region.PAN_INDIA:
                return self.pan_india_fee


UNASSIGNED = "unassigned"


@dataclass(frozen=True, slots=True)
class DeliveryGroup:
    """Items sharing one requested delivery date."""

    key: str
    delivery_date: date | None
    weight_kg: Decimal
    fee: Money
    tier_label: str | None


@dataclass(frozen=True, slots=True)
class ShippingQuote:
    total: Money
    groups: tuple[DeliveryGroup, ...] = ()
    region: Region | None = None
    is_estimate: bool = False
    has_multiple_delivery_dates: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# Totals
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderTotals:
    """
    Derived order figures.

    total = max(0, subtotal - combo_discount - coupon_discount + shipping)
    """

    subtotal: Money
    combo_discount: Money
    coupon_discount: Money
    shipping: Money
    total: Money
    items: tuple[PricedItem, ...] = ()
    shipping_quote: ShippingQuote = field(default_factory=lambda: ShippingQuote(ZERO))
    combos: tuple[ComboApplication, ...] = ()
    coupon_code: str | None = None

    @property
    def discount(self) -> Money:
        return self.combo_discount + self.coupon_discount

    @property
    def total_minor_units(self) -> MinorUnits:
        return to_minor_units(self.total)

    @property
    def item_count(self) -> int:
        return sum(p.item.quantity for p in self.items)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Percentage",
    "Fixed",
    "Discount",
    "parse_discount",
    "usable",
    "CustomerType",
    "CategoryDiscount",
    "DiscountProfile",
    "LineItem",
    "PricedItem",
    "ComboOffer",
    "ComboApplication",
    "normalize_code",
    "Coupon",
    "Region",
    "DeliveryTier",
    "UNASSIGNED",
    "DeliveryGroup",
    "ShippingQuote",
    "OrderTotals",
)
