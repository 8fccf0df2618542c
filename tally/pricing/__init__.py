"""
Pricing — pure order arithmetic.

    from tally.pricing import compute_order_totals, DiscountProfile, LineItem

    totals = compute_order_totals(items, profile, offers, coupon, tiers, region, at=now)

Nothing here performs I/O; every input is passed in, including the
evaluation instant.
"""

from tally.pricing._combo import combo_breakdown, combo_discount, complete_sets
from tally.pricing._coupon import (
    check_coupon,
    check_coupon_requirements,
    coupon_applies_to,
    coupon_discount,
)
from tally.pricing._resolve import price_item, price_items, resolve_discount, subtotal_of
from tally.pricing._shipping import (
    compute_shipping,
    flat_shipping,
    region_for_city,
    select_tier,
)
from tally.pricing._totals import compute_order_totals
from tally.pricing._types import (
    UNASSIGNED,
    CategoryDiscount,
    ComboApplication,
    ComboOffer,
    Coupon,
    CustomerType,
    DeliveryGroup,
    DeliveryTier,
    Discount,
    DiscountProfile,
    Fixed,
    LineItem,
    OrderTotals,
    Percentage,
    PricedItem,
    Region,
    ShippingQuote,
    normalize_code,
    parse_discount,
)

__all__ = (
    # Types
    "Percentage",
    "Fixed",
    "Discount",
    "parse_discount",
    "CustomerType",
    "CategoryDiscount",
    "DiscountProfile",
    "LineItem",
    "PricedItem",
    "ComboOffer",
    "ComboApplication",
    "Coupon",
    "normalize_code",
    "Region",
    "DeliveryTier",
    "DeliveryGroup",
    "ShippingQuote",
    "UNASSIGNED",
    "OrderTotals",
    # Resolver
    "resolve_discount",
    "price_item",
    "price_items",
    "subtotal_of",
    # Combos
    "combo_breakdown",
    "combo_discount",
    "complete_sets",
    # Coupons
    "check_coupon",
    "check_coupon_requirements",
    "coupon_applies_to",
    "coupon_discount",
    # Shipping
    "compute_shipping",
    "flat_shipping",
    "region_for_city",
    "select_tier",
    # Totals
    "compute_order_totals",
)
