"""
Pricing resolver — effective unit price per line item.

Precedence for subscription customers:

    category override (sale / regular slot)
        → profile-level discount (sale / regular slot)
            → none

Sale and regular slots never borrow from each other: an on-sale item only
ever sees sale discounts.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from tally.money import ZERO, round_money
from tally.pricing._types import (
    Discount,
    DiscountProfile,
    LineItem,
    PricedItem,
    usable,
)


def resolve_discount(
    profile: DiscountProfile,
    category_id: str | None,
    sale_active: bool,
) -> Discount | None:
    """
    Pick the discount that applies to one item, or None.

    Only subscription customers get anything.
    """
    if not profile.is_subscription:
        return None

    entry = profile.for_category(category_id)
    if entry is not None:
        chosen = usable(entry.sale_discount if sale_active else entry.discount)
        if chosen is not None:
            return chosen

    return usable(profile.sale_discount if sale_active else profile.discount)


def price_item(item: LineItem, profile: DiscountProfile) -> PricedItem:
    """
    Resolve one line item.

    Rounding happens on the unit price; line totals are unit × quantity.

        price_item(LineItem("p1", 2, Decimal("1000")), subscriber)
        # PricedItem(unit_original_price=1000.00, unit_effective_price=900.00, ...)
    """
    original = round_money(item.current_price)
    discount = resolve_discount(profile, item.category_id, item.sale_active)

    if discount is None:
        return PricedItem(
            item=item,
            unit_original_price=original,
            unit_effective_price=original,
            has_discount=False,
        )

    effective = round_money(max(ZERO, discount.apply(item.current_price)))
    return PricedItem(
        item=item,
        unit_original_price=original,
        unit_effective_price=effective,
        has_discount=effective < original,
        applied_discount=discount,
    )


def price_items(
    items: Iterable[LineItem],
    profile: DiscountProfile,
) -> tuple[PricedItem, ...]:
    return tuple(price_item(item, profile) for item in items)


def subtotal_of(priced: Iterable[PricedItem]) -> Decimal:
    return round_money(sum((p.line_total for p in priced), ZERO))


__all__ = ("resolve_discount", "price_item", "price_items", "subtotal_of")
