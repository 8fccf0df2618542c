"""
Order total composer — the one place every checkout figure comes from.

Evaluation order is fixed:

    price items ─▶ subtotal ─▶ combo discount ─▶ coupon discount ─▶ shipping
                                                                  ─▶ total ≥ 0

Pure: the evaluation instant `at` is an argument, never read from the clock.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from tally.config import DEFAULT_SETTINGS, Settings
from tally.money import ZERO, round_money
from tally.pricing._combo import combo_breakdown
from tally.pricing._coupon import coupon_discount
from tally.pricing._resolve import price_items, subtotal_of
from tally.pricing._shipping import compute_shipping
from tally.pricing._types import (
    ComboOffer,
    Coupon,
    DeliveryTier,
    DiscountProfile,
    LineItem,
    OrderTotals,
    Region,
)

logger = logging.getLogger(__name__)


def compute_order_totals(
    items: Sequence[LineItem],
    profile: DiscountProfile,
    combo_offers: Sequence[ComboOffer] = (),
    coupon: Coupon | None = None,
    delivery_tiers: Sequence[DeliveryTier] = (),
    region: Region | None = None,
    *,
    at: datetime,
    settings: Settings = DEFAULT_SETTINGS,
) -> OrderTotals:
    """
    Compose the order totals.

    The coupon must already be validated (check_coupon); this function only
    applies it. Combo savings come from offer prices, coupon savings from
    subscription-adjusted line totals.

        totals = compute_order_totals(items, profile, offers, coupon, at=now)
        totals.total  # Decimal("1140.00")
    """
    priced = price_items(items, profile)
    subtotal = subtotal_of(priced)

    combos = combo_breakdown(items, combo_offers, at)
    combo_total = round_money(sum((c.discount for c in combos), ZERO))

    coupon_total = coupon_discount(coupon, priced, subtotal)

    quote = compute_shipping(
        items,
        subtotal,
        subscription=profile.is_subscription,
        tiers=delivery_tiers,
        region=region,
        settings=settings,
    )

    raw = subtotal - combo_total - coupon_total + quote.total
    total = round_money(raw)
    if total < 0:
        logger.warning(
            "order total clamped to zero: subtotal=%s combo=%s coupon=%s shipping=%s",
            subtotal,
            combo_total,
            coupon_total,
            quote.total,
        )
        total = ZERO

    logger.debug(
        "totals: subtotal=%s combo=%s coupon=%s shipping=%s total=%s",
        subtotal,
        combo_total,
        coupon_total,
        quote.total,
        total,
    )

    return OrderTotals(
        subtotal=subtotal,
        combo_discount=combo_total,
        coupon_discount=coupon_total,
        shipping=quote.total,
        total=total,
        items=priced,
        shipping_quote=quote,
        combos=combos,
        coupon_code=coupon.code if coupon is not None else None,
    )


__all__ = ("compute_order_totals",)
