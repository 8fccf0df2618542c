"""
Coupons — validation and discount application.

Validation answers "may this customer use this code right now?".
Application answers "how much does it take off this cart?" and never fails:
a product-scoped coupon on a cart without that product is simply worth 0.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from tally._types import Money
from tally.errors import ConflictError, NotFoundError, ValidationError
from tally.money import ZERO, format_currency, round_money
from tally.pricing._types import Coupon, Fixed, Percentage, PricedItem

logger = logging.getLogger(__name__)

_HUNDRED = 100


# ═══════════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════════


def check_coupon(
    coupon: Coupon | None,
    at: datetime,
    *,
    already_used: bool = False,
) -> Coupon:
    """
    Validate a looked-up coupon for one customer.

    Raises:
        NotFoundError: unknown or deactivated code
        ValidationError: expired or usage cap reached
        ConflictError: this customer already redeemed it
    """
    if coupon is None or not coupon.is_active:
        raise NotFoundError("Invalid coupon code")
    if coupon.is_expired(at):
        raise ValidationError("Coupon has expired")
    if coupon.is_exhausted:
        raise ValidationError("Coupon usage limit reached")
    if already_used:
        raise ConflictError("Coupon already used")
    return coupon


def coupon_applies_to(coupon: Coupon, product_id: str | None) -> bool:
    """
    Scope filter for product-targeted lookups.

    Store-wide coupons apply everywhere; product coupons only to their product.
    An unscoped query (product_id None) accepts every coupon.
    """
    if product_id is None or coupon.is_store_wide:
        return True
    return coupon.product_id == product_id


def check_coupon_requirements(
    coupon: Coupon,
    priced: Sequence[PricedItem],
    subtotal: Money,
) -> None:
    """Minimum cart total / minimum quantity gates. Raises ValidationError."""
    if coupon.min_cart_total is not None and subtotal < coupon.min_cart_total:
        raise ValidationError(
            f"Coupon {coupon.code} requires a cart total of at least "
            f"{format_currency(coupon.min_cart_total)}"
        )

    if coupon.min_quantity is not None:
        if coupon.is_store_wide:
            quantity = sum(p.item.quantity for p in priced)
        else:
            quantity = sum(
                p.item.quantity for p in priced if p.item.product_id == coupon.product_id
            )
        if quantity < coupon.min_quantity:
            raise ValidationError(
                f"Coupon {coupon.code} requires at least {coupon.min_quantity} items"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# Application
# ═══════════════════════════════════════════════════════════════════════════════


def _scope_total(coupon: Coupon, priced: Sequence[PricedItem], subtotal: Money) -> Money:
    if coupon.is_store_wide:
        return subtotal
    for p in priced:
        if p.item.product_id == coupon.product_id:
            return p.line_total
    return ZERO


def coupon_discount(
    coupon: Coupon | None,
    priced: Sequence[PricedItem],
    subtotal: Money,
) -> Money:
    """
    Discount contributed by a validated coupon.

    Works on resolved (subscription/sale-adjusted) prices. Never exceeds the
    amount it is scoped to.
    """
    if coupon is None:
        return ZERO

    scope = _scope_total(coupon, priced, subtotal)
    if scope <= 0:
        return ZERO

    match coupon.discount:
        case Percentage(value):
            amount = scope * value / _HUNDRED
        case Fixed(value):
            amount = min(value, scope)

    amount = round_money(min(max(ZERO, amount), scope))
    logger.debug("coupon %s: scope=%s discount=%s", coupon.code, scope, amount)
    return amount


__all__ = (
    "check_coupon",
    "coupon_applies_to",
    "check_coupon_requirements",
    "coupon_discount",
)
