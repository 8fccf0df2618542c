"""
Shipping — flat rule for regular customers, weight tiers for subscribers.

Subscription shipping is charged per requested delivery date:

    items ─group by date─▶ groups ─Σ weight×qty─▶ tier ─region─▶ fee
                                                         Σ fees = shipping
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from tally._types import Money
from tally.config import DEFAULT_SETTINGS, Settings
from tally.money import ZERO, round_money
from tally.pricing._types import (
    UNASSIGNED,
    DeliveryGroup,
    DeliveryTier,
    LineItem,
    Region,
    ShippingQuote,
)


def region_for_city(city: str | None, marker: str = "chennai") -> Region | None:
    """Chennai if the city mentions it, otherwise pan-India. None when unknown."""
    if city is None or not city.strip():
        return None
    if marker.lower() in city.lower():
        return Region.CHENNAI
    return Region.PAN_INDIA


def flat_shipping(subtotal: Money, settings: Settings = DEFAULT_SETTINGS) -> Money:
    if subtotal >= settings.free_shipping_threshold:
        return ZERO
    return round_money(settings.flat_shipping_fee)


def select_tier(
    tiers: Iterable[DeliveryTier],
    weight_kg: Decimal,
) -> DeliveryTier | None:
    """First active tier covering the weight, else the heaviest one."""
    ordered = sorted((t for t in tiers if t.is_active), key=lambda t: t.up_to_weight_kg)
    if not ordered:
        return None
    for tier in ordered:
        if tier.up_to_weight_kg >= weight_kg:
            return tier
    return ordered[-1]


def _group_key(delivery_date: date | None) -> str:
    return delivery_date.isoformat() if delivery_date is not None else UNASSIGNED


def group_by_delivery_date(items: Iterable[LineItem]) -> dict[str, list[LineItem]]:
    groups: dict[str, list[LineItem]] = {}
    for item in items:
        groups.setdefault(_group_key(item.requested_delivery_date), []).append(item)
    return groups


def subscription_shipping(
    items: Sequence[LineItem],
    tiers: Sequence[DeliveryTier],
    region: Region | None,
) -> ShippingQuote:
    """
    Tiered shipping per delivery-date group.

    Without a known region the quote is priced for Chennai and flagged as an
    estimate; the real figure is settled once an address is chosen.
    """
    is_estimate = region is None
    resolved = region if region is not None else Region.CHENNAI

    groups: list[DeliveryGroup] = []
    for key, group in group_by_delivery_date(items).items():
        weight = sum((item.total_weight_kg for item in group), Decimal("0"))
        tier = select_tier(tiers, weight) if weight > 0 else None
        fee = round_money(tier.fee_for(resolved)) if tier is not None else ZERO
        groups.append(
            DeliveryGroup(
                key=key,
                delivery_date=group[0].requested_delivery_date,
                weight_kg=weight,
                fee=fee,
                tier_label=tier.label if tier is not None else None,
            )
        )

    multiple = len(groups) > 1 or (len(groups) == 1 and groups[0].key != UNASSIGNED)
    return ShippingQuote(
        total=round_money(sum((g.fee for g in groups), ZERO)),
        groups=tuple(groups),
        region=resolved,
        is_estimate=is_estimate,
        has_multiple_delivery_dates=multiple,
    )


def compute_shipping(
    items: Sequence[LineItem],
    subtotal: Money,
    *,
    subscription: bool,
    tiers: Sequence[DeliveryTier] = (),
    region: Region | None = None,
    settings: Settings = DEFAULT_SETTINGS,
) -> ShippingQuote:
    """Dispatch to the flat or the tiered rule. An empty cart ships for free."""
    if not items:
        return ShippingQuote(total=ZERO, region=region)
    if subscription:
        return subscription_shipping(items, tiers, region)
    return ShippingQuote(total=flat_shipping(subtotal, settings), region=region)


__all__ = (
    "region_for_city",
    "flat_shipping",
    "select_tier",
    "group_by_delivery_date",
    "subscription_shipping",
    "compute_shipping",
)
