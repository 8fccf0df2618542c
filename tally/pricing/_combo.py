"""
Combo offers — complete-set detection.

A combo pays out only when every product of the offer sits in the cart under
that offer, and pays once per complete set:

    offer {P1, P2}, 500 → 400
    cart  P1 ×2, P2 ×3 (both tagged with the offer)
    sets  = min(2, 3) = 2  →  discount = 100 × 2 = 200

Stale or dead offer references contribute zero; carts outlive campaigns.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime

from tally._types import Money
from tally.money import ZERO, round_money
from tally.pricing._types import ComboApplication, ComboOffer, LineItem


def group_by_combo(items: Iterable[LineItem]) -> dict[str, list[LineItem]]:
    """Cart items keyed by combo offer id; untagged items are left out."""
    groups: dict[str, list[LineItem]] = defaultdict(list)
    for item in items:
        if item.combo_offer_id is not None:
            groups[item.combo_offer_id].append(item)
    return dict(groups)


def complete_sets(offer: ComboOffer, group: Sequence[LineItem]) -> int:
    """Number of complete sets in a group; 0 when any required product is absent."""
    quantities: dict[str, int] = defaultdict(int)
    for item in group:
        quantities[item.product_id] += item.quantity

    if not offer.product_ids <= quantities.keys():
        return 0
    return min(quantities[pid] for pid in offer.product_ids)


def combo_breakdown(
    items: Iterable[LineItem],
    offers: Iterable[ComboOffer],
    at: datetime,
) -> tuple[ComboApplication, ...]:
    """Every offer that paid out, in first-seen cart order."""
    catalog = {offer.id: offer for offer in offers}
    applied: list[ComboApplication] = []

    for offer_id, group in group_by_combo(items).items():
        offer = catalog.get(offer_id)
        if offer is None or not offer.is_live(at):
            continue

        sets = complete_sets(offer, group)
        if sets <= 0:
            continue

        discount = max(ZERO, round_money(offer.per_set_discount * sets))
        applied.append(ComboApplication(offer_id=offer_id, sets=sets, discount=discount))

    return tuple(applied)


def combo_discount(
    items: Iterable[LineItem],
    offers: Iterable[ComboOffer],
    at: datetime,
) -> Money:
    """Aggregate combo discount, subtracted once from the subtotal."""
    return round_money(sum((c.discount for c in combo_breakdown(items, offers, at)), ZERO))


__all__ = ("group_by_combo", "complete_sets", "combo_breakdown", "combo_discount")
