from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from tally.errors import ValidationError
from tally.pricing import ComboApplication, ComboOffer, LineItem, combo_breakdown, combo_discount

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def offer(*product_ids: str, original: str = "500", combo: str = "400", **kwargs) -> ComboOffer:
    return ComboOffer(
        id=kwargs.pop("id", "X"),
        product_ids=frozenset(product_ids),
        original_price=Decimal(original),
        combo_price=Decimal(combo),
        **kwargs,
    )


def tagged(product_id: str, quantity: int, combo_id: str | None = "X") -> LineItem:
    return LineItem(product_id, quantity, Decimal("250"), combo_offer_id=combo_id)


def test_discount_per_complete_set():
    items = [tagged("P1", 2), tagged("P2", 3)]

    assert combo_discount(items, [offer("P1", "P2")], NOW) == Decimal("200.00")


def test_smallest_quantity_bounds_the_sets():
    items = [tagged("A", 3), tagged("B", 1), tagged("C", 5)]

    applied = combo_breakdown(items, [offer("A", "B", "C", original="900", combo="750")], NOW)

    assert applied == (ComboApplication(offer_id="X", sets=1, discount=Decimal("150.00")),)


def test_missing_product_pays_nothing():
    items = [tagged("P1", 4)]

    assert combo_discount(items, [offer("P1", "P2")], NOW) == Decimal("0.00")


def test_untagged_items_do_not_complete_a_set():
    items = [tagged("P1", 1), tagged("P2", 1, combo_id=None)]

    assert combo_discount(items, [offer("P1", "P2")], NOW) == Decimal("0.00")


def test_split_rows_for_one_product_are_summed():
    items = [tagged("P1", 1), tagged("P1", 1), tagged("P2", 2)]

    applied = combo_breakdown(items, [offer("P1", "P2")], NOW)

    assert applied[0].sets == 2


def test_stale_offer_reference_is_zero():
    items = [tagged("P1", 1, combo_id="gone"), tagged("P2", 1, combo_id="gone")]

    assert combo_discount(items, [offer("P1", "P2")], NOW) == Decimal("0.00")


@pytest.mark.parametrize(
    "dead",
    [
        offer("P1", "P2", is_active=False),
        offer("P1", "P2", start_date=NOW + timedelta(days=1)),
        offer("P1", "P2", end_date=NOW - timedelta(seconds=1)),
    ],
    ids=["inactive", "not-started", "ended"],
)
def test_offers_outside_their_window_pay_nothing(dead: ComboOffer):
    items = [tagged("P1", 1), tagged("P2", 1)]

    assert combo_discount(items, [dead], NOW) == Decimal("0.00")


def test_window_bounds_are_inclusive():
    items = [tagged("P1", 1), tagged("P2", 1)]
    live = offer("P1", "P2", start_date=NOW, end_date=NOW)

    assert combo_discount(items, [live], NOW) == Decimal("100.00")


def test_mispriced_offer_saves_nothing():
    items = [tagged("P1", 1), tagged("P2", 1)]

    assert combo_discount(items, [offer("P1", "P2", combo="600")], NOW) == Decimal("0.00")


def test_several_offers_add_up():
    items = [
        tagged("P1", 1),
        tagged("P2", 1),
        tagged("P3", 2, combo_id="Y"),
        tagged("P4", 2, combo_id="Y"),
    ]
    offers = [offer("P1", "P2"), offer("P3", "P4", id="Y", original="300", combo="250")]

    applied = combo_breakdown(items, offers, NOW)

    assert [a.offer_id for a in applied] == ["X", "Y"]
    assert combo_discount(items, offers, NOW) == Decimal("200.00")


def test_offer_needs_products():
    with pytest.raises(ValidationError):
        offer()
