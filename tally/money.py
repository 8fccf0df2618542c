"""
Money — rounding, minor units and display formatting.

All monetary rounding in tally is round-half-up to two places.

    from tally.money import round_money, format_currency

    round_money(Decimal("10.005"))    # Decimal("10.01")
    format_currency(Decimal("1499"))  # "₹1499.00"
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from tally._types import Money, MinorUnits

CURRENCY_SYMBOL = "₹"

ZERO = Decimal("0.00")
_CENT = Decimal("0.01")
_HUNDRED = Decimal(100)


# ═══════════════════════════════════════════════════════════════════════════════
# Rounding & Conversion
# ═══════════════════════════════════════════════════════════════════════════════


def to_money(value: Decimal | int | str | float) -> Money:
    """
    Coerce a value into a two-place Decimal.

    Floats go through str() so 0.1 stays 0.10 rather than its binary expansion.
    """
    if isinstance(value, float):
        value = str(value)
    return round_money(Decimal(value))


def round_money(value: Decimal) -> Money:
    """Round half-up to two decimal places."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Money) -> MinorUnits:
    """Convert a major-unit amount to integer minor units (paise)."""
    return int((round_money(value) * _HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value: MinorUnits) -> Money:
    """Convert integer minor units back to a two-place amount."""
    return round_money(Decimal(value) / _HUNDRED)


# ═══════════════════════════════════════════════════════════════════════════════
# Formatting
# ═══════════════════════════════════════════════════════════════════════════════


def _parse(amount: Decimal | int | float | str) -> Decimal | None:
    try:
        parsed = Decimal(str(amount))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def format_currency(
    amount: Decimal | int | float | str,
    *,
    show_decimals: bool = True,
    decimals: int = 2,
    symbol: str = CURRENCY_SYMBOL,
) -> str:
    """
    Format an amount for display.

    Unparseable input renders as zero rather than raising.

        format_currency(Decimal("99"))                    # "₹99.00"
        format_currency(Decimal("99.5"), show_decimals=False)  # "₹100"
    """
    value = _parse(amount)
    if value is None:
        return f"{symbol}0"

    if show_decimals:
        step = Decimal(1).scaleb(-decimals)
        return f"{symbol}{value.quantize(step, rounding=ROUND_HALF_UP)}"

    return f"{symbol}{value.quantize(Decimal(1), rounding=ROUND_HALF_UP)}"


def format_currency_compact(
    amount: Decimal | int | float | str,
    *,
    symbol: str = CURRENCY_SYMBOL,
) -> str:
    """
    Compact Indian-style notation: crore (Cr), lakh (L), thousand (K).

        format_currency_compact(Decimal("250000"))  # "₹2.5L"
    """
    value = _parse(amount)
    if value is None:
        return f"{symbol}0"

    one_place = Decimal("0.1")
    for threshold, suffix in (
        (Decimal(10_000_000), "Cr"),
        (Decimal(100_000), "L"),
        (Decimal(1_000), "K"),
    ):
        if value >= threshold:
            scaled = (value / threshold).quantize(one_place, rounding=ROUND_HALF_UP)
            return f"{symbol}{scaled}{suffix}"

    return f"{symbol}{value.quantize(Decimal(1), rounding=ROUND_HALF_UP)}"


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CURRENCY_SYMBOL",
    "ZERO",
    "to_money",
    "round_money",
    "to_minor_units",
    "from_minor_units",
    "format_currency",
    "format_currency_compact",
)
