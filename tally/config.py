"""
Settings — store configuration.

Fluent builder pattern, immutable:

    settings = (
        Settings()
        .with_shipping(threshold=Decimal("500"), fee=Decimal("99"))
        .with_payment_ttl(minutes=30)
        .with_payment_secret("rzp_secret")
    )

Or from the environment (a .env file is honoured):

    settings = Settings.from_env()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from decimal import Decimal

from dotenv import load_dotenv


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Store-wide pricing and payment configuration.

    Note: Immutable — each with_* method returns a new Settings.
    """

    currency: str = "INR"
    currency_symbol: str = "₹"
    free_shipping_threshold: Decimal = Decimal("500")
    flat_shipping_fee: Decimal = Decimal("99")
    chennai_marker: str = "chennai"
    payment_record_ttl: timedelta = timedelta(minutes=30)
    payment_secret: str = ""
    database_url: str = "sqlite+aiosqlite:///tally.db"

    def with_shipping(
        self,
        *,
        threshold: Decimal | None = None,
        fee: Decimal | None = None,
    ) -> Settings:
        """
        Set the flat-rate rule for non-subscription customers.

        Orders with subtotal >= threshold ship free, otherwise fee applies.
        """
        return replace(
            self,
            free_shipping_threshold=(
                threshold if threshold is not None else self.free_shipping_threshold
            ),
            flat_shipping_fee=fee if fee is not None else self.flat_shipping_fee,
        )

    def with_payment_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        delta: timedelta | None = None,
    ) -> Settings:
        """
        Set how long a payment record stays consumable.

            .with_payment_ttl(minutes=30)
            .with_payment_ttl(delta=timedelta(hours=1))
        """
        if delta is not None:
            ttl = delta
        else:
            ttl = timedelta(seconds=(seconds or 0) + (minutes or 0) * 60)
        if ttl <= timedelta(0):
            raise ValueError("Payment record TTL must be positive")
        return replace(self, payment_record_ttl=ttl)

    def with_payment_secret(self, secret: str) -> Settings:
        """Set the gateway key secret used for signature verification."""
        return replace(self, payment_secret=secret)

    def with_currency(self, code: str, symbol: str) -> Settings:
        return replace(self, currency=code, currency_symbol=symbol)

    def with_database_url(self, url: str) -> Settings:
        return replace(self, database_url=url)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> Settings:
        """
        Build settings from TALLY_* environment variables.

        Recognised: TALLY_DATABASE_URL, TALLY_PAYMENT_SECRET, TALLY_CURRENCY,
        TALLY_CURRENCY_SYMBOL, TALLY_FREE_SHIPPING_THRESHOLD,
        TALLY_FLAT_SHIPPING_FEE, TALLY_PAYMENT_TTL_MINUTES.
        """
        load_dotenv(dotenv_path)
        base = cls()

        settings = base.with_database_url(
            os.getenv("TALLY_DATABASE_URL", base.database_url)
        ).with_payment_secret(os.getenv("TALLY_PAYMENT_SECRET", base.payment_secret))

        settings = settings.with_currency(
            os.getenv("TALLY_CURRENCY", base.currency),
            os.getenv("TALLY_CURRENCY_SYMBOL", base.currency_symbol),
        )

        threshold = os.getenv("TALLY_FREE_SHIPPING_THRESHOLD")
        fee = os.getenv("TALLY_FLAT_SHIPPING_FEE")
        settings = settings.with_shipping(
            threshold=Decimal(threshold) if threshold else None,
            fee=Decimal(fee) if fee else None,
        )

        ttl_minutes = os.getenv("TALLY_PAYMENT_TTL_MINUTES")
        if ttl_minutes:
            settings = settings.with_payment_ttl(minutes=float(ttl_minutes))

        return settings


DEFAULT_SETTINGS = Settings()


__all__ = ("Settings", "DEFAULT_SETTINGS")
