"""
Tables — SQLAlchemy models for the storefront state pricing reads and
order placement writes.

Money columns hold integer paise (`*_minor`). Ratios and weights that are
not money (percentages, kilograms, GST rates) go through DecimalText so that
SQLite round-trips them exactly.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


# ═══════════════════════════════════════════════════════════════════════════════
# Column types
# ═══════════════════════════════════════════════════════════════════════════════


class DecimalText(TypeDecorator[Decimal]):
    """Exact decimal stored as text."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return str(Decimal(str(value)))

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware UTC timestamps.

    Stored naive (UTC) because SQLite has no offset support; naive values
    coming in are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class ProductTable(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    sale_price_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sale_price_start: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    sale_price_end: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    weight_kg: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal("0"))
    gst_rate: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal("18"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class VariantTable(Base):
    """Variant price, when set, replaces the product price."""

    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("products.id"), nullable=False, index=True
    )
    option_name: Mapped[str] = mapped_column(String(64), nullable=False)
    option_value: Mapped[str] = mapped_column(String(64), nullable=False)
    price_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ComboOfferTable(Base):
    __tablename__ = "combo_offers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    original_price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    combo_price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DeliveryTierTable(Base):
    __tablename__ = "delivery_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(64), nullable=False)
    up_to_weight_kg: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    chennai_fee_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    pan_india_fee_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Customers
# ═══════════════════════════════════════════════════════════════════════════════


class CustomerTable(Base):
    """
    Registered customer with its discount entitlement.

    Discounts are stored as (kind, value) pairs; see pricing.parse_discount.
    """

    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    customer_type: Mapped[str] = mapped_column(String(32), nullable=False, default="regular")

    discount_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)
    sale_discount_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sale_discount_value: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)


class CategoryDiscountTable(Base):
    __tablename__ = "customer_category_discounts"
    __table_args__ = (UniqueConstraint("customer_id", "category_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("customers.id"), nullable=False, index=True
    )
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)

    discount_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)
    sale_discount_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sale_discount_value: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)


class AddressTable(Base):
    __tablename__ = "addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("customers.id"), nullable=False, index=True
    )
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    address1: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    state: Mapped[str | None] = mapped_column(String(128), nullable=True)
    postal_code: Mapped[str] = mapped_column(String(16), nullable=False)
    country: Mapped[str] = mapped_column(String(64), nullable=False, default="India")
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartItemTable(Base):
    """Exactly one of customer_id / session_id is set."""

    __tablename__ = "cart_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    product_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    combo_offer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    requested_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Coupons
# ═══════════════════════════════════════════════════════════════════════════════


class CouponTable(Base):
    __tablename__ = "coupons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    min_cart_total_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class CouponRedemptionTable(Base):
    """One row per (customer identity, code); the constraint is the single-use guard."""

    __tablename__ = "coupon_redemptions"
    __table_args__ = (UniqueConstraint("identity_key", "coupon_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_key: Mapped[str] = mapped_column(String(320), nullable=False)
    coupon_code: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderTable(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Server-recomputed figures
    subtotal_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    combo_discount_minor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coupon_discount_minor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_minor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_minor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    gateway_order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    shipping_address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class OrderItemTable(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("orders.id"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    combo_offer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_rate: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    requested_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Payment records
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentRecordTable(Base):
    """
    Server-side memory of a payment intent.

    Lifecycle: created → verified → (row deleted when an order consumes it).
    Rows past expires_at are never consumable and get purged.
    """

    __tablename__ = "payment_records"

    gateway_order_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    owner_key: Mapped[str] = mapped_column(String(320), nullable=False)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="created")
    payment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)


__all__ = (
    "DecimalText",
    "UTCDateTime",
    "Base",
    "ProductTable",
    "VariantTable",
    "ComboOfferTable",
    "DeliveryTierTable",
    "CustomerTable",
    "CategoryDiscountTable",
    "AddressTable",
    "CartItemTable",
    "CouponTable",
    "CouponRedemptionTable",
    "OrderTable",
    "OrderItemTable",
    "PaymentRecordTable",
)
