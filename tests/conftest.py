from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tally.checkout import CheckoutService
from tally.config import DEFAULT_SETTINGS, Settings
from tally.db import (
    AddressTable,
    CategoryDiscountTable,
    ComboOfferTable,
    CouponTable,
    CustomerTable,
    DeliveryTierTable,
    ProductTable,
    Repository,
    ShippingAddress,
    VariantTable,
    create_database,
)
from tally.payments import PaymentRecordStore, SimulatedGateway

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
SECRET = "test-secret"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return DEFAULT_SETTINGS.with_payment_secret(SECRET).with_database_url(
        f"sqlite+aiosqlite:///{tmp_path / 'tally.db'}"
    )


@pytest.fixture
async def session_factory(
    settings: Settings,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    factory, engine = await create_database(settings.database_url)
    yield factory
    await engine.dispose()


@pytest.fixture
def repo(session_factory: async_sessionmaker[AsyncSession]) -> Repository:
    return Repository(session_factory)


@pytest.fixture
def payments(session_factory: async_sessionmaker[AsyncSession]) -> PaymentRecordStore:
    return PaymentRecordStore(session_factory)


@pytest.fixture
def gateway() -> SimulatedGateway:
    return SimulatedGateway(SECRET)


@pytest.fixture
async def seeded(repo: Repository) -> Repository:
    """
    Catalog used across the database tests.

    Prices in rupees: treat 1000 (sale 800), food 500 (large variant 700),
    toy 300, combo parts 250 each (set of two 500 → 400).
    """
    await repo.add_all(
        [
            ProductTable(
                id="p_treat",
                sku="TRT-1",
                title="Peanut Treats",
                category_id="treats",
                price_minor=100_000,
                sale_price_minor=80_000,
                weight_kg=Decimal("0.5"),
            ),
            ProductTable(
                id="p_food",
                sku="FOOD-1",
                title="Kibble 2kg",
                category_id="food",
                price_minor=50_000,
                weight_kg=Decimal("2"),
                gst_rate=Decimal("5"),
            ),
            ProductTable(
                id="p_toy",
                sku="TOY-1",
                title="Rope Toy",
                category_id="toys",
                price_minor=30_000,
                weight_kg=Decimal("0.25"),
            ),
            ProductTable(
                id="p_combo_a",
                sku="CMB-A",
                title="Shampoo",
                category_id="bundles",
                price_minor=25_000,
                weight_kg=Decimal("1"),
            ),
            ProductTable(
                id="p_combo_b",
                sku="CMB-B",
                title="Conditioner",
                category_id="bundles",
                price_minor=25_000,
                weight_kg=Decimal("1"),
            ),
            ProductTable(
                id="p_old_sale",
                sku="OLD-1",
                title="Last Season Bed",
                category_id="beds",
                price_minor=40_000,
                sale_price_minor=30_000,
                sale_price_end=NOW - timedelta(days=1),
                weight_kg=Decimal("3"),
            ),
            ProductTable(
                id="p_retired",
                sku="RET-1",
                title="Retired Leash",
                price_minor=20_000,
                is_active=False,
            ),
        ]
    )
    await repo.add_all(
        [
            VariantTable(
                id="v_food_large",
                product_id="p_food",
                option_name="size",
                option_value="large",
                price_minor=70_000,
            ),
            ComboOfferTable(
                id="combo_ab",
                name="Bath Time",
                product_ids=["p_combo_a", "p_combo_b"],
                original_price_minor=50_000,
                combo_price_minor=40_000,
            ),
            DeliveryTierTable(
                label="Up to 1kg",
                up_to_weight_kg=Decimal("1"),
                chennai_fee_minor=4_000,
                pan_india_fee_minor=8_000,
            ),
            DeliveryTierTable(
                label="Up to 5kg",
                up_to_weight_kg=Decimal("5"),
                chennai_fee_minor=6_000,
                pan_india_fee_minor=12_000,
            ),
            DeliveryTierTable(
                label="Up to 10kg",
                up_to_weight_kg=Decimal("10"),
                chennai_fee_minor=9_000,
                pan_india_fee_minor=18_000,
            ),
            CustomerTable(id="u_regular", email="reg@example.com"),
            CustomerTable(
                id="u_sub",
                email="sub@example.com",
                customer_type="subscription",
                discount_kind="percentage",
                discount_value=Decimal("10"),
            ),
            CustomerTable(
                id="u_sub_new",
                email="new@example.com",
                customer_type="subscription",
                discount_kind="percentage",
                discount_value=Decimal("10"),
            ),
            CouponTable(code="SAVE10", kind="percentage", amount=Decimal("10")),
            CouponTable(code="TOY100", kind="fixed", amount=Decimal("100"), product_id="p_toy"),
            CouponTable(
                code="TOYPAIR",
                kind="percentage",
                amount=Decimal("20"),
                product_id="p_toy",
                min_quantity=2,
            ),
            CouponTable(
                code="BIG",
                kind="fixed",
                amount=Decimal("1000"),
                min_cart_total_minor=200_000,
            ),
            CouponTable(code="LIMITED", kind="percentage", amount=Decimal("5"), max_uses=1),
            CouponTable(
                code="OLD",
                kind="percentage",
                amount=Decimal("20"),
                expires_at=NOW - timedelta(days=1),
            ),
            CouponTable(code="DEAD", kind="fixed", amount=Decimal("50"), is_active=False),
        ]
    )
    await repo.add_all(
        [
            CategoryDiscountTable(
                customer_id="u_sub",
                category_id="toys",
                discount_kind="fixed",
                discount_value=Decimal("50"),
            ),
            AddressTable(
                customer_id="u_sub",
                is_default=True,
                first_name="Meena",
                address1="12 Beach Road",
                city="Chennai",
                postal_code="600001",
            ),
            AddressTable(
                customer_id="u_regular",
                is_default=True,
                first_name="Arun",
                address1="4 MG Road",
                city="Bengaluru",
                postal_code="560001",
            ),
        ]
    )
    return repo


@pytest.fixture
def service(
    seeded: Repository,
    payments: PaymentRecordStore,
    gateway: SimulatedGateway,
    settings: Settings,
) -> CheckoutService:
    return CheckoutService(seeded, payments, gateway, settings, clock=lambda: NOW)


@pytest.fixture
def address() -> ShippingAddress:
    return ShippingAddress(
        first_name="Arun",
        address1="4 MG Road",
        city="Bengaluru",
        postal_code="560001",
    )
