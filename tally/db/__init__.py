"""
Persistence — SQLAlchemy tables, repository, order commit.

    from tally.db import create_database, Repository

    session_factory, engine = await create_database("sqlite+aiosqlite:///tally.db")
    repo = Repository(session_factory)
"""

from tally.db._database import create_database
from tally.db._repo import Enlisted, Repository, order_number
from tally.db._tables import (
    AddressTable,
    Base,
    CartItemTable,
    CategoryDiscountTable,
    ComboOfferTable,
    CouponRedemptionTable,
    CouponTable,
    CustomerTable,
    DeliveryTierTable,
    OrderItemTable,
    OrderTable,
    PaymentRecordTable,
    ProductTable,
    VariantTable,
)
from tally.db._types import (
    OrderDraft,
    PaymentMethod,
    PaymentStatus,
    PlacedOrder,
    ShippingAddress,
)

__all__ = (
    # Setup
    "create_database",
    # Repository
    "Repository",
    "Enlisted",
    "order_number",
    # Types
    "PaymentMethod",
    "PaymentStatus",
    "ShippingAddress",
    "OrderDraft",
    "PlacedOrder",
    # Tables
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
