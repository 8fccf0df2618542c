"""
Repository — storefront reads, cart aggregate, order commit.

Every call opens its own AsyncSession, so independent reads can run in
parallel from the checkout graph. Domain failures raise TallyError
subclasses; SQLAlchemy errors propagate for the service to map.

    session_factory, engine = await create_database(url)
    repo = Repository(session_factory)

    items = await repo.cart_snapshot(Authenticated("u_1"), at=now)
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import date, datetime
from typing import Any, cast

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

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
    ProductTable,
    VariantTable,
)
from tally.db._types import OrderDraft, PlacedOrder
from tally.errors import ConflictError, NotFoundError, ValidationError
from tally.identity import CustomerIdentity, Guest, cart_owner, normalize_email, usage_key
from tally.money import from_minor_units, to_minor_units
from tally.pricing import (
    CategoryDiscount,
    ComboOffer,
    Coupon,
    CustomerType,
    DeliveryTier,
    DiscountProfile,
    LineItem,
    normalize_code,
    parse_discount,
)

logger = logging.getLogger(__name__)

type Enlisted = Callable[[AsyncSession], Awaitable[None]]
"""Extra work that must commit or roll back together with an order."""

_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def order_number(at: datetime) -> str:
    """ORD-<epoch ms>-<4 uppercase alphanumerics>."""
    millis = int(at.timestamp() * 1000)
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(4))
    return f"ORD-{millis}-{suffix}"


def _owned_by(identity: CustomerIdentity) -> ColumnElement[bool]:
    user_id, session_id = cart_owner(identity)
    if user_id is not None:
        return CartItemTable.customer_id == user_id
    return CartItemTable.session_id == session_id


# ═══════════════════════════════════════════════════════════════════════════════
# Row → domain
# ═══════════════════════════════════════════════════════════════════════════════


def _sale_price(product: ProductTable, at: datetime) -> int | None:
    if product.sale_price_minor is None:
        return None
    if product.sale_price_start is not None and product.sale_price_start > at:
        return None
    if product.sale_price_end is not None and product.sale_price_end < at:
        return None
    return product.sale_price_minor


def _line_item(
    cart: CartItemTable,
    product: ProductTable,
    variant: VariantTable | None,
    at: datetime,
) -> LineItem:
    # A variant with its own price replaces the product price, sale included.
    if variant is not None and variant.price_minor is not None:
        base, sale = variant.price_minor, None
    else:
        base, sale = product.price_minor, _sale_price(product, at)

    return LineItem(
        product_id=product.id,
        quantity=cart.quantity,
        unit_base_price=from_minor_units(base),
        unit_sale_price=from_minor_units(sale) if sale is not None else None,
        category_id=product.category_id,
        variant_id=cart.variant_id,
        combo_offer_id=cart.combo_offer_id,
        weight_kg=product.weight_kg,
        requested_delivery_date=cart.requested_delivery_date,
        title=product.title,
        gst_rate=product.gst_rate,
        cart_item_id=cart.id,
    )


def _customer_type(value: str) -> CustomerType:
    try:
        return CustomerType(value)
    except ValueError as e:
        raise ValidationError(f"Unknown customer type: {value!r}") from e


def _coupon(row: CouponTable) -> Coupon:
    discount = parse_discount(row.kind, row.amount)
    if discount is None:
        raise ValidationError(f"Coupon {row.code} has no discount configured")
    return Coupon(
        code=row.code,
        discount=discount,
        product_id=row.product_id,
        min_cart_total=(
            from_minor_units(row.min_cart_total_minor)
            if row.min_cart_total_minor is not None
            else None
        ),
        min_quantity=row.min_quantity,
        max_uses=row.max_uses,
        used_count=row.used_count,
        expires_at=row.expires_at,
        is_active=row.is_active,
        description=row.description or "",
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Repository
# ═══════════════════════════════════════════════════════════════════════════════


class Repository:
    """Storefront persistence over an async session factory."""

    __slots__ = ("_session_factory",)

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def add_all(self, rows: Iterable[Base]) -> None:
        """Insert catalog/customer rows (seeding, admin tooling)."""
        async with self._session_factory() as session, session.begin():
            session.add_all(list(rows))

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    async def cart_snapshot(
        self,
        identity: CustomerIdentity,
        at: datetime,
    ) -> tuple[LineItem, ...]:
        """Current cart as pricing input, newest rows first."""
        stmt = (
            select(CartItemTable, ProductTable, VariantTable)
            .join(ProductTable, ProductTable.id == CartItemTable.product_id)
            .outerjoin(VariantTable, VariantTable.id == CartItemTable.variant_id)
            .where(_owned_by(identity), ProductTable.is_active.is_(True))
            .order_by(CartItemTable.created_at.desc(), CartItemTable.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).tuples().all()
        return tuple(_line_item(cart, product, variant, at) for cart, product, variant in rows)

    async def get_discount_profile(self, identity: CustomerIdentity) -> DiscountProfile:
        """Guests and unknown customers get the regular profile."""
        if isinstance(identity, Guest):
            return DiscountProfile.regular()
        user_id = identity.user_id

        async with self._session_factory() as session:
            customer = await session.get(CustomerTable, user_id)
            if customer is None:
                return DiscountProfile.regular()
            entries = (
                await session.scalars(
                    select(CategoryDiscountTable)
                    .where(CategoryDiscountTable.customer_id == user_id)
                    .order_by(CategoryDiscountTable.id)
                )
            ).all()

        return DiscountProfile(
            customer_type=_customer_type(customer.customer_type),
            discount=parse_discount(customer.discount_kind, customer.discount_value),
            sale_discount=parse_discount(
                customer.sale_discount_kind, customer.sale_discount_value
            ),
            category_discounts=tuple(
                CategoryDiscount(
                    category_id=entry.category_id,
                    discount=parse_discount(entry.discount_kind, entry.discount_value),
                    sale_discount=parse_discount(
                        entry.sale_discount_kind, entry.sale_discount_value
                    ),
                )
                for entry in entries
            ),
        )

    async def get_default_shipping_city(self, identity: CustomerIdentity) -> str | None:
        """City of the default address, else of the first saved one."""
        if isinstance(identity, Guest):
            return None
        user_id = identity.user_id

        stmt = (
            select(AddressTable.city)
            .where(AddressTable.customer_id == user_id)
            .order_by(AddressTable.is_default.desc(), AddressTable.id)
            .limit(1)
        )
        async with self._session_factory() as session:
            return await session.scalar(stmt)

    async def list_active_combo_offers(self) -> tuple[ComboOffer, ...]:
        stmt = select(ComboOfferTable).where(ComboOfferTable.is_active.is_(True))
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return tuple(
            ComboOffer(
                id=row.id,
                product_ids=frozenset(row.product_ids),
                original_price=from_minor_units(row.original_price_minor),
                combo_price=from_minor_units(row.combo_price_minor),
                is_active=row.is_active,
                start_date=row.start_date,
                end_date=row.end_date,
                name=row.name,
            )
            for row in rows
        )

    async def list_active_delivery_tiers(self) -> tuple[DeliveryTier, ...]:
        stmt = select(DeliveryTierTable).where(DeliveryTierTable.is_active.is_(True))
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return tuple(
            DeliveryTier(
                label=row.label,
                up_to_weight_kg=row.up_to_weight_kg,
                chennai_fee=from_minor_units(row.chennai_fee_minor),
                pan_india_fee=from_minor_units(row.pan_india_fee_minor),
                is_active=row.is_active,
            )
            for row in rows
        )

    async def get_coupon_by_code(self, code: str) -> Coupon | None:
        """Case-insensitive lookup."""
        stmt = select(CouponTable).where(func.upper(CouponTable.code) == normalize_code(code))
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
        return _coupon(row) if row is not None else None

    async def has_used_coupon(self, key: str, code: str) -> bool:
        stmt = select(func.count(CouponRedemptionTable.id)).where(
            CouponRedemptionTable.identity_key == key,
            CouponRedemptionTable.coupon_code == normalize_code(code),
        )
        async with self._session_factory() as session:
            count = await session.scalar(stmt)
        return bool(count)

    # ───────────────────────────────────────────────────────────────────────────
    # Cart aggregate
    # ───────────────────────────────────────────────────────────────────────────

    async def add_to_cart(
        self,
        identity: CustomerIdentity,
        product_id: str,
        quantity: int = 1,
        *,
        variant_id: str | None = None,
        combo_offer_id: str | None = None,
        requested_delivery_date: date | None = None,
        at: datetime,
    ) -> str:
        """
        Add a product, merging with an existing row for the same
        (product, variant, combo offer). Returns the cart row id.
        """
        if quantity < 1:
            raise ValidationError(f"Quantity must be at least 1, got {quantity}")

        user_id, session_id = cart_owner(identity)
        same_line = select(CartItemTable).where(
            _owned_by(identity),
            CartItemTable.product_id == product_id,
            (
                CartItemTable.variant_id == variant_id
                if variant_id is not None
                else CartItemTable.variant_id.is_(None)
            ),
            (
                CartItemTable.combo_offer_id == combo_offer_id
                if combo_offer_id is not None
                else CartItemTable.combo_offer_id.is_(None)
            ),
        )

        async with self._session_factory() as session, session.begin():
            product = await session.get(ProductTable, product_id)
            if product is None or not product.is_active:
                raise NotFoundError(f"Product {product_id} not found")
            if variant_id is not None:
                variant = await session.get(VariantTable, variant_id)
                if variant is None or variant.product_id != product_id:
                    raise NotFoundError(f"Variant {variant_id} not found")

            existing = await session.scalar(same_line.limit(1))
            if existing is not None:
                existing.quantity += quantity
                if requested_delivery_date is not None:
                    existing.requested_delivery_date = requested_delivery_date
                return existing.id

            row = CartItemTable(
                id=uuid.uuid4().hex,
                customer_id=user_id,
                session_id=session_id,
                product_id=product_id,
                variant_id=variant_id,
                combo_offer_id=combo_offer_id,
                quantity=quantity,
                requested_delivery_date=requested_delivery_date,
                created_at=at,
            )
            session.add(row)
            return row.id

    async def _owned_row(
        self,
        session: AsyncSession,
        identity: CustomerIdentity,
        cart_item_id: str,
    ) -> CartItemTable:
        row = await session.scalar(
            select(CartItemTable).where(CartItemTable.id == cart_item_id, _owned_by(identity))
        )
        if row is None:
            raise NotFoundError(f"Cart item {cart_item_id} not found")
        return row

    async def update_cart_quantity(
        self,
        identity: CustomerIdentity,
        cart_item_id: str,
        quantity: int,
    ) -> None:
        """Set a row's quantity; 0 removes the row."""
        if quantity < 0:
            raise ValidationError(f"Quantity cannot be negative, got {quantity}")

        async with self._session_factory() as session, session.begin():
            row = await self._owned_row(session, identity, cart_item_id)
            if quantity == 0:
                await session.delete(row)
            else:
                row.quantity = quantity

    async def remove_from_cart(self, identity: CustomerIdentity, cart_item_id: str) -> None:
        async with self._session_factory() as session, session.begin():
            row = await self._owned_row(session, identity, cart_item_id)
            await session.delete(row)

    async def set_delivery_date(
        self,
        identity: CustomerIdentity,
        cart_item_id: str,
        delivery_date: date | None,
    ) -> None:
        async with self._session_factory() as session, session.begin():
            row = await self._owned_row(session, identity, cart_item_id)
            row.requested_delivery_date = delivery_date

    async def clear_cart(self, identity: CustomerIdentity) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(delete(CartItemTable).where(_owned_by(identity)))
        return cast(CursorResult[Any], result).rowcount

    # ───────────────────────────────────────────────────────────────────────────
    # Order commit
    # ───────────────────────────────────────────────────────────────────────────

    async def commit_order(
        self,
        draft: OrderDraft,
        *,
        at: datetime,
        enlist: Sequence[Enlisted] = (),
    ) -> PlacedOrder:
        """
        Persist an order atomically.

        One transaction, in this order:
            1. coupon redemption row (unique per identity + code)
            2. guarded used_count increment
            3. order + order items
            4. enlisted work (payment record consumption)
            5. removal of the priced cart rows

        Raises:
            ConflictError: the identity already redeemed the coupon, or a priced
                cart row changed since the totals were computed
            ValidationError: coupon usage cap reached, or no identity key
            whatever an enlisted callable raises (rolls everything back)
        """
        totals = draft.totals
        code = totals.coupon_code
        key = usage_key(draft.identity)
        customer_id, _ = cart_owner(draft.identity)
        order_id = uuid.uuid4().hex
        number = order_number(at)

        guest_email: str | None = None
        if isinstance(draft.identity, Guest) and draft.identity.email:
            guest_email = normalize_email(draft.identity.email)

        priced_rows = [
            (p.item.cart_item_id, p.item.quantity)
            for p in totals.items
            if p.item.cart_item_id is not None
        ]

        async with self._session_factory() as session, session.begin():
            if code is not None:
                if key is None:
                    raise ValidationError("An email address is required to redeem a coupon")

                session.add(
                    CouponRedemptionTable(
                        identity_key=key,
                        coupon_code=code,
                        order_id=order_id,
                        created_at=at,
                    )
                )
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise ConflictError("Coupon already used") from e

                bumped = await session.execute(
                    update(CouponTable)
                    .where(
                        func.upper(CouponTable.code) == code,
                        CouponTable.is_active.is_(True),
                        or_(
                            CouponTable.max_uses.is_(None),
                            CouponTable.used_count < CouponTable.max_uses,
                        ),
                    )
                    .values(used_count=CouponTable.used_count + 1)
                    .execution_options(synchronize_session=False)
                )
                if cast(CursorResult[Any], bumped).rowcount != 1:
                    raise ValidationError("Coupon usage limit reached")

            session.add(
                OrderTable(
                    id=order_id,
                    order_number=number,
                    customer_id=customer_id,
                    guest_email=guest_email,
                    subtotal_minor=to_minor_units(totals.subtotal),
                    combo_discount_minor=to_minor_units(totals.combo_discount),
                    coupon_discount_minor=to_minor_units(totals.coupon_discount),
                    discount_minor=to_minor_units(totals.discount),
                    shipping_minor=to_minor_units(totals.shipping),
                    total_minor=totals.total_minor_units,
                    currency=draft.currency,
                    coupon_code=code,
                    status="pending",
                    payment_method=draft.payment_method.value,
                    payment_status=draft.payment_status.value,
                    gateway_order_id=draft.gateway_order_id,
                    payment_id=draft.payment_id,
                    shipping_address=draft.shipping_address.to_json(),
                    created_at=at,
                )
            )
            # Items reference the order row, so it must be written first.
            await session.flush()
            session.add_all(
                OrderItemTable(
                    order_id=order_id,
                    product_id=p.item.product_id,
                    variant_id=p.item.variant_id,
                    combo_offer_id=p.item.combo_offer_id,
                    title=p.item.title or p.item.product_id,
                    unit_price_minor=to_minor_units(p.unit_effective_price),
                    quantity=p.item.quantity,
                    gst_rate=p.item.gst_rate,
                    requested_delivery_date=p.item.requested_delivery_date,
                )
                for p in totals.items
            )
            await session.flush()

            for work in enlist:
                await work(session)

            # A row edited since pricing no longer matches and aborts the order.
            for cart_item_id, quantity in priced_rows:
                removed = await session.execute(
                    delete(CartItemTable).where(
                        _owned_by(draft.identity),
                        CartItemTable.id == cart_item_id,
                        CartItemTable.quantity == quantity,
                    )
                )
                if cast(CursorResult[Any], removed).rowcount != 1:
                    raise ConflictError("Cart changed, please review")

        logger.info(
            "order %s committed: total=%s method=%s coupon=%s",
            number,
            totals.total,
            draft.payment_method.value,
            code,
        )
        return PlacedOrder(
            order_id=order_id,
            order_number=number,
            total=totals.total,
            payment_method=draft.payment_method,
            payment_status=draft.payment_status,
            coupon_code=code,
        )

    async def get_order(self, order_id: str) -> OrderTable | None:
        async with self._session_factory() as session:
            return await session.get(OrderTable, order_id)

    async def list_order_items(self, order_id: str) -> tuple[OrderItemTable, ...]:
        stmt = (
            select(OrderItemTable)
            .where(OrderItemTable.order_id == order_id)
            .order_by(OrderItemTable.id)
        )
        async with self._session_factory() as session:
            return tuple((await session.scalars(stmt)).all())

    async def get_coupon_used_count(self, code: str) -> int | None:
        stmt = select(CouponTable.used_count).where(
            func.upper(CouponTable.code) == normalize_code(code)
        )
        async with self._session_factory() as session:
            return await session.scalar(stmt)


__all__ = ("Enlisted", "Repository", "order_number")
