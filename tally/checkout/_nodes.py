"""
Checkout nodes — the data-fetching graph behind every checkout view.

    RequestNode ─┬─ CartNode ─────┬─ CouponNode ─┬─ TotalsNode ─┬─ SummaryNode
    ContextNode ─┼─ ProfileNode ──┤              │              └─ PaymentOrderNode
                 ├─ CatalogNode ──┼──────────────┤
                 └─ RegionNode ───┴──────────────┘

Independent fetches (cart, profile, catalog, region) run concurrently. Cart
view, checkout view and payment-order creation are different targets over
the same nodes, so all three price an order identically.

Nodes raise TallyError; CheckoutService turns that into Error(...).
"""

import logging
from typing import cast

from kungfu import Error, Ok

import combinators as C
from tally.checkout._graph import node
from tally.checkout._types import (
    CouponCheck,
    PaymentOrder,
    QuoteRequest,
    StoreContext,
    Summary,
)
from tally.errors import StorageError, TallyError, ValidationError
from tally.identity import owner_key, usage_key
from tally.pricing import (
    ComboOffer,
    DeliveryTier,
    DiscountProfile,
    LineItem,
    OrderTotals,
    Region,
    check_coupon,
    check_coupon_requirements,
    compute_order_totals,
    price_items,
    region_for_city,
    subtotal_of,
)

logger = logging.getLogger(__name__)


def _storage_error(e: Exception) -> TallyError:
    if isinstance(e, TallyError):
        return e
    return StorageError(str(e))


# ═══════════════════════════════════════════════════════════════════════════════
# Inputs
# ═══════════════════════════════════════════════════════════════════════════════


@node
class RequestNode:
    def __init__(self, data: QuoteRequest) -> None:
        self.data = data

    @classmethod
    def __compose__(cls, request: QuoteRequest) -> "RequestNode":
        return cls(request)


@node
class ContextNode:
    def __init__(self, data: StoreContext) -> None:
        self.data = data

    @classmethod
    def __compose__(cls, context: StoreContext) -> "ContextNode":
        return cls(context)


# ═══════════════════════════════════════════════════════════════════════════════
# Fetches
# ═══════════════════════════════════════════════════════════════════════════════


@node
class CartNode:
    """Server-side cart snapshot; the only source of line items."""

    def __init__(self, items: tuple[LineItem, ...]) -> None:
        self.items = items

    @classmethod
    async def __compose__(cls, request: RequestNode, ctx: ContextNode) -> "CartNode":
        items = await ctx.data.repo.cart_snapshot(request.data.identity, request.data.at)
        return cls(items)


@node
class ProfileNode:
    def __init__(self, data: DiscountProfile) -> None:
        self.data = data

    @classmethod
    async def __compose__(cls, request: RequestNode, ctx: ContextNode) -> "ProfileNode":
        profile = await ctx.data.repo.get_discount_profile(request.data.identity)
        return cls(profile)


@node
class CatalogNode:
    """Combo offers and delivery tiers, fetched in parallel."""

    def __init__(
        self,
        offers: tuple[ComboOffer, ...],
        tiers: tuple[DeliveryTier, ...],
    ) -> None:
        self.offers = offers
        self.tiers = tiers

    @classmethod
    async def __compose__(cls, ctx: ContextNode) -> "CatalogNode":
        repo = ctx.data.repo
        result = await C.parallel(
            C.catching_async(
                lambda: repo.list_active_combo_offers(),
                on_error=_storage_error,
            ),
            C.catching_async(
                lambda: repo.list_active_delivery_tiers(),
                on_error=_storage_error,
            ),
        )()

        match result:
            case Ok(fetched):
                offers, tiers = fetched
                return cls(
                    cast(tuple[ComboOffer, ...], offers),
                    cast(tuple[DeliveryTier, ...], tiers),
                )
            case Error(e):
                raise e


@node
class RegionNode:
    """
    Shipping region from the chosen address, else the saved default.

    None means no address is known; shipping is then an estimate.
    """

    def __init__(self, data: Region | None) -> None:
        self.data = data

    @classmethod
    async def __compose__(cls, request: RequestNode, ctx: ContextNode) -> "RegionNode":
        address = request.data.shipping_address
        if address is not None:
            city: str | None = address.city
        else:
            city = await ctx.data.repo.get_default_shipping_city(request.data.identity)
        return cls(region_for_city(city, ctx.data.settings.chennai_marker))


# ═══════════════════════════════════════════════════════════════════════════════
# Coupon
# ═══════════════════════════════════════════════════════════════════════════════


@node
class CouponNode:
    """
    Validate the requested code for this customer and cart.

    A rejection is carried, not raised: display views drop the coupon and
    show why, payment views make it fatal.
    """

    def __init__(self, check: CouponCheck) -> None:
        self.check = check

    @classmethod
    async def __compose__(
        cls,
        request: RequestNode,
        ctx: ContextNode,
        cart: CartNode,
        profile: ProfileNode,
    ) -> "CouponNode":
        code = request.data.coupon_code
        if code is None:
            return cls(CouponCheck())

        repo = ctx.data.repo
        key = usage_key(request.data.identity)
        try:
            found = await repo.get_coupon_by_code(code)
            used = found is not None and key is not None and await repo.has_used_coupon(key, code)
            coupon = check_coupon(found, request.data.at, already_used=used)

            priced = price_items(cart.items, profile.data)
            check_coupon_requirements(coupon, priced, subtotal_of(priced))
        except TallyError as e:
            logger.info("coupon %s rejected: %s", code, e.message)
            return cls(CouponCheck(error=e))

        return cls(CouponCheck(coupon=coupon))


# ═══════════════════════════════════════════════════════════════════════════════
# Totals & Views
# ═══════════════════════════════════════════════════════════════════════════════


@node
class TotalsNode:
    def __init__(self, data: OrderTotals) -> None:
        self.data = data

    @classmethod
    async def __compose__(
        cls,
        request: RequestNode,
        ctx: ContextNode,
        cart: CartNode,
        profile: ProfileNode,
        catalog: CatalogNode,
        region: RegionNode,
        coupon: CouponNode,
    ) -> "TotalsNode":
        totals = compute_order_totals(
            cart.items,
            profile.data,
            catalog.offers,
            coupon.check.coupon,
            catalog.tiers,
            region.data,
            at=request.data.at,
            settings=ctx.data.settings,
        )
        return cls(totals)


@node
class SummaryNode:
    """Cart / checkout page view."""

    def __init__(self, data: Summary) -> None:
        self.data = data

    @classmethod
    async def __compose__(cls, totals: TotalsNode, coupon: CouponNode) -> "SummaryNode":
        return cls(
            Summary(
                totals=totals.data,
                coupon=coupon.check.coupon,
                coupon_error=coupon.check.error,
            )
        )


@node
class PaymentOrderNode:
    """
    Server-authoritative payment intent.

    The amount is the recomputed total; the issued intent is remembered so
    that only it can later back an order.
    """

    def __init__(self, data: PaymentOrder) -> None:
        self.data = data

    @classmethod
    async def __compose__(
        cls,
        request: RequestNode,
        ctx: ContextNode,
        totals: TotalsNode,
        coupon: CouponNode,
    ) -> "PaymentOrderNode":
        coupon.check.require()
        order_totals = totals.data
        if not order_totals.items:
            raise ValidationError("Cart is empty")

        settings = ctx.data.settings
        intent = await ctx.data.gateway.create_payment_intent(
            order_totals.total_minor_units,
            settings.currency,
        )
        recorded = await ctx.data.payments.record(
            intent,
            owner_key=owner_key(request.data.identity),
            at=request.data.at,
            ttl=settings.payment_record_ttl,
        )

        match recorded:
            case Ok(record):
                return cls(
                    PaymentOrder(
                        gateway_order_id=record.gateway_order_id,
                        amount_minor=record.amount_minor,
                        currency=record.currency,
                        expires_at=record.expires_at,
                        totals=order_totals,
                    )
                )
            case Error(e):
                raise e


__all__ = (
    "RequestNode",
    "ContextNode",
    "CartNode",
    "ProfileNode",
    "CatalogNode",
    "RegionNode",
    "CouponNode",
    "TotalsNode",
    "SummaryNode",
    "PaymentOrderNode",
)
