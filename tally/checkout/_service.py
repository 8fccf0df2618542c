"""
CheckoutService — the public face of tally.

Every method returns Result[T, TallyError]; domain failures never escape as
exceptions.

    service, engine = await create_service(Settings.from_env())

    match await service.cart_summary(Authenticated("u_1"), coupon_code="SAVE10"):
        case Ok(summary):
            render(summary.totals, summary.coupon_error)
        case Error(e):
            print(e.code, e.message)

Online payment round trip:

    order = await service.create_payment_order(identity, coupon_code="SAVE10")
    # ... customer pays on the gateway, which posts back payment_id + signature
    placed = await service.place_order(
        PlaceOrderRequest(
            identity=identity,
            shipping_address=address,
            coupon_code="SAVE10",
            gateway_order_id=order.gateway_order_id,
            payment_id=payment_id,
            signature=signature,
        )
    )
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime

from kungfu import Error, Ok, Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from tally.checkout._graph import pipeline
from tally.checkout._nodes import PaymentOrderNode, SummaryNode
from tally.checkout._types import (
    CouponQuote,
    PaymentOrder,
    PlaceOrderRequest,
    QuoteRequest,
    StoreContext,
    Summary,
)
from tally.config import DEFAULT_SETTINGS, Settings
from tally.db import (
    Enlisted,
    OrderDraft,
    PaymentMethod,
    PlacedOrder,
    Repository,
    ShippingAddress,
    create_database,
)
from tally.errors import PaymentIntegrityError, StorageError, TallyError, ValidationError
from tally.identity import CustomerIdentity, owner_key
from tally.payments import (
    PaymentGateway,
    PaymentRecord,
    PaymentRecordStore,
    SimulatedGateway,
    verify_signature,
)
from tally.pricing import coupon_applies_to

logger = logging.getLogger(__name__)

_summary_view = pipeline(SummaryNode)
_payment_order_view = pipeline(PaymentOrderNode)


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _summary(request: QuoteRequest, context: StoreContext) -> Summary:
    return (await _summary_view.run(request, context)).data


async def _payment_order(request: QuoteRequest, context: StoreContext) -> PaymentOrder:
    return (await _payment_order_view.run(request, context)).data


def _unwrap[T](result: Result[T, TallyError]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise e


class CheckoutService:
    """Cart, pricing views, payment orders and order placement."""

    __slots__ = ("_context", "_clock")

    def __init__(
        self,
        repo: Repository,
        payments: PaymentRecordStore,
        gateway: PaymentGateway,
        settings: Settings = DEFAULT_SETTINGS,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._context = StoreContext(
            repo=repo,
            payments=payments,
            gateway=gateway,
            settings=settings,
        )
        self._clock = clock

    @property
    def repo(self) -> Repository:
        return self._context.repo

    @property
    def settings(self) -> Settings:
        return self._context.settings

    def _now(self, at: datetime | None) -> datetime:
        return at if at is not None else self._clock()

    async def _guard[T](self, work: Awaitable[T]) -> Result[T, TallyError]:
        try:
            return Ok(await work)
        except TallyError as e:
            return Error(e)
        except SQLAlchemyError as e:
            logger.exception("storage failure")
            return Error(StorageError(f"Storage failure: {e}"))

    # ═══════════════════════════════════════════════════════════════════════════
    # Views
    # ═══════════════════════════════════════════════════════════════════════════

    async def cart_summary(
        self,
        identity: CustomerIdentity,
        coupon_code: str | None = None,
        *,
        at: datetime | None = None,
    ) -> Result[Summary, TallyError]:
        """Cart page: region from the saved default address, if any."""
        request = QuoteRequest(identity, self._now(at), coupon_code)
        return await self._guard(_summary(request, self._context))

    async def checkout_summary(
        self,
        identity: CustomerIdentity,
        shipping_address: ShippingAddress | None = None,
        coupon_code: str | None = None,
        *,
        at: datetime | None = None,
    ) -> Result[Summary, TallyError]:
        """Checkout page: region from the address being checked out to."""
        request = QuoteRequest(identity, self._now(at), coupon_code, shipping_address)
        return await self._guard(_summary(request, self._context))

    async def validate_coupon(
        self,
        identity: CustomerIdentity,
        code: str,
        *,
        product_id: str | None = None,
        at: datetime | None = None,
    ) -> Result[CouponQuote | None, TallyError]:
        """
        Check a code against this customer and the current cart.

        Ok(None) when a product-scoped query meets a coupon for another product.
        """

        async def work() -> CouponQuote | None:
            if product_id is not None:
                found = await self.repo.get_coupon_by_code(code)
                if found is not None and not coupon_applies_to(found, product_id):
                    return None
            request = QuoteRequest(identity, self._now(at), code)
            summary = await _summary(request, self._context)
            if summary.coupon_error is not None:
                raise summary.coupon_error
            coupon = summary.coupon
            if coupon is None:
                raise ValidationError("Coupon code is required")
            return CouponQuote(coupon=coupon, discount=summary.totals.coupon_discount)

        return await self._guard(work())

    # ═══════════════════════════════════════════════════════════════════════════
    # Payments
    # ═══════════════════════════════════════════════════════════════════════════

    async def create_payment_order(
        self,
        identity: CustomerIdentity,
        coupon_code: str | None = None,
        shipping_address: ShippingAddress | None = None,
        *,
        at: datetime | None = None,
    ) -> Result[PaymentOrder, TallyError]:
        """Recompute the total server-side and open a gateway intent for it."""
        request = QuoteRequest(identity, self._now(at), coupon_code, shipping_address)
        return await self._guard(_payment_order(request, self._context))

    async def _verify(
        self,
        identity: CustomerIdentity,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        at: datetime,
    ) -> PaymentRecord:
        if not verify_signature(
            gateway_order_id, payment_id, signature, self.settings.payment_secret
        ):
            logger.warning("invalid signature for payment order %s", gateway_order_id)
            raise PaymentIntegrityError("Invalid payment signature")

        return _unwrap(
            await self._context.payments.mark_verified(
                gateway_order_id,
                payment_id=payment_id,
                signature=signature,
                owner_key=owner_key(identity),
                at=at,
            )
        )

    async def verify_payment(
        self,
        identity: CustomerIdentity,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        *,
        at: datetime | None = None,
    ) -> Result[PaymentRecord, TallyError]:
        """Check the gateway signature and mark the payment record verified."""
        return await self._guard(
            self._verify(identity, gateway_order_id, payment_id, signature, self._now(at))
        )

    async def purge_expired_payments(
        self,
        *,
        at: datetime | None = None,
    ) -> Result[int, TallyError]:
        return await self._context.payments.purge_expired(self._now(at))

    # ═══════════════════════════════════════════════════════════════════════════
    # Orders
    # ═══════════════════════════════════════════════════════════════════════════

    async def _place(self, request: PlaceOrderRequest, at: datetime) -> PlacedOrder:
        quote = QuoteRequest(
            request.identity,
            at,
            request.coupon_code,
            request.shipping_address,
        )
        summary = await _summary(quote, self._context)
        if summary.coupon_error is not None:
            raise summary.coupon_error
        if summary.is_empty:
            raise ValidationError("Cart is empty")

        totals = summary.totals
        enlist: tuple[Enlisted, ...] = ()
        gateway_order_id: str | None = None
        payment_id: str | None = None

        match request.payment_method:
            case PaymentMethod.ONLINE:
                gateway_order_id, payment_id, signature = request.payment_proof()
                record = await self._verify(
                    request.identity, gateway_order_id, payment_id, signature, at
                )
                if (
                    record.amount_minor != totals.total_minor_units
                    or record.currency != self.settings.currency
                ):
                    logger.warning(
                        "payment %s amount %s %s does not match order total %s %s",
                        gateway_order_id,
                        record.amount_minor,
                        record.currency,
                        totals.total_minor_units,
                        self.settings.currency,
                    )
                    raise PaymentIntegrityError("Payment amount does not match order total")
                enlist = (
                    self._context.payments.consumer(
                        gateway_order_id,
                        owner_key=owner_key(request.identity),
                        amount_minor=record.amount_minor,
                        at=at,
                    ),
                )
            case PaymentMethod.COD:
                pass

        draft = OrderDraft(
            identity=request.identity,
            totals=totals,
            payment_method=request.payment_method,
            shipping_address=request.shipping_address,
            currency=self.settings.currency,
            gateway_order_id=gateway_order_id,
            payment_id=payment_id,
        )
        return await self.repo.commit_order(draft, at=at, enlist=enlist)

    async def place_order(
        self,
        request: PlaceOrderRequest,
        *,
        at: datetime | None = None,
    ) -> Result[PlacedOrder, TallyError]:
        """
        Recompute, check the payment, and commit atomically.

        Online orders consume their verified payment record exactly once; a
        replay finds no record and fails with PaymentIntegrityError.
        """
        return await self._guard(self._place(request, self._now(at)))

    # ═══════════════════════════════════════════════════════════════════════════
    # Cart
    # ═══════════════════════════════════════════════════════════════════════════

    async def add_to_cart(
        self,
        identity: CustomerIdentity,
        product_id: str,
        quantity: int = 1,
        *,
        variant_id: str | None = None,
        combo_offer_id: str | None = None,
        requested_delivery_date: date | None = None,
        at: datetime | None = None,
    ) -> Result[str, TallyError]:
        return await self._guard(
            self.repo.add_to_cart(
                identity,
                product_id,
                quantity,
                variant_id=variant_id,
                combo_offer_id=combo_offer_id,
                requested_delivery_date=requested_delivery_date,
                at=self._now(at),
            )
        )

    async def update_cart_quantity(
        self,
        identity: CustomerIdentity,
        cart_item_id: str,
        quantity: int,
    ) -> Result[None, TallyError]:
        return await self._guard(self.repo.update_cart_quantity(identity, cart_item_id, quantity))

    async def remove_from_cart(
        self,
        identity: CustomerIdentity,
        cart_item_id: str,
    ) -> Result[None, TallyError]:
        return await self._guard(self.repo.remove_from_cart(identity, cart_item_id))

    async def set_delivery_date(
        self,
        identity: CustomerIdentity,
        cart_item_id: str,
        delivery_date: date | None,
    ) -> Result[None, TallyError]:
        return await self._guard(
            self.repo.set_delivery_date(identity, cart_item_id, delivery_date)
        )

    async def clear_cart(self, identity: CustomerIdentity) -> Result[int, TallyError]:
        return await self._guard(self.repo.clear_cart(identity))


async def create_service(
    settings: Settings = DEFAULT_SETTINGS,
    gateway: PaymentGateway | None = None,
) -> tuple[CheckoutService, AsyncEngine]:
    """
    Wire a CheckoutService against settings.database_url.

    Without a gateway, a SimulatedGateway signing with the payment secret is
    used. The caller owns the engine and disposes it.
    """
    session_factory, engine = await create_database(settings.database_url)
    service = CheckoutService(
        Repository(session_factory),
        PaymentRecordStore(session_factory),
        gateway if gateway is not None else SimulatedGateway(settings.payment_secret),
        settings,
    )
    return service, engine


__all__ = ("CheckoutService", "create_service")
