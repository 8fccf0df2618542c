import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from tally.checkout import CheckoutService, PlaceOrderRequest
from tally.db import OrderDraft, PaymentMethod, PaymentStatus, Repository, ShippingAddress
from tally.errors import (
    ConflictError,
    NotFoundError,
    PaymentIntegrityError,
    ValidationError,
)
from tally.identity import Authenticated, Guest
from tally.payments import PaymentRecordStore, SimulatedGateway, sign_payment
from tally.pricing import Region

pytestmark = pytest.mark.usefixtures("seeded")

REGULAR = Authenticated("u_regular")
SUBSCRIBER = Authenticated("u_sub")


def fails_with[E: Exception](result, error: type[E]) -> E:
    match result:
        case Error(e):
            assert isinstance(e, error), f"expected {error.__name__}, got {e!r}"
            return e
        case Ok(value):
            pytest.fail(f"expected {error.__name__}, got Ok({value!r})")


async def pay(service: CheckoutService, gateway: SimulatedGateway, identity, coupon=None):
    """Open a payment order and play the customer paying it."""
    order = (await service.create_payment_order(identity, coupon)).unwrap()
    payment_id, signature = gateway.complete(order.gateway_order_id)
    return order, payment_id, signature


def online(identity, address, order, payment_id, signature, coupon=None) -> PlaceOrderRequest:
    return PlaceOrderRequest(
        identity=identity,
        shipping_address=address,
        coupon_code=coupon,
        gateway_order_id=order.gateway_order_id,
        payment_id=payment_id,
        signature=signature,
    )


def cod(identity, address, coupon=None) -> PlaceOrderRequest:
    return PlaceOrderRequest(
        identity=identity,
        shipping_address=address,
        payment_method=PaymentMethod.COD,
        coupon_code=coupon,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Summaries
# ═══════════════════════════════════════════════════════════════════════════════


async def test_regular_cart_with_store_wide_coupon(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_food", 2)

    summary = (await service.cart_summary(REGULAR, "save10")).unwrap()

    assert summary.totals.subtotal == Decimal("1000.00")
    assert summary.totals.coupon_discount == Decimal("100.00")
    assert summary.totals.shipping == Decimal("0.00")
    assert summary.totals.total == Decimal("900.00")
    assert summary.coupon is not None and summary.coupon.code == "SAVE10"
    assert summary.coupon_error is None


async def test_small_regular_cart_pays_flat_shipping(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_toy")

    totals = (await service.cart_summary(REGULAR)).unwrap().totals

    assert totals.shipping == Decimal("99.00")
    assert totals.total == Decimal("399.00")


async def test_combo_set_in_cart(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_combo_a", 2, combo_offer_id="combo_ab")
    await service.add_to_cart(REGULAR, "p_combo_b", 3, combo_offer_id="combo_ab")

    totals = (await service.cart_summary(REGULAR)).unwrap().totals

    assert totals.subtotal == Decimal("1250.00")
    assert totals.combo_discount == Decimal("200.00")
    assert totals.total == Decimal("1050.00")


async def test_subscriber_cart_uses_default_address_region(service: CheckoutService):
    await service.add_to_cart(SUBSCRIBER, "p_food", 2)
    await service.add_to_cart(SUBSCRIBER, "p_toy")
    await service.add_to_cart(SUBSCRIBER, "p_treat")

    summary = (await service.cart_summary(SUBSCRIBER)).unwrap()
    totals = summary.totals

    # food 10% off, toy 50 off by category, treat on sale and untouched
    assert totals.subtotal == Decimal("900.00") + Decimal("250.00") + Decimal("800.00")
    # 4 + 0.25 + 0.5 kg, one unscheduled group, Chennai "Up to 5kg"
    assert totals.shipping == Decimal("60.00")
    assert totals.shipping_quote.region is Region.CHENNAI
    assert summary.is_shipping_estimate is False


async def test_checkout_address_overrides_saved_region(
    service: CheckoutService, address: ShippingAddress
):
    await service.add_to_cart(SUBSCRIBER, "p_food", 2)

    summary = (await service.checkout_summary(SUBSCRIBER, address)).unwrap()

    assert summary.totals.shipping_quote.region is Region.PAN_INDIA
    assert summary.totals.shipping == Decimal("120.00")
    assert summary.totals.total == Decimal("1020.00")


async def test_subscriber_without_address_gets_estimate(service: CheckoutService):
    customer = Authenticated("u_sub_new")
    await service.add_to_cart(customer, "p_toy")

    summary = (await service.cart_summary(customer)).unwrap()

    assert summary.is_shipping_estimate is True
    assert summary.totals.shipping == Decimal("40.00")


async def test_deliveries_on_separate_dates_are_charged_separately(service: CheckoutService):
    await service.add_to_cart(SUBSCRIBER, "p_food", requested_delivery_date=date(2025, 6, 2))
    await service.add_to_cart(SUBSCRIBER, "p_toy", requested_delivery_date=date(2025, 6, 3))

    totals = (await service.cart_summary(SUBSCRIBER)).unwrap().totals

    assert totals.shipping == Decimal("100.00")
    assert totals.total == Decimal("800.00")
    assert totals.shipping_quote.has_multiple_delivery_dates is True


async def test_invalid_coupon_is_dropped_from_summary(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_food")

    summary = (await service.cart_summary(REGULAR, "OLD")).unwrap()

    assert summary.coupon is None
    assert isinstance(summary.coupon_error, ValidationError)
    assert summary.totals.coupon_discount == Decimal("0.00")
    assert summary.totals.total == Decimal("500.00")


async def test_empty_cart_summary(service: CheckoutService):
    summary = (await service.cart_summary(REGULAR)).unwrap()

    assert summary.is_empty
    assert summary.totals.total == Decimal("0.00")


# ═══════════════════════════════════════════════════════════════════════════════
# Coupon validation
# ═══════════════════════════════════════════════════════════════════════════════


async def test_validate_coupon(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_food")

    quote = (await service.validate_coupon(REGULAR, " save10 ")).unwrap()

    assert quote is not None
    assert quote.coupon.code == "SAVE10"
    assert quote.discount == Decimal("50.00")


async def test_validate_product_coupon_scope(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_food")

    other = await service.validate_coupon(REGULAR, "TOY100", product_id="p_food")
    own = await service.validate_coupon(REGULAR, "TOY100", product_id="p_toy")

    assert other.unwrap() is None
    # the toy is not in the cart, so the coupon is valid but worth nothing
    assert own.unwrap().discount == Decimal("0.00")


async def test_scope_filter_runs_before_requirements(service: CheckoutService):
    await service.add_to_cart(REGULAR, "p_food")

    other = await service.validate_coupon(REGULAR, "TOYPAIR", product_id="p_food")
    unscoped = await service.validate_coupon(REGULAR, "TOYPAIR")

    assert other.unwrap() is None
    fails_with(unscoped, ValidationError)


@pytest.mark.parametrize(
    ("code", "error"),
    [
        ("NOPE", NotFoundError),
        ("DEAD", NotFoundError),
        ("OLD", ValidationError),
        ("BIG", ValidationError),
        ("   ", ValidationError),
    ],
)
async def test_validate_coupon_rejections(service: CheckoutService, code: str, error):
    await service.add_to_cart(REGULAR, "p_food")

    fails_with(await service.validate_coupon(REGULAR, code), error)


# ═══════════════════════════════════════════════════════════════════════════════
# Payment orders
# ═══════════════════════════════════════════════════════════════════════════════


async def test_payment_order_uses_server_total(
    service: CheckoutService, payments: PaymentRecordStore, now
):
    await service.add_to_cart(REGULAR, "p_food")

    order = (await service.create_payment_order(REGULAR, "SAVE10")).unwrap()
    record = (await payments.get(order.gateway_order_id)).unwrap()

    assert order.amount_minor == 45_000
    assert order.currency == "INR"
    assert order.expires_at == now + timedelta(minutes=30)
    assert record is not None
    assert record.amount_minor == 45_000
    assert record.owner_key == "user:u_regular"
    assert not record.is_verified


async def test_payment_order_refuses_bad_coupon_and_empty_cart(service: CheckoutService):
    fails_with(await service.create_payment_order(REGULAR), ValidationError)

    await service.add_to_cart(REGULAR, "p_food")
    fails_with(await service.create_payment_order(REGULAR, "NOPE"), NotFoundError)


async def test_verify_payment_is_idempotent(
    service: CheckoutService, gateway: SimulatedGateway
):
    await service.add_to_cart(REGULAR, "p_food")
    order, payment_id, signature = await pay(service, gateway, REGULAR)

    first = await service.verify_payment(REGULAR, order.gateway_order_id, payment_id, signature)
    again = await service.verify_payment(REGULAR, order.gateway_order_id, payment_id, signature)

    assert first.unwrap().is_verified
    assert again.unwrap().payment_id == payment_id

    other_payment, other_signature = gateway.complete(order.gateway_order_id)
    fails_with(
        await service.verify_payment(
            REGULAR, order.gateway_order_id, other_payment, other_signature
        ),
        PaymentIntegrityError,
    )


async def test_verify_payment_rejects_forged_signature(
    service: CheckoutService, gateway: SimulatedGateway
):
    await service.add_to_cart(REGULAR, "p_food")
    order, payment_id, _ = await pay(service, gateway, REGULAR)

    fails_with(
        await service.verify_payment(REGULAR, order.gateway_order_id, payment_id, "00" * 32),
        PaymentIntegrityError,
    )


async def test_verify_payment_rejects_unknown_order(service: CheckoutService):
    signature = sign_payment("order_missing", "pay_1", service.settings.payment_secret)

    error = fails_with(
        await service.verify_payment(REGULAR, "order_missing", "pay_1", signature),
        PaymentIntegrityError,
    )
    assert error.message == "Unknown payment order"


# ═══════════════════════════════════════════════════════════════════════════════
# Order placement
# ═══════════════════════════════════════════════════════════════════════════════


async def test_place_online_order(
    service: CheckoutService,
    gateway: SimulatedGateway,
    repo: Repository,
    payments: PaymentRecordStore,
    address: ShippingAddress,
    now,
):
    await service.add_to_cart(REGULAR, "p_food")
    order, payment_id, signature = await pay(service, gateway, REGULAR, "SAVE10")

    placed = (
        await service.place_order(online(REGULAR, address, order, payment_id, signature, "SAVE10"))
    ).unwrap()

    assert placed.total == Decimal("450.00")
    assert placed.payment_status is PaymentStatus.PAID
    assert placed.coupon_code == "SAVE10"
    assert placed.order_number.startswith(f"ORD-{int(now.timestamp() * 1000)}-")

    row = await repo.get_order(placed.order_id)
    assert row is not None
    assert (row.subtotal_minor, row.coupon_discount_minor, row.total_minor) == (50_000, 5_000, 45_000)
    assert row.gateway_order_id == order.gateway_order_id
    assert row.payment_id == payment_id
    assert row.shipping_address is not None and row.shipping_address["city"] == "Bengaluru"

    items = await repo.list_order_items(placed.order_id)
    assert [(i.product_id, i.quantity, i.unit_price_minor, i.gst_rate) for i in items] == [
        ("p_food", 1, 50_000, Decimal("5"))
    ]

    assert await repo.cart_snapshot(REGULAR, now) == ()
    assert await repo.get_coupon_used_count("SAVE10") == 1
    assert (await payments.get(order.gateway_order_id)).unwrap() is None


async def test_place_cod_order(
    service: CheckoutService, repo: Repository, address: ShippingAddress, now
):
    await service.add_to_cart(REGULAR, "p_toy")

    placed = (await service.place_order(cod(REGULAR, address))).unwrap()

    assert placed.payment_status is PaymentStatus.PENDING
    assert placed.total == Decimal("399.00")
    assert await repo.cart_snapshot(REGULAR, now) == ()


async def test_online_order_needs_payment_proof(
    service: CheckoutService, address: ShippingAddress
):
    await service.add_to_cart(REGULAR, "p_food")

    request = PlaceOrderRequest(identity=REGULAR, shipping_address=address)

    fails_with(await service.place_order(request), ValidationError)


async def test_empty_cart_cannot_be_ordered(service: CheckoutService, address: ShippingAddress):
    fails_with(await service.place_order(cod(REGULAR, address)), ValidationError)


async def test_payment_cannot_be_replayed(
    service: CheckoutService, gateway: SimulatedGateway, address: ShippingAddress
):
    await service.add_to_cart(REGULAR, "p_food")
    order, payment_id, signature = await pay(service, gateway, REGULAR)
    request = online(REGULAR, address, order, payment_id, signature)

    assert isinstance(await service.place_order(request), Ok)

    await service.add_to_cart(REGULAR, "p_food")
    fails_with(await service.place_order(request), PaymentIntegrityError)


async def test_cart_change_after_payment_is_rejected(
    service: CheckoutService,
    gateway: SimulatedGateway,
    repo: Repository,
    address: ShippingAddress,
    now,
):
    await service.add_to_cart(REGULAR, "p_food")
    order, payment_id, signature = await pay(service, gateway, REGULAR)
    await service.add_to_cart(REGULAR, "p_toy")

    error = fails_with(
        await service.place_order(online(REGULAR, address, order, payment_id, signature)),
        PaymentIntegrityError,
    )

    assert "does not match" in error.message
    assert len(await repo.cart_snapshot(REGULAR, now)) == 2


async def test_expired_payment_is_rejected(
    service: CheckoutService, gateway: SimulatedGateway, address: ShippingAddress, now
):
    await service.add_to_cart(REGULAR, "p_food")
    order, payment_id, signature = await pay(service, gateway, REGULAR)

    result = await service.place_order(
        online(REGULAR, address, order, payment_id, signature),
        at=now + timedelta(minutes=31),
    )

    assert "expired" in fails_with(result, PaymentIntegrityError).message


async def test_someone_elses_payment_is_rejected(
    service: CheckoutService, gateway: SimulatedGateway, address: ShippingAddress
):
    await service.add_to_cart(REGULAR, "p_food")
    await service.add_to_cart(SUBSCRIBER, "p_food")
    order, payment_id, signature = await pay(service, gateway, REGULAR)

    fails_with(
        await service.place_order(online(SUBSCRIBER, address, order, payment_id, signature)),
        PaymentIntegrityError,
    )


async def test_purge_expired_payments(
    service: CheckoutService, gateway: SimulatedGateway, now
):
    await service.add_to_cart(REGULAR, "p_food")
    await pay(service, gateway, REGULAR)

    assert (await service.purge_expired_payments(at=now + timedelta(minutes=5))).unwrap() == 0
    assert (await service.purge_expired_payments(at=now + timedelta(hours=1))).unwrap() == 1


async def test_cart_edited_before_commit_rolls_back(
    service: CheckoutService, repo: Repository, address: ShippingAddress, now
):
    line = (await service.add_to_cart(REGULAR, "p_food")).unwrap()
    summary = (await service.cart_summary(REGULAR, coupon_code="SAVE10")).unwrap()
    await service.update_cart_quantity(REGULAR, line, 5)

    draft = OrderDraft(
        identity=REGULAR,
        totals=summary.totals,
        payment_method=PaymentMethod.COD,
        shipping_address=address,
    )
    with pytest.raises(ConflictError):
        await repo.commit_order(draft, at=now)

    assert [(i.product_id, i.quantity) for i in await repo.cart_snapshot(REGULAR, now)] == [
        ("p_food", 5)
    ]
    assert await repo.get_coupon_used_count("SAVE10") == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Coupon single use
# ═══════════════════════════════════════════════════════════════════════════════


async def test_coupon_is_single_use_per_customer(
    service: CheckoutService, repo: Repository, address: ShippingAddress
):
    await service.add_to_cart(REGULAR, "p_food")
    assert isinstance(await service.place_order(cod(REGULAR, address, "SAVE10")), Ok)

    await service.add_to_cart(REGULAR, "p_food")
    summary = (await service.cart_summary(REGULAR, "SAVE10")).unwrap()

    assert isinstance(summary.coupon_error, ConflictError)
    fails_with(await service.place_order(cod(REGULAR, address, "SAVE10")), ConflictError)
    assert await repo.get_coupon_used_count("SAVE10") == 1

    # other customers are unaffected
    await service.add_to_cart(SUBSCRIBER, "p_food")
    assert isinstance(await service.place_order(cod(SUBSCRIBER, address, "SAVE10")), Ok)


async def test_concurrent_redemptions_commit_once(
    service: CheckoutService, repo: Repository, address: ShippingAddress
):
    await service.add_to_cart(REGULAR, "p_food")

    results = await asyncio.gather(
        service.place_order(cod(REGULAR, address, "SAVE10")),
        service.place_order(cod(REGULAR, address, "SAVE10")),
    )

    assert sum(isinstance(r, Ok) for r in results) == 1
    assert [type(r.error) for r in results if isinstance(r, Error)] == [ConflictError]
    assert await repo.get_coupon_used_count("SAVE10") == 1


async def test_usage_cap_is_global(service: CheckoutService, address: ShippingAddress):
    await service.add_to_cart(REGULAR, "p_food")
    await service.add_to_cart(SUBSCRIBER, "p_food")

    assert isinstance(await service.place_order(cod(REGULAR, address, "LIMITED")), Ok)
    fails_with(await service.place_order(cod(SUBSCRIBER, address, "LIMITED")), ValidationError)


async def test_guest_coupon_use_is_keyed_by_email(
    service: CheckoutService, address: ShippingAddress
):
    first = Guest("sess_1", "Shopper@Example.com")
    second = Guest("sess_2", "shopper@example.com ")
    await service.add_to_cart(first, "p_food")
    await service.add_to_cart(second, "p_food")

    assert isinstance(await service.place_order(cod(first, address, "SAVE10")), Ok)
    fails_with(await service.place_order(cod(second, address, "SAVE10")), ConflictError)


async def test_guest_without_email_cannot_redeem(
    service: CheckoutService, repo: Repository, address: ShippingAddress, now
):
    guest = Guest("sess_anon")
    await service.add_to_cart(guest, "p_food")

    summary = (await service.cart_summary(guest, "SAVE10")).unwrap()
    assert summary.totals.coupon_discount == Decimal("50.00")

    error = fails_with(await service.place_order(cod(guest, address, "SAVE10")), ValidationError)

    assert "email" in error.message
    assert len(await repo.cart_snapshot(guest, now)) == 1
    assert await repo.get_coupon_used_count("SAVE10") == 0
