"""
Housekeeping CLI.

    tally init-db                 create tables at TALLY_DATABASE_URL
    tally purge-payments          delete payment records past their TTL
    tally quote <user> [--coupon CODE] [--guest]
                                  print the cart summary for a customer
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from kungfu import Error, Ok

from tally.checkout import create_service
from tally.config import Settings
from tally.db import create_database
from tally.identity import Authenticated, CustomerIdentity, Guest
from tally.money import format_currency

logger = logging.getLogger("tally.cli")


# ═══════════════════════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════════════════════


async def cmd_init_db(settings: Settings) -> int:
    _, engine = await create_database(settings.database_url)
    await engine.dispose()
    print(f"  ✓ Schema ready at {settings.database_url}")
    return 0


async def cmd_purge_payments(settings: Settings) -> int:
    service, engine = await create_service(settings)
    try:
        result = await service.purge_expired_payments()
    finally:
        await engine.dispose()

    match result:
        case Ok(count):
            print(f"  ✓ Purged {count} expired payment records")
            return 0
        case Error(e):
            print(f"  ✗ {e.code}: {e.message}", file=sys.stderr)
            return 1


async def cmd_quote(settings: Settings, identity: CustomerIdentity, coupon: str | None) -> int:
    service, engine = await create_service(settings)
    try:
        result = await service.cart_summary(identity, coupon)
    finally:
        await engine.dispose()

    def money(amount) -> str:
        return format_currency(amount, symbol=settings.currency_symbol)

    match result:
        case Ok(summary):
            totals = summary.totals
            for priced in totals.items:
                print(
                    f"  {priced.item.title or priced.item.product_id:30} "
                    f"×{priced.item.quantity:<3} {money(priced.line_total):>12}"
                )
            print(f"  {'Subtotal':34} {money(totals.subtotal):>12}")
            print(f"  {'Combo discount':34} {money(-totals.combo_discount):>12}")
            print(f"  {'Coupon discount':34} {money(-totals.coupon_discount):>12}")
            estimate = " (estimate)" if summary.is_shipping_estimate else ""
            print(f"  {'Shipping' + estimate:34} {money(totals.shipping):>12}")
            print(f"  {'Total':34} {money(totals.total):>12}")
            if summary.coupon_error is not None:
                print(f"  ! coupon dropped: {summary.coupon_error.message}")
            return 0
        case Error(e):
            print(f"  ✗ {e.code}: {e.message}", file=sys.stderr)
            return 1


# ═══════════════════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════════════════


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tally", description="tally housekeeping")
    parser.add_argument("--env-file", default=None, help="path to a .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init-db", help="create database tables")
    commands.add_parser("purge-payments", help="delete expired payment records")

    quote = commands.add_parser("quote", help="print a cart summary")
    quote.add_argument("owner", help="user id, or session id with --guest")
    quote.add_argument("--guest", action="store_true", help="treat owner as a guest session")
    quote.add_argument("--email", default=None, help="guest email")
    quote.add_argument("--coupon", default=None, help="coupon code to apply")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env(args.env_file)

    match args.command:
        case "init-db":
            return asyncio.run(cmd_init_db(settings))
        case "purge-payments":
            return asyncio.run(cmd_purge_payments(settings))
        case "quote":
            identity: CustomerIdentity = (
                Guest(args.owner, args.email) if args.guest else Authenticated(args.owner)
            )
            return asyncio.run(cmd_quote(settings, identity, args.coupon))
        case other:
            logger.error("unknown command %s", other)
            return 2


if __name__ == "__main__":
    sys.exit(main())
