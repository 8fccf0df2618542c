"""
Payment record store — verified-payment memory with a TTL.

The store is what turns "the client says it paid" into "this server issued
an intent for exactly this amount, the gateway signed it, and nobody has
spent it yet":

    record(intent)            created, expires_at = now + ttl
    mark_verified(...)        created → verified (signature already checked)
    consumer(...)             verified → deleted, inside the order transaction
    purge_expired(now)        housekeeping

Methods return Result; consumption raises, because it runs enlisted in the
order commit and must roll that transaction back.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, cast

from kungfu import Error, Ok, Result
from sqlalchemy import delete, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tally._types import MinorUnits
from tally.db import Enlisted, PaymentRecordTable
from tally.errors import PaymentIntegrityError, StorageError, TallyError
from tally.payments._types import PaymentIntent, PaymentRecord, PaymentState

logger = logging.getLogger(__name__)


def _to_record(row: PaymentRecordTable) -> PaymentRecord:
    return PaymentRecord(
        gateway_order_id=row.gateway_order_id,
        owner_key=row.owner_key,
        amount_minor=row.amount_minor,
        currency=row.currency,
        state=PaymentState(row.state),
        created_at=row.created_at,
        expires_at=row.expires_at,
        payment_id=row.payment_id,
        signature=row.signature,
    )


class PaymentRecordStore:
    """SQLAlchemy-backed payment records."""

    __slots__ = ("_session_factory",)

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        intent: PaymentIntent,
        *,
        owner_key: str,
        at: datetime,
        ttl: timedelta,
    ) -> Result[PaymentRecord, TallyError]:
        """Remember an issued intent."""
        row = PaymentRecordTable(
            gateway_order_id=intent.gateway_order_id,
            owner_key=owner_key,
            amount_minor=intent.amount_minor,
            currency=intent.currency,
            state=PaymentState.CREATED.value,
            created_at=at,
            expires_at=at + ttl,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            return Error(StorageError(f"Failed to record payment: {e}"))

        logger.info(
            "payment record %s created: amount=%s %s",
            intent.gateway_order_id,
            intent.amount_minor,
            intent.currency,
        )
        return Ok(_to_record(row))

    async def get(self, gateway_order_id: str) -> Result[PaymentRecord | None, TallyError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(PaymentRecordTable, gateway_order_id)
        except SQLAlchemyError as e:
            return Error(StorageError(f"Failed to get payment record: {e}"))
        return Ok(_to_record(row) if row is not None else None)

    async def mark_verified(
        self,
        gateway_order_id: str,
        *,
        payment_id: str,
        signature: str,
        owner_key: str,
        at: datetime,
    ) -> Result[PaymentRecord, TallyError]:
        """
        Attach a gateway payment to its record.

        Re-verifying the same payment is a no-op; a different payment id on an
        already verified record is an integrity failure.
        """
        try:
            async with self._session_factory() as session, session.begin():
                row = await session.scalar(
                    select(PaymentRecordTable).where(
                        PaymentRecordTable.gateway_order_id == gateway_order_id
                    )
                )
                if row is None:
                    logger.warning("payment %s rejected: unknown order", gateway_order_id)
                    return Error(PaymentIntegrityError("Unknown payment order"))
                failure = _verification_failure(row, owner_key=owner_key, at=at)
                if failure is not None:
                    logger.warning("payment %s rejected: %s", gateway_order_id, failure)
                    return Error(PaymentIntegrityError(failure))

                if row.state == PaymentState.VERIFIED.value:
                    if row.payment_id != payment_id:
                        logger.warning(
                            "payment %s already verified with another payment id",
                            gateway_order_id,
                        )
                        return Error(
                            PaymentIntegrityError("Payment already verified for this order")
                        )
                    return Ok(_to_record(row))

                row.state = PaymentState.VERIFIED.value
                row.payment_id = payment_id
                row.signature = signature
                record = _to_record(row)
        except SQLAlchemyError as e:
            return Error(StorageError(f"Failed to verify payment record: {e}"))

        logger.info("payment %s verified: payment_id=%s", gateway_order_id, payment_id)
        return Ok(record)

    def consumer(
        self,
        gateway_order_id: str,
        *,
        owner_key: str,
        amount_minor: MinorUnits,
        at: datetime,
    ) -> Enlisted:
        """
        Work for Repository.commit_order that spends the record.

        Deletes exactly one verified, unexpired record owned by owner_key for
        exactly amount_minor; anything else raises PaymentIntegrityError.
        """

        async def consume(session: AsyncSession) -> None:
            result = await session.execute(
                delete(PaymentRecordTable)
                .where(
                    PaymentRecordTable.gateway_order_id == gateway_order_id,
                    PaymentRecordTable.state == PaymentState.VERIFIED.value,
                    PaymentRecordTable.owner_key == owner_key,
                    PaymentRecordTable.amount_minor == amount_minor,
                    PaymentRecordTable.expires_at > at,
                )
                .execution_options(synchronize_session=False)
            )
            if cast(CursorResult[Any], result).rowcount != 1:
                logger.warning("payment %s could not be consumed", gateway_order_id)
                raise PaymentIntegrityError("Payment is not valid for this order")
            logger.info("payment %s consumed", gateway_order_id)

        return consume

    async def purge_expired(self, now: datetime) -> Result[int, TallyError]:
        """Delete every record whose TTL has run out. Returns the count."""
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    delete(PaymentRecordTable)
                    .where(PaymentRecordTable.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            return Error(StorageError(f"Failed to purge payment records: {e}"))

        purged = cast(CursorResult[Any], result).rowcount
        if purged:
            logger.info("purged %d expired payment records", purged)
        return Ok(purged)


def _verification_failure(
    row: PaymentRecordTable,
    *,
    owner_key: str,
    at: datetime,
) -> str | None:
    if row.owner_key != owner_key:
        return "Payment order belongs to another customer"
    if row.expires_at <= at:
        return "Payment order has expired"
    return None


__all__ = ("PaymentRecordStore",)
