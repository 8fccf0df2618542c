"""
Payments — gateway boundary, signatures, payment records.

    from tally.payments import PaymentRecordStore, SimulatedGateway, verify_signature

    intent = await gateway.create_payment_intent(totals.total_minor_units, "INR")
    await store.record(intent, owner_key=owner_key(identity), at=now, ttl=ttl)
"""

from tally.payments._gateway import PaymentGateway, SimulatedGateway
from tally.payments._signature import sign_payment, signature_payload, verify_signature
from tally.payments._store import PaymentRecordStore
from tally.payments._types import PaymentIntent, PaymentRecord, PaymentState

__all__ = (
    # Types
    "PaymentIntent",
    "PaymentState",
    "PaymentRecord",
    # Gateway
    "PaymentGateway",
    "SimulatedGateway",
    # Signatures
    "signature_payload",
    "sign_payment",
    "verify_signature",
    # Store
    "PaymentRecordStore",
)
