"""
Errors — the checkout error taxonomy.

Every error carries a stable machine code plus a human-readable message.
Pricing functions raise them; CheckoutService returns them inside Error(...).
"""

from __future__ import annotations


class TallyError(Exception):
    """Base checkout error."""

    code = "TALLY_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r})"


class ValidationError(TallyError):
    """Malformed input: bad quantity, missing address fields, unusable coupon."""

    code = "VALIDATION"


class NotFoundError(TallyError):
    """Referenced entity does not exist (unknown coupon, product, cart row)."""

    code = "NOT_FOUND"


class ConflictError(TallyError):
    """Coupon already redeemed by this customer, or a concurrent redemption won."""

    code = "CONFLICT"


class PaymentIntegrityError(TallyError):
    """
    Payment cannot back an order.

    Signature mismatch, unknown/unverified/expired/consumed payment record,
    or an amount that no longer matches the cart.
    """

    code = "PAYMENT_INTEGRITY"


class StorageError(TallyError):
    """Persistence backend failed."""

    code = "STORAGE"


__all__ = (
    "TallyError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "PaymentIntegrityError",
    "StorageError",
)
