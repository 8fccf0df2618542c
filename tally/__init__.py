"""
tally — storefront order pricing with a server-authoritative payment contract.

    from tally import pricing as P      # Pure order arithmetic
    from tally import checkout as K     # Graph-composed views + service
    from tally import payments          # Gateway boundary, signatures, records
"""

from tally import checkout
from tally import db
from tally import payments
from tally import pricing
from tally.checkout import CheckoutService, PlaceOrderRequest, create_service
from tally.config import DEFAULT_SETTINGS, Settings
from tally.errors import (
    ConflictError,
    NotFoundError,
    PaymentIntegrityError,
    StorageError,
    TallyError,
    ValidationError,
)
from tally.identity import Authenticated, CustomerIdentity, Guest
from tally._types import Lazy, LCR, Money, MinorUnits, Pure

__version__ = "0.1.0"

__all__ = (
    # Packages
    "checkout",
    "db",
    "payments",
    "pricing",
    # Service
    "CheckoutService",
    "PlaceOrderRequest",
    "create_service",
    # Config
    "Settings",
    "DEFAULT_SETTINGS",
    # Identity
    "Authenticated",
    "Guest",
    "CustomerIdentity",
    # Errors
    "TallyError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "PaymentIntegrityError",
    "StorageError",
    # Types
    "Lazy",
    "Pure",
    "LCR",
    "Money",
    "MinorUnits",
)
