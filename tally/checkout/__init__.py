"""
Checkout — graph-composed views and the CheckoutService.

VIEWS (different targets over the same nodes):
- SummaryNode       — cart page / checkout page totals
- PaymentOrderNode  — server-authoritative payment intent

    from tally.checkout import CheckoutService, create_service
"""

from tally.checkout._graph import Pipeline, TypedScope, node, pipeline
from tally.checkout._nodes import (
    CartNode,
    CatalogNode,
    ContextNode,
    CouponNode,
    PaymentOrderNode,
    ProfileNode,
    RegionNode,
    RequestNode,
    SummaryNode,
    TotalsNode,
)
from tally.checkout._service import CheckoutService, create_service
from tally.checkout._types import (
    CouponCheck,
    CouponQuote,
    PaymentOrder,
    PlaceOrderRequest,
    QuoteRequest,
    StoreContext,
    Summary,
)

__all__ = (
    # Service
    "CheckoutService",
    "create_service",
    # Types
    "StoreContext",
    "QuoteRequest",
    "PlaceOrderRequest",
    "CouponCheck",
    "Summary",
    "CouponQuote",
    "PaymentOrder",
    # Graph
    "node",
    "TypedScope",
    "Pipeline",
    "pipeline",
    # Nodes
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
