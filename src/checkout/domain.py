"""Checkout bounded context — Cart Conversion, Inventory Reservation and Payment Reconciliation.

Converts a mutable shopping cart into an immutable order with stock reserved,
tracks the payment authorization requested against an external gateway, and
reconciles the order status as gateway events arrive out of band.
"""

import structlog
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
