"""Order aggregate — an immutable priced snapshot of a cart plus its status machine.

State Machine:
    PENDING → PROCESSING → SHIPPED → DELIVERED
    PENDING → CANCELLED     (user cancel, declined or canceled authorization)
    PROCESSING → CANCELLED  (refund path, authorization canceled after success)
    PROCESSING → REFUNDED
    CANCELLED, DELIVERED, REFUNDED are terminal.

Each line carries the id of the inventory reservation made for it, so that
the reservation can be consumed or released when the order settles.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from checkout.domain import checkout
from checkout.exceptions import EmptyCart, InvalidTransition
from checkout.inventory.ledger import ReservationToken
from checkout.order.events import (
    AuthorizationAttached,
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderRefunded,
    OrderShipped,
    PaymentAuthorized,
    PaymentDeclined,
)


class OrderStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class CancellationActor(Enum):
    CUSTOMER = "Customer"
    GATEWAY = "Gateway"
    ADMIN = "Admin"
    SYSTEM = "System"  # Expiry of abandoned orders


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset(status for status, targets in _VALID_TRANSITIONS.items() if not targets)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class Address:
    """A delivery or billing address captured at checkout time.

    Once recorded on an Order the address never changes.
    """

    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@checkout.value_object(part_of="Order")
class OrderPricing:
    """Amounts computed from the snapshot at creation; never recalculated."""

    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="USD")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    sku = String(max_length=50)
    name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_subtotal = Float(required=True, min_value=0.0)
    reservation_id = Identifier()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    user_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items = HasMany(OrderLine)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    pricing = ValueObject(OrderPricing)
    authorization_handle = String(max_length=255)
    idempotency_key = String(max_length=255)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, user_id, snapshot, pricing, shipping_address, billing_address=None, idempotency_key=None):
        """Build a PENDING order from a CartSnapshot and its PriceBreakdown."""
        if not snapshot.lines:
            raise EmptyCart(user_id)

        now = datetime.now(UTC)
        lines = [
            OrderLine(
                product_id=line.product_id,
                sku=line.sku,
                name=line.name,
                quantity=line.quantity,
                unit_price=float(line.unit_price),
                line_subtotal=float(line.line_subtotal),
            )
            for line in snapshot.lines
        ]

        order = cls(
            user_id=str(user_id),
            status=OrderStatus.PENDING.value,
            shipping_address=Address(**shipping_address),
            billing_address=Address(**(billing_address or shipping_address)),
            pricing=OrderPricing(**pricing.as_floats()),
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        order.add_items(lines)
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                items=json.dumps(
                    [
                        {
                            "product_id": str(line.product_id),
                            "quantity": line.quantity,
                            "unit_price": line.unit_price,
                            "line_subtotal": line.line_subtotal,
                        }
                        for line in lines
                    ]
                ),
                subtotal=order.pricing.subtotal,
                tax=order.pricing.tax,
                shipping=order.pricing.shipping,
                total=order.pricing.total,
                currency=order.pricing.currency,
                idempotency_key=idempotency_key,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_STATUSES

    def can_transition_to(self, target_status) -> bool:
        return target_status in _VALID_TRANSITIONS.get(self.order_status, set())

    def _assert_can_transition(self, target_status):
        if not self.can_transition_to(target_status):
            raise InvalidTransition(self.status, target_status.value)

    def _move_to(self, target_status):
        self._assert_can_transition(target_status)
        self.status = target_status.value
        self.updated_at = datetime.now(UTC)
        return self.updated_at

    def attach_reservations(self, tokens):
        by_product = {token.product_id: token for token in tokens}
        for line in self.items:
            token = by_product.get(str(line.product_id))
            if token is not None:
                line.reservation_id = token.reservation_id

    def reservation_tokens(self) -> list[ReservationToken]:
        return [
            ReservationToken(
                product_id=str(line.product_id),
                reservation_id=str(line.reservation_id),
                quantity=line.quantity,
            )
            for line in self.items
            if line.reservation_id
        ]

    # -------------------------------------------------------------------
    # Payment authorization
    # -------------------------------------------------------------------
    def attach_authorization(self, handle) -> bool:
        """Record the gateway handle. Returns False (no change) if one is set or the order moved on."""
        if self.authorization_handle or self.order_status != OrderStatus.PENDING:
            return False

        now = datetime.now(UTC)
        self.authorization_handle = handle
        self.updated_at = now
        self.raise_(
            AuthorizationAttached(
                order_id=str(self.id),
                authorization_handle=handle,
                attached_at=now,
            )
        )
        return True

    def authorize(self, event_id):
        """PENDING → PROCESSING when the gateway reports the authorization succeeded."""
        if self.order_status != OrderStatus.PENDING:
            raise InvalidTransition(self.status, OrderStatus.PROCESSING.value)

        now = self._move_to(OrderStatus.PROCESSING)
        self.raise_(
            PaymentAuthorized(
                order_id=str(self.id),
                authorization_handle=self.authorization_handle,
                gateway_event_id=str(event_id),
                amount=self.pricing.total,
                authorized_at=now,
            )
        )

    def decline(self, event_id, reason="Payment authorization failed"):
        """PENDING → CANCELLED when the gateway reports the authorization failed."""
        if self.order_status != OrderStatus.PENDING:
            raise InvalidTransition(self.status, OrderStatus.CANCELLED.value)

        now = datetime.now(UTC)
        self.raise_(
            PaymentDeclined(
                order_id=str(self.id),
                authorization_handle=self.authorization_handle,
                gateway_event_id=str(event_id),
                reason=reason,
                declined_at=now,
            )
        )
        self.cancel(reason=reason, cancelled_by=CancellationActor.GATEWAY.value)

    def cancel(self, reason, cancelled_by=CancellationActor.CUSTOMER.value):
        previous_status = self.status
        now = self._move_to(OrderStatus.CANCELLED)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous_status,
                reason=reason,
                cancelled_by=cancelled_by,
                authorization_handle=self.authorization_handle,
                cancelled_at=now,
            )
        )

    def refund(self, event_id=None):
        now = self._move_to(OrderStatus.REFUNDED)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                authorization_handle=self.authorization_handle,
                gateway_event_id=str(event_id) if event_id else None,
                amount=self.pricing.total,
                refunded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def ship(self):
        now = self._move_to(OrderStatus.SHIPPED)
        self.raise_(OrderShipped(order_id=str(self.id), shipped_at=now))

    def deliver(self):
        now = self._move_to(OrderStatus.DELIVERED)
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))
