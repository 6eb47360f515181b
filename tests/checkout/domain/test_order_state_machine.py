"""Tests for the Order aggregate — placement and the status state machine."""

from decimal import Decimal

import pytest

from checkout.cart.snapshot import CartSnapshot, SnapshotLine
from checkout.exceptions import EmptyCart, InvalidTransition
from checkout.inventory.ledger import ReservationToken
from checkout.order.events import (
    AuthorizationAttached,
    OrderCancelled,
    OrderPlaced,
    PaymentAuthorized,
    PaymentDeclined,
)
from checkout.order.order import TERMINAL_STATUSES, CancellationActor, Order, OrderStatus
from checkout.order.pricing import compute_totals

ADDRESS = {"street": "1 Main St", "city": "Springfield", "state": "IL", "postal_code": "62701", "country": "US"}


def _snapshot(*lines):
    return CartSnapshot(
        user_id="user-001",
        lines=tuple(
            SnapshotLine(
                product_id=product_id,
                sku=f"SKU-{product_id}",
                name=f"Product {product_id}",
                quantity=quantity,
                unit_price=Decimal(price),
                line_subtotal=Decimal(price) * quantity,
            )
            for product_id, quantity, price in lines
        ),
    )


def _make_order(*lines):
    snapshot = _snapshot(*(lines or [("prod-001", 2, "10.00")]))
    return Order.place(
        user_id="user-001",
        snapshot=snapshot,
        pricing=compute_totals(snapshot.subtotal),
        shipping_address=ADDRESS,
        idempotency_key="key-1",
    )


def _authorized_order():
    order = _make_order()
    order.attach_authorization("auth_001")
    order.authorize("evt-1")
    return order


class TestPlacement:
    def test_order_starts_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.PENDING.value
        assert order.user_id == "user-001"
        assert order.idempotency_key == "key-1"

    def test_order_copies_lines_and_pricing(self):
        order = _make_order(("prod-001", 2, "10.00"))
        assert len(order.items) == 1
        line = order.items[0]
        assert line.quantity == 2
        assert line.unit_price == 10.0
        assert line.line_subtotal == 20.0
        assert order.pricing.subtotal == 20.0
        assert order.pricing.tax == 2.0
        assert order.pricing.shipping == 10.0
        assert order.pricing.total == 32.0

    def test_billing_defaults_to_shipping(self):
        order = _make_order()
        assert order.billing_address.city == "Springfield"

    def test_empty_snapshot_rejected(self):
        snapshot = CartSnapshot(user_id="user-001", lines=())
        with pytest.raises(EmptyCart):
            Order.place(
                user_id="user-001",
                snapshot=snapshot,
                pricing=compute_totals(Decimal("0")),
                shipping_address=ADDRESS,
            )

    def test_placed_event(self):
        order = _make_order()
        event = next(e for e in order._events if isinstance(e, OrderPlaced))
        assert event.total == 32.0
        assert event.order_id == str(order.id)

    def test_attach_reservations(self):
        order = _make_order(("prod-001", 1, "5.00"), ("prod-002", 2, "5.00"))
        order.attach_reservations(
            [
                ReservationToken(product_id="prod-001", reservation_id="res-1", quantity=1),
                ReservationToken(product_id="prod-002", reservation_id="res-2", quantity=2),
            ]
        )
        tokens = {t.product_id: t for t in order.reservation_tokens()}
        assert tokens["prod-001"].reservation_id == "res-1"
        assert tokens["prod-002"].quantity == 2


class TestAuthorizationHandle:
    def test_attach(self):
        order = _make_order()
        assert order.attach_authorization("auth_001") is True
        assert order.authorization_handle == "auth_001"
        assert any(isinstance(e, AuthorizationAttached) for e in order._events)

    def test_second_attach_is_noop(self):
        order = _make_order()
        order.attach_authorization("auth_001")
        assert order.attach_authorization("auth_002") is False
        assert order.authorization_handle == "auth_001"

    def test_attach_after_cancel_is_noop(self):
        order = _make_order()
        order.cancel("changed my mind")
        assert order.attach_authorization("auth_001") is False
        assert order.authorization_handle is None


class TestTransitions:
    def test_authorize(self):
        order = _authorized_order()
        assert order.status == OrderStatus.PROCESSING.value
        event = next(e for e in order._events if isinstance(e, PaymentAuthorized))
        assert event.gateway_event_id == "evt-1"
        assert event.amount == 32.0

    def test_decline_cancels_as_gateway(self):
        order = _make_order()
        order.attach_authorization("auth_001")
        order.decline("evt-1", reason="card_declined")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_by == CancellationActor.GATEWAY.value
        assert order.cancellation_reason == "card_declined"
        assert any(isinstance(e, PaymentDeclined) for e in order._events)

    def test_cancel_records_previous_status(self):
        order = _make_order()
        order.cancel("changed my mind")
        event = next(e for e in order._events if isinstance(e, OrderCancelled))
        assert event.previous_status == OrderStatus.PENDING.value
        assert event.cancelled_by == CancellationActor.CUSTOMER.value

    def test_full_fulfillment_path(self):
        order = _authorized_order()
        order.ship()
        order.deliver()
        assert order.status == OrderStatus.DELIVERED.value
        assert order.is_terminal

    def test_refund_from_processing(self):
        order = _authorized_order()
        order.refund("evt-2")
        assert order.status == OrderStatus.REFUNDED.value

    def test_cannot_ship_pending(self):
        order = _make_order()
        with pytest.raises(InvalidTransition) as exc:
            order.ship()
        assert exc.value.from_status == OrderStatus.PENDING.value
        assert exc.value.to_status == OrderStatus.SHIPPED.value

    def test_cannot_cancel_shipped(self):
        order = _authorized_order()
        order.ship()
        with pytest.raises(InvalidTransition):
            order.cancel("too late")

    def test_cannot_authorize_twice(self):
        order = _authorized_order()
        with pytest.raises(InvalidTransition):
            order.authorize("evt-2")

    @pytest.mark.parametrize("terminal", sorted(s.value for s in TERMINAL_STATUSES))
    def test_terminal_statuses_have_no_exits(self, terminal):
        order = _make_order()
        order.status = terminal
        assert order.is_terminal
        assert not any(order.can_transition_to(target) for target in OrderStatus)
