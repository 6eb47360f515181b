"""Application tests for operator fulfillment transitions."""

import pytest
from protean.exceptions import ValidationError

from checkout.exceptions import InvalidTransition
from checkout.order.order import OrderStatus
from checkout.order.service import order_service


def _processing_order(make_product, authorized_order):
    pid = make_product(stock=5)
    order = authorized_order("user-1", [(pid, 1)])
    order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")
    return order


class TestAdvanceFulfillment:
    def test_ship_then_deliver(self, make_product, authorized_order):
        order = _processing_order(make_product, authorized_order)

        shipped = order_service.advance_fulfillment(order.id, "SHIPPED")
        delivered = order_service.advance_fulfillment(order.id, OrderStatus.DELIVERED)

        assert shipped.status == OrderStatus.SHIPPED.value
        assert delivered.status == OrderStatus.DELIVERED.value

    def test_cannot_ship_pending(self, make_product, place_order):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        with pytest.raises(InvalidTransition):
            order_service.advance_fulfillment(order.id, "SHIPPED")

    def test_cannot_skip_to_delivered(self, make_product, authorized_order):
        order = _processing_order(make_product, authorized_order)
        with pytest.raises(InvalidTransition):
            order_service.advance_fulfillment(order.id, "DELIVERED")

    def test_only_fulfillment_targets_allowed(self, make_product, authorized_order):
        order = _processing_order(make_product, authorized_order)
        with pytest.raises(ValidationError):
            order_service.advance_fulfillment(order.id, "REFUNDED")

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            order_service.advance_fulfillment("ord-1", "LOST")
