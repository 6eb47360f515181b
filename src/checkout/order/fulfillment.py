"""Operator-driven fulfillment transitions — command and handler.

Only adjacent moves are allowed: PROCESSING → SHIPPED → DELIVERED.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.exceptions import InvalidTransition
from checkout.order.order import Order, OrderStatus


@checkout.command(part_of="Order")
class AdvanceFulfillment:
    order_id = Identifier(required=True)
    new_status = String(required=True, choices=OrderStatus)


_STEPS = {
    OrderStatus.SHIPPED: (OrderStatus.PROCESSING, Order.ship),
    OrderStatus.DELIVERED: (OrderStatus.SHIPPED, Order.deliver),
}


@checkout.command_handler(part_of=Order)
class FulfillmentHandler:
    @handle(AdvanceFulfillment)
    def advance_fulfillment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        target = OrderStatus(command.new_status)
        step = _STEPS.get(target)
        if step is None or order.order_status != step[0]:
            raise InvalidTransition(order.status, target.value)

        step[1](order)
        repo.add(order)
        return order.status
