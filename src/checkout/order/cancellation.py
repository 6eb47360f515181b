"""Order cancellation — command and handler.

A user (or admin) may cancel only while the order is PENDING: nothing has
been charged yet, so releasing the reservations is enough locally. Once the
order is PROCESSING money has moved and only the gateway's refund path may
reverse it. Cancelling an order that is already CANCELLED is a no-op.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.cancellation.upstream import UpstreamCancellation
from checkout.domain import checkout
from checkout.exceptions import InvalidTransition, OrderNotFound
from checkout.inventory.ledger import ledger
from checkout.order.order import CancellationActor, Order, OrderStatus


@checkout.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    requested_by = Identifier()  # None for operator cancellations
    reason = String(max_length=500, default="Cancelled by customer")
    cancelled_by = String(max_length=50, default=CancellationActor.CUSTOMER.value)


@checkout.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if command.requested_by is not None and str(order.user_id) != str(command.requested_by):
            raise OrderNotFound(command.order_id)

        if order.order_status == OrderStatus.CANCELLED:
            return False
        if order.order_status != OrderStatus.PENDING:
            raise InvalidTransition(order.status, OrderStatus.CANCELLED.value)

        ledger.release_all(order.reservation_tokens(), reason=command.reason)
        order.cancel(reason=command.reason, cancelled_by=command.cancelled_by)
        repo.add(order)

        if order.authorization_handle:
            current_domain.repository_for(UpstreamCancellation).add(
                UpstreamCancellation.open(order.id, order.authorization_handle)
            )
        return True
