"""Gateway result application — the single mutation point for payment outcomes.

Both the webhook reconciler and the client-driven confirm path end up here.
Each gateway event id is applied at most once; an event that arrives after
the order has already moved on (for example a success landing after the
user cancelled) is recorded and ignored rather than raised.

Outcome handling by current order status:
    succeeded: PENDING → PROCESSING, reservations consumed
    failed:    PENDING → CANCELLED, reservations released
    canceled:  PENDING → CANCELLED, reservations released
               PROCESSING → CANCELLED, consumed units returned to stock
    refunded:  PROCESSING → REFUNDED, consumed units returned to stock
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.exceptions import OrderNotFound
from checkout.gateway.port import AuthorizationOutcome
from checkout.inventory.ledger import ledger
from checkout.order.order import CancellationActor, Order, OrderStatus
from checkout.webhook.processed_event import EventDisposition, ProcessedGatewayEvent

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class ApplyGatewayResult:
    authorization_handle = String(required=True, max_length=255)
    outcome = String(required=True, choices=AuthorizationOutcome)
    event_id = String(required=True, max_length=255)
    event_type = String(max_length=100)
    order_id = Identifier()  # Optional hint; the handle is authoritative


def _succeeded(order, event_id):
    if order.order_status != OrderStatus.PENDING:
        return EventDisposition.IGNORED
    order.authorize(event_id)
    ledger.consume_all(order.reservation_tokens())
    return EventDisposition.APPLIED


def _failed(order, event_id):
    if order.order_status != OrderStatus.PENDING:
        return EventDisposition.IGNORED
    order.decline(event_id)
    ledger.release_all(order.reservation_tokens(), reason="payment declined")
    return EventDisposition.APPLIED


def _canceled(order, event_id):  # noqa: ARG001
    status = order.order_status
    if status == OrderStatus.PENDING:
        order.cancel(reason="Authorization canceled by gateway", cancelled_by=CancellationActor.GATEWAY.value)
        ledger.release_all(order.reservation_tokens(), reason="authorization canceled")
        return EventDisposition.APPLIED
    if status == OrderStatus.PROCESSING:
        order.cancel(reason="Authorization canceled after capture", cancelled_by=CancellationActor.GATEWAY.value)
        for token in order.reservation_tokens():
            ledger.return_to_stock(token)
        return EventDisposition.APPLIED
    return EventDisposition.IGNORED


def _refunded(order, event_id):
    if order.order_status != OrderStatus.PROCESSING:
        return EventDisposition.IGNORED
    order.refund(event_id)
    for token in order.reservation_tokens():
        ledger.return_to_stock(token)
    return EventDisposition.APPLIED


_APPLIERS = {
    AuthorizationOutcome.SUCCEEDED: _succeeded,
    AuthorizationOutcome.FAILED: _failed,
    AuthorizationOutcome.CANCELED: _canceled,
    AuthorizationOutcome.REFUNDED: _refunded,
}


@checkout.command_handler(part_of=Order)
class ApplyGatewayResultHandler:
    @handle(ApplyGatewayResult)
    def apply_gateway_result(self, command):
        processed = current_domain.repository_for(ProcessedGatewayEvent)
        if processed.is_processed(command.event_id):
            logger.info("gateway_event_duplicate", event_id=command.event_id, handle=command.authorization_handle)
            return EventDisposition.DUPLICATE.value

        orders = current_domain.repository_for(Order)
        order = orders.find_by_authorization_handle(command.authorization_handle)
        if order is None:
            # Not recorded, so a redelivery after the handle is attached can still apply
            raise OrderNotFound(command.authorization_handle)

        applier = _APPLIERS.get(AuthorizationOutcome(command.outcome))
        previous_status = order.status
        disposition = applier(order, command.event_id) if applier else EventDisposition.IGNORED

        if disposition == EventDisposition.APPLIED:
            orders.add(order)
            logger.info(
                "gateway_event_applied",
                event_id=command.event_id,
                order_id=str(order.id),
                outcome=command.outcome,
                from_status=previous_status,
                to_status=order.status,
            )
        else:
            logger.warning(
                "gateway_event_ignored",
                event_id=command.event_id,
                order_id=str(order.id),
                outcome=command.outcome,
                status=order.status,
            )

        processed.add(
            ProcessedGatewayEvent.record(
                event_id=command.event_id,
                event_type=command.event_type,
                handle=command.authorization_handle,
                order_id=order.id,
                disposition=disposition,
            )
        )
        return disposition.value
