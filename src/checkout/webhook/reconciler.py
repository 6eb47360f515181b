"""WebhookReconciler — turns signed gateway deliveries into order state changes.

Flow for one delivery:
1. Verify the signature over the raw bytes (constant-time compare). A bad
   signature is logged for audit and rejected before anything is parsed.
2. Parse the event into the neutral ``{event_id, type, handle}`` shape.
3. Known authorization types go through ``OrderService.apply_gateway_result``
   keyed by the gateway's event id, so redelivery is harmless.
4. Unknown types are acknowledged and otherwise ignored.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError

from checkout.config import get_settings
from checkout.exceptions import InvalidSignature
from checkout.gateway import get_gateway
from checkout.gateway.port import (
    AUTHORIZATION_CANCELED,
    AUTHORIZATION_FAILED,
    AUTHORIZATION_REFUNDED,
    AUTHORIZATION_SUCCEEDED,
    AuthorizationOutcome,
)
from checkout.order.service import OrderService, order_service

logger = structlog.get_logger(__name__)

_OUTCOMES = {
    AUTHORIZATION_SUCCEEDED: AuthorizationOutcome.SUCCEEDED,
    AUTHORIZATION_FAILED: AuthorizationOutcome.FAILED,
    AUTHORIZATION_CANCELED: AuthorizationOutcome.CANCELED,
    AUTHORIZATION_REFUNDED: AuthorizationOutcome.REFUNDED,
}

UNHANDLED = "unhandled"


@dataclass(frozen=True)
class WebhookAck:
    event_id: str
    type: str
    disposition: str  # applied, ignored, duplicate or unhandled


class WebhookReconciler:
    def __init__(self, orders: OrderService | None = None) -> None:
        self.orders = orders or order_service

    def handle(self, raw_payload: bytes | str, signature: str) -> WebhookAck:
        gateway = get_gateway()
        if not gateway.verify_webhook_signature(raw_payload, signature or "", get_settings().webhook_secret):
            logger.warning("webhook_signature_invalid", payload_bytes=len(raw_payload or b""))
            raise InvalidSignature()

        try:
            event = gateway.parse_event(raw_payload)
        except ValueError as exc:
            raise ValidationError({"payload": [str(exc)]})

        outcome = _OUTCOMES.get(event.type)
        if outcome is None:
            logger.info("webhook_event_unhandled", event_id=event.event_id, type=event.type)
            return WebhookAck(event_id=event.event_id, type=event.type, disposition=UNHANDLED)

        if not event.handle:
            raise ValidationError({"handle": [f"Event {event.event_id} carries no authorization handle"]})

        disposition = self.orders.apply_gateway_result(
            event.handle,
            outcome,
            event_id=event.event_id,
            event_type=event.type,
        )
        logger.info("webhook_event_processed", event_id=event.event_id, type=event.type, disposition=disposition)
        return WebhookAck(event_id=event.event_id, type=event.type, disposition=disposition)


webhook_reconciler = WebhookReconciler()
