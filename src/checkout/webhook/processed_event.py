"""Record of gateway events already applied to an order.

Keyed by the gateway's own event id, which is the only safe deduplication
key: handles and amounts can legitimately repeat across distinct events.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String

from checkout.domain import checkout


class EventDisposition(Enum):
    APPLIED = "applied"  # Order state changed
    IGNORED = "ignored"  # Order was no longer in a state the event applies to
    DUPLICATE = "duplicate"  # Event id seen before; nothing done


@checkout.aggregate
class ProcessedGatewayEvent:
    event_id = Identifier(identifier=True)
    event_type = String(max_length=100)
    authorization_handle = String(max_length=255)
    order_id = Identifier()
    disposition = String(choices=EventDisposition, required=True)
    processed_at = DateTime()

    @classmethod
    def record(cls, event_id, event_type, handle, order_id, disposition):
        return cls(
            event_id=str(event_id),
            event_type=event_type,
            authorization_handle=handle,
            order_id=str(order_id),
            disposition=disposition.value,
            processed_at=datetime.now(UTC),
        )


@checkout.repository(part_of=ProcessedGatewayEvent)
class ProcessedGatewayEventRepository:
    def is_processed(self, event_id) -> bool:
        try:
            self.get(str(event_id))
        except ObjectNotFoundError:
            return False
        return True
