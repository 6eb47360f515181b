"""Domain events for the UpstreamCancellation aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="UpstreamCancellation")
class UpstreamCancellationRequested:
    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)
    requested_at = DateTime(required=True)


@checkout.event(part_of="UpstreamCancellation")
class UpstreamCancellationCompleted:
    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)
    attempts = Integer(required=True)
    completed_at = DateTime(required=True)


@checkout.event(part_of="UpstreamCancellation")
class UpstreamCancellationRetryScheduled:
    """An attempt failed transiently; another is scheduled with backoff."""

    __version__ = 1

    order_id = Identifier(required=True)
    attempts = Integer(required=True)
    error = String(max_length=1000)
    next_attempt_at = DateTime(required=True)


@checkout.event(part_of="UpstreamCancellation")
class UpstreamCancellationStuck:
    """Retries are exhausted or the gateway refused; an operator has to step in."""

    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)
    attempts = Integer(required=True)
    last_error = String(max_length=1000)
    stuck_at = DateTime(required=True)
