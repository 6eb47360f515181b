"""UpstreamCancellation aggregate — best-effort voiding of an authorization.

A cancelled order that already holds an authorization handle gets one of
these records. The local CANCELLED status never waits on it; the record only
tracks getting the gateway to agree.

Lifecycle:
    PENDING → COMPLETED  (gateway canceled the authorization)
    PENDING → STUCK      (retries exhausted, or the gateway gave a definitive refusal)

Retry delay after the n-th failed attempt is ``min(base * 2**(n-1), max)``.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.cancellation.events import (
    UpstreamCancellationCompleted,
    UpstreamCancellationRequested,
    UpstreamCancellationRetryScheduled,
    UpstreamCancellationStuck,
)
from checkout.config import get_settings
from checkout.domain import checkout
from checkout.exceptions import UpstreamUnavailable
from checkout.gateway import get_gateway

logger = structlog.get_logger(__name__)


class UpstreamCancellationStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    STUCK = "STUCK"


def backoff_delay(attempts: int, base: float, maximum: float) -> float:
    return min(base * (2 ** max(attempts - 1, 0)), maximum)


def _as_aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@checkout.aggregate
class UpstreamCancellation:
    order_id = Identifier(identifier=True)
    authorization_handle = String(required=True, max_length=255)
    status = String(choices=UpstreamCancellationStatus, default=UpstreamCancellationStatus.PENDING.value)
    attempts = Integer(default=0, min_value=0)
    next_attempt_at = DateTime()
    last_error = String(max_length=1000)
    created_at = DateTime()
    completed_at = DateTime()

    @classmethod
    def open(cls, order_id, handle):
        now = datetime.now(UTC)
        record = cls(
            order_id=str(order_id),
            authorization_handle=handle,
            status=UpstreamCancellationStatus.PENDING.value,
            attempts=0,
            next_attempt_at=now,
            created_at=now,
        )
        record.raise_(
            UpstreamCancellationRequested(
                order_id=str(order_id),
                authorization_handle=handle,
                requested_at=now,
            )
        )
        return record

    @property
    def is_pending(self) -> bool:
        return self.status == UpstreamCancellationStatus.PENDING.value

    def is_due(self, as_of) -> bool:
        if not self.is_pending:
            return False
        return self.next_attempt_at is None or _as_aware(self.next_attempt_at) <= _as_aware(as_of)

    def record_success(self, now=None):
        now = now or datetime.now(UTC)
        self.attempts += 1
        self.status = UpstreamCancellationStatus.COMPLETED.value
        self.completed_at = now
        self.next_attempt_at = None
        self.last_error = None
        self.raise_(
            UpstreamCancellationCompleted(
                order_id=str(self.order_id),
                authorization_handle=self.authorization_handle,
                attempts=self.attempts,
                completed_at=now,
            )
        )

    def record_failure(self, error, retryable, settings=None, now=None):
        """Count a failed attempt and either schedule the next one or give up."""
        settings = settings or get_settings()
        now = now or datetime.now(UTC)
        self.attempts += 1
        self.last_error = error[:1000] if error else None

        if not retryable or self.attempts >= settings.cancel_max_attempts:
            self.status = UpstreamCancellationStatus.STUCK.value
            self.next_attempt_at = None
            self.raise_(
                UpstreamCancellationStuck(
                    order_id=str(self.order_id),
                    authorization_handle=self.authorization_handle,
                    attempts=self.attempts,
                    last_error=self.last_error,
                    stuck_at=now,
                )
            )
            return

        delay = backoff_delay(self.attempts, settings.cancel_retry_base_seconds, settings.cancel_retry_max_seconds)
        self.next_attempt_at = now + timedelta(seconds=delay)
        self.raise_(
            UpstreamCancellationRetryScheduled(
                order_id=str(self.order_id),
                attempts=self.attempts,
                error=self.last_error,
                next_attempt_at=self.next_attempt_at,
            )
        )


@checkout.repository(part_of=UpstreamCancellation)
class UpstreamCancellationRepository:
    def find_due(self, as_of) -> list[UpstreamCancellation]:
        pending = self._dao.query.filter(status=UpstreamCancellationStatus.PENDING.value).all().items
        return [record for record in pending if record.is_due(as_of)]

    def find_by_status(self, status) -> list[UpstreamCancellation]:
        return self._dao.query.filter(status=status).all().items


@checkout.command(part_of="UpstreamCancellation")
class AttemptUpstreamCancellation:
    order_id = Identifier(required=True)


@checkout.command_handler(part_of=UpstreamCancellation)
class UpstreamCancellationHandler:
    @handle(AttemptUpstreamCancellation)
    def attempt_upstream_cancellation(self, command):
        repo = current_domain.repository_for(UpstreamCancellation)
        record = repo.get(command.order_id)
        if not record.is_pending:
            return record.status

        try:
            result = get_gateway().cancel_authorization(record.authorization_handle)
        except UpstreamUnavailable as exc:
            record.record_failure(str(exc), retryable=True)
        else:
            if result.success:
                record.record_success()
            else:
                record.record_failure(result.failure_reason or result.status or "cancellation refused", result.retryable)

        repo.add(record)

        if record.status == UpstreamCancellationStatus.STUCK.value:
            logger.error(
                "upstream_cancellation_stuck",
                order_id=str(record.order_id),
                handle=record.authorization_handle,
                attempts=record.attempts,
                last_error=record.last_error,
            )
        elif record.status == UpstreamCancellationStatus.COMPLETED.value:
            logger.info("upstream_cancellation_completed", order_id=str(record.order_id), attempts=record.attempts)
        else:
            logger.warning(
                "upstream_cancellation_retry_scheduled",
                order_id=str(record.order_id),
                attempts=record.attempts,
                next_attempt_at=str(record.next_attempt_at),
                error=record.last_error,
            )
        return record.status
