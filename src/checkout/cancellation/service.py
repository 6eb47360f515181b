"""CancellationService — user and operator cancellation of pending orders.

The local transition to CANCELLED is authoritative and happens first. If
the order already holds an authorization handle an UpstreamCancellation
record is opened in the same unit of work; voiding the authorization at the
gateway is attempted afterwards (``attempt_upstream``, typically from a
background task) and retried with backoff by ``retry_due``.

Orders left PENDING longer than ``pending_order_ttl_seconds`` are cancelled
by ``expire_stale`` so their reserved stock goes back on sale.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout.cancellation.upstream import (
    AttemptUpstreamCancellation,
    UpstreamCancellation,
    UpstreamCancellationStatus,
)
from checkout.config import get_settings
from checkout.exceptions import OrderNotFound
from checkout.order.cancellation import CancelOrder
from checkout.order.order import CancellationActor, Order, OrderStatus
from checkout.order.service import RequestContext
from checkout.utils.locks import locks, order_key, product_key, upstream_key

logger = structlog.get_logger(__name__)


class CancellationService:
    def cancel(self, ctx: RequestContext, order_id, reason: str | None = None) -> Order:
        """Cancel a PENDING order. Raises InvalidTransition once it is PROCESSING or later."""
        try:
            order = current_domain.repository_for(Order).get(str(order_id))
        except ObjectNotFoundError:
            raise OrderNotFound(order_id)

        keys = [order_key(order.id), *(product_key(line.product_id) for line in order.items)]
        with locks.hold(*keys):
            changed = current_domain.process(
                CancelOrder(
                    order_id=str(order.id),
                    requested_by=None if ctx.is_admin else ctx.user_id,
                    reason=reason or "Cancelled by customer",
                    cancelled_by=CancellationActor.ADMIN.value if ctx.is_admin else CancellationActor.CUSTOMER.value,
                ),
                asynchronous=False,
            )

        order = current_domain.repository_for(Order).get(str(order.id))
        if changed:
            logger.info(
                "order_cancelled",
                order_id=str(order.id),
                requested_by=str(ctx.user_id),
                upstream_pending=bool(order.authorization_handle),
            )
        return order

    def expire_stale(self, as_of=None) -> list[str]:
        """Cancel PENDING orders placed more than the configured TTL before `as_of`.

        Returns the ids of the orders cancelled. An order that moved on while
        waiting for its locks is skipped.
        """
        as_of = as_of or datetime.now(UTC)
        cutoff = as_of - timedelta(seconds=get_settings().pending_order_ttl_seconds)
        repo = current_domain.repository_for(Order)

        expired = []
        for order in repo.find_pending_placed_before(cutoff):
            keys = [order_key(order.id), *(product_key(line.product_id) for line in order.items)]
            with locks.hold(*keys):
                if repo.get(str(order.id)).order_status != OrderStatus.PENDING:
                    continue
                current_domain.process(
                    CancelOrder(
                        order_id=str(order.id),
                        reason="Payment was not completed in time",
                        cancelled_by=CancellationActor.SYSTEM.value,
                    ),
                    asynchronous=False,
                )
            expired.append(str(order.id))
            logger.info(
                "stale_order_expired",
                order_id=str(order.id),
                created_at=str(order.created_at),
                upstream_pending=bool(order.authorization_handle),
            )
        return expired

    def attempt_upstream(self, order_id) -> str | None:
        """Try once to void the order's authorization. Returns the record status, or None if there is none."""
        with locks.hold(upstream_key(order_id)):
            try:
                current_domain.repository_for(UpstreamCancellation).get(str(order_id))
            except ObjectNotFoundError:
                return None
            return current_domain.process(AttemptUpstreamCancellation(order_id=str(order_id)), asynchronous=False)

    def retry_due(self, as_of=None) -> dict:
        """Attempt every pending upstream cancellation whose backoff has elapsed."""
        as_of = as_of or datetime.now(UTC)
        due = current_domain.repository_for(UpstreamCancellation).find_due(as_of)

        results = {status.value: 0 for status in UpstreamCancellationStatus}
        for record in due:
            with locks.hold(upstream_key(record.order_id)):
                current = current_domain.repository_for(UpstreamCancellation).get(str(record.order_id))
                if not current.is_due(as_of):
                    continue
                status = current_domain.process(
                    AttemptUpstreamCancellation(order_id=str(record.order_id)),
                    asynchronous=False,
                )
            results[status] += 1

        if due:
            logger.info("upstream_cancellations_retried", as_of=str(as_of), due=len(due), **results)
        return results

    def stuck(self) -> list[UpstreamCancellation]:
        return current_domain.repository_for(UpstreamCancellation).find_by_status(
            UpstreamCancellationStatus.STUCK.value
        )


cancellation_service = CancellationService()
