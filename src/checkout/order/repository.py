"""Order lookups beyond fetch-by-id."""

from datetime import UTC

from checkout.domain import checkout
from checkout.order.order import Order, OrderStatus


def _as_aware(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@checkout.repository(part_of=Order)
class OrderRepository:
    def find_by_idempotency_key(self, user_id, idempotency_key) -> Order | None:
        """Idempotency keys are scoped per user; two users may reuse the same key."""
        if not idempotency_key:
            return None
        return (
            self._dao.query.filter(user_id=str(user_id), idempotency_key=idempotency_key).all().first
        )

    def find_by_authorization_handle(self, handle) -> Order | None:
        if not handle:
            return None
        return self._dao.query.filter(authorization_handle=handle).all().first

    def find_pending_placed_before(self, cutoff) -> list[Order]:
        """PENDING orders created at or before `cutoff`, oldest first."""
        pending = self._dao.query.filter(status=OrderStatus.PENDING.value).order_by("created_at").all().items
        return [order for order in pending if order.created_at and _as_aware(order.created_at) <= _as_aware(cutoff)]

    def list_for_user(self, user_id=None, status=None, offset=0, limit=10):
        """Return (orders, total) newest first. A None user_id lists every order."""
        filters = {}
        if user_id is not None:
            filters["user_id"] = str(user_id)
        if status:
            filters["status"] = status

        query = self._dao.query.filter(**filters) if filters else self._dao.query
        results = query.order_by("-created_at").offset(offset).limit(limit).all()
        return results.items, results.total
