"""Application tests for order cancellation and upstream authorization voiding."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain

from checkout.cancellation.service import cancellation_service
from checkout.cancellation.upstream import UpstreamCancellation, UpstreamCancellationStatus
from checkout.config import override_settings
from checkout.exceptions import InvalidTransition, OrderNotFound
from checkout.inventory.ledger import ledger
from checkout.order.order import CancellationActor, OrderStatus
from checkout.order.service import RequestContext, Role, order_service
from checkout.utils.locks import locks

CTX = RequestContext(user_id="user-1")
ADMIN = RequestContext(user_id="ops-1", role=Role.ADMIN)


def _upstream(order):
    return current_domain.repository_for(UpstreamCancellation).get(str(order.id))


class TestCancelPendingOrder:
    def test_cancel_releases_stock(self, make_product, place_order):
        pid = make_product(stock=5)
        order = place_order("user-1", [(pid, 2)])
        assert ledger.available(pid) == 3

        cancelled = cancellation_service.cancel(CTX, order.id, reason="Changed my mind")

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Changed my mind"
        assert cancelled.cancelled_by == CancellationActor.CUSTOMER.value
        assert ledger.available(pid) == 5

    def test_cancel_twice_is_noop(self, make_product, place_order):
        pid = make_product(stock=5)
        order = place_order("user-1", [(pid, 2)])
        cancellation_service.cancel(CTX, order.id)

        again = cancellation_service.cancel(CTX, order.id)

        assert again.status == OrderStatus.CANCELLED.value
        assert ledger.available(pid) == 5

    def test_other_user_cannot_cancel(self, make_product, place_order):
        pid = make_product(stock=5)
        order = place_order("user-1", [(pid, 1)])

        with pytest.raises(OrderNotFound):
            cancellation_service.cancel(RequestContext(user_id="user-2"), order.id)
        assert order_service.get_order(CTX, order.id).status == OrderStatus.PENDING.value

    def test_admin_can_cancel_any_order(self, make_product, place_order):
        pid = make_product(stock=5)
        order = place_order("user-1", [(pid, 1)])

        cancelled = cancellation_service.cancel(ADMIN, order.id, reason="Fraud check")

        assert cancelled.cancelled_by == CancellationActor.ADMIN.value

    def test_unknown_order(self):
        with pytest.raises(OrderNotFound):
            cancellation_service.cancel(CTX, "missing")

    def test_processing_order_cannot_be_cancelled(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        with pytest.raises(InvalidTransition):
            cancellation_service.cancel(CTX, order.id)
        assert order_service.get_order(CTX, order.id).status == OrderStatus.PROCESSING.value

    def test_no_handle_means_no_upstream_record(self, make_product, place_order):
        pid = make_product(stock=5)
        order = place_order("user-1", [(pid, 1)])
        cancellation_service.cancel(CTX, order.id)
        assert cancellation_service.attempt_upstream(order.id) is None


class TestUpstreamCancellation:
    def test_cancel_with_handle_opens_record(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])

        cancellation_service.cancel(CTX, order.id)

        record = _upstream(order)
        assert record.status == UpstreamCancellationStatus.PENDING.value
        assert record.authorization_handle == order.authorization_handle

    def test_attempt_voids_authorization(self, make_product, authorized_order, fake_gateway):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        cancellation_service.cancel(CTX, order.id)

        status = cancellation_service.attempt_upstream(order.id)

        assert status == UpstreamCancellationStatus.COMPLETED.value
        assert fake_gateway.authorizations[order.authorization_handle]["status"] == "canceled"

    def test_gateway_outage_does_not_block_local_cancel(self, make_product, authorized_order, fake_gateway):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        fake_gateway.configure(available=False)

        cancelled = cancellation_service.cancel(CTX, order.id)
        status = cancellation_service.attempt_upstream(order.id)

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert status == UpstreamCancellationStatus.PENDING.value
        record = _upstream(order)
        assert record.attempts == 1
        assert record.next_attempt_at is not None

    def test_retry_due_completes_after_transient_failures(self, make_product, authorized_order, fake_gateway):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        fake_gateway.configure(cancel_failures=2)
        cancellation_service.cancel(CTX, order.id)

        later = datetime.now(UTC) + timedelta(hours=1)
        first = cancellation_service.retry_due(as_of=later)
        second = cancellation_service.retry_due(as_of=later + timedelta(hours=1))
        third = cancellation_service.retry_due(as_of=later + timedelta(hours=2))

        assert first[UpstreamCancellationStatus.PENDING.value] == 1
        assert second[UpstreamCancellationStatus.PENDING.value] == 1
        assert third[UpstreamCancellationStatus.COMPLETED.value] == 1
        assert _upstream(order).attempts == 3

    def test_retry_due_skips_records_in_backoff(self, make_product, authorized_order, fake_gateway):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        fake_gateway.configure(cancel_failures=1)
        cancellation_service.cancel(CTX, order.id)
        cancellation_service.attempt_upstream(order.id)

        results = cancellation_service.retry_due(as_of=datetime.now(UTC))

        assert sum(results.values()) == 0
        assert _upstream(order).attempts == 1

    def test_exhausted_retries_become_stuck(self, make_product, authorized_order, fake_gateway):
        override_settings(cancel_max_attempts=2)
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        fake_gateway.configure(available=False)
        cancellation_service.cancel(CTX, order.id)

        cancellation_service.attempt_upstream(order.id)
        cancellation_service.retry_due(as_of=datetime.now(UTC) + timedelta(hours=1))

        record = _upstream(order)
        assert record.status == UpstreamCancellationStatus.STUCK.value
        assert [str(r.order_id) for r in cancellation_service.stuck()] == [str(order.id)]

    def test_definitive_refusal_is_stuck_immediately(self, make_product, authorized_order, fake_gateway):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        fake_gateway.configure(cancel_rejects=True)
        cancellation_service.cancel(CTX, order.id)

        assert cancellation_service.attempt_upstream(order.id) == UpstreamCancellationStatus.STUCK.value
        assert _upstream(order).attempts == 1


class TestLockRegistry:
    def test_locks_do_not_accumulate_across_orders(self, make_product, place_order):
        pid = make_product(stock=5)
        before = len(locks)

        for attempt in range(20):
            order = place_order("user-1", [(pid, 1)], idempotency_key=f"key-{attempt}")
            cancellation_service.cancel(CTX, order.id)

        assert len(locks) == before
        assert ledger.available(pid) == 5
