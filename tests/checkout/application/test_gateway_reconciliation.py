"""Application tests for applying gateway outcomes to orders."""

import threading

import pytest
from protean import current_domain

from checkout.cancellation.service import cancellation_service
from checkout.domain import checkout
from checkout.exceptions import InvalidTransition, OrderNotFound
from checkout.gateway.port import AuthorizationOutcome
from checkout.inventory.ledger import ledger
from checkout.inventory.stock import InventoryItem
from checkout.order.order import CancellationActor, OrderStatus
from checkout.order.service import RequestContext, order_service
from checkout.webhook.processed_event import EventDisposition, ProcessedGatewayEvent

CTX = RequestContext(user_id="user-1")


def _reload(order):
    return order_service.get_order(CTX, order.id)


class TestAuthorizationSucceeded:
    def test_moves_to_processing_and_consumes_stock(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])

        disposition = order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        assert disposition == EventDisposition.APPLIED.value
        assert _reload(order).status == OrderStatus.PROCESSING.value
        item = current_domain.repository_for(InventoryItem).get(pid)
        assert item.levels.on_hand == 3
        assert item.levels.reserved == 0
        assert item.available == 3

    def test_duplicate_event_is_not_reapplied(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        disposition = order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        assert disposition == EventDisposition.DUPLICATE.value
        assert current_domain.repository_for(InventoryItem).get(pid).levels.on_hand == 3

    def test_event_is_recorded(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 1)])
        order_service.apply_gateway_result(
            order.authorization_handle, AuthorizationOutcome.SUCCEEDED, event_id="evt-1", event_type="test"
        )

        record = current_domain.repository_for(ProcessedGatewayEvent).get("evt-1")
        assert record.disposition == EventDisposition.APPLIED.value
        assert str(record.order_id) == str(order.id)

    def test_success_after_user_cancel_is_ignored(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        cancellation_service.cancel(CTX, order.id)

        disposition = order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-late")

        assert disposition == EventDisposition.IGNORED.value
        assert _reload(order).status == OrderStatus.CANCELLED.value
        assert ledger.available(pid) == 5
        assert current_domain.repository_for(ProcessedGatewayEvent).get("evt-late").disposition == "ignored"


class TestAuthorizationFailed:
    def test_cancels_and_releases_stock(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])

        order_service.apply_gateway_result(order.authorization_handle, "failed", event_id="evt-1")

        order = _reload(order)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_by == CancellationActor.GATEWAY.value
        item = current_domain.repository_for(InventoryItem).get(pid)
        assert item.levels.on_hand == 5
        assert item.available == 5

    def test_failure_after_success_is_ignored(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        disposition = order_service.apply_gateway_result(order.authorization_handle, "failed", event_id="evt-2")

        assert disposition == EventDisposition.IGNORED.value
        assert _reload(order).status == OrderStatus.PROCESSING.value


class TestCanceledAndRefunded:
    def test_canceled_while_pending_releases(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])

        order_service.apply_gateway_result(order.authorization_handle, "canceled", event_id="evt-1")

        assert _reload(order).status == OrderStatus.CANCELLED.value
        assert ledger.available(pid) == 5

    def test_canceled_after_success_returns_stock(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        order_service.apply_gateway_result(order.authorization_handle, "canceled", event_id="evt-2")

        assert _reload(order).status == OrderStatus.CANCELLED.value
        assert ledger.available(pid) == 5

    def test_refund_returns_stock(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt-1")

        order_service.apply_gateway_result(order.authorization_handle, "refunded", event_id="evt-2")

        assert _reload(order).status == OrderStatus.REFUNDED.value
        assert ledger.available(pid) == 5

    def test_refund_while_pending_is_ignored(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])

        disposition = order_service.apply_gateway_result(order.authorization_handle, "refunded", event_id="evt-1")

        assert disposition == EventDisposition.IGNORED.value
        assert _reload(order).status == OrderStatus.PENDING.value


class TestUnknownHandle:
    def test_unknown_handle_raises_and_is_not_recorded(self):
        with pytest.raises(OrderNotFound):
            order_service.apply_gateway_result("fake_auth_unknown", "succeeded", event_id="evt-1")

        assert not current_domain.repository_for(ProcessedGatewayEvent).is_processed("evt-1")


class TestConcurrentCancelAndSuccess:
    def _race(self, order):
        barrier = threading.Barrier(2)
        results: dict[str, object] = {}

        def cancel():
            with checkout.domain_context():
                barrier.wait()
                try:
                    results["cancel"] = cancellation_service.cancel(CTX, order.id)
                except InvalidTransition as exc:
                    results["cancel"] = exc

        def succeed():
            with checkout.domain_context():
                barrier.wait()
                results["success"] = order_service.apply_gateway_result(
                    order.authorization_handle, "succeeded", event_id=f"evt-{order.id}"
                )

        threads = [threading.Thread(target=cancel), threading.Thread(target=succeed)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return results

    @pytest.mark.parametrize("attempt", range(5))
    def test_exactly_one_side_wins(self, attempt, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])

        results = self._race(order)

        status = _reload(order).status
        item = current_domain.repository_for(InventoryItem).get(pid)
        assert item.levels.reserved == 0
        if status == OrderStatus.CANCELLED.value:
            assert results["success"] == EventDisposition.IGNORED.value
            assert item.levels.on_hand == 5
        else:
            assert status == OrderStatus.PROCESSING.value
            assert results["success"] == EventDisposition.APPLIED.value
            assert isinstance(results["cancel"], InvalidTransition)
            assert item.levels.on_hand == 3
