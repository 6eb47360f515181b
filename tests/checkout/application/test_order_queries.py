"""Application tests for order reads and client-driven authorization."""

import pytest
from protean.exceptions import ValidationError

from checkout.cancellation.service import cancellation_service
from checkout.exceptions import OrderNotFound
from checkout.inventory.ledger import ledger
from checkout.order.order import OrderStatus
from checkout.order.service import MAX_PAGE_SIZE, RequestContext, Role, order_service

CTX = RequestContext(user_id="user-1")


class TestGetOrder:
    def test_owner_can_read(self, make_product, place_order):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        assert order_service.get_order(CTX, order.id).id == order.id

    def test_other_user_sees_not_found(self, make_product, place_order):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        with pytest.raises(OrderNotFound):
            order_service.get_order(RequestContext(user_id="user-2"), order.id)

    def test_admin_reads_any_order(self, make_product, place_order):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        admin = RequestContext(user_id="ops", role=Role.ADMIN)
        assert order_service.get_order(admin, order.id).id == order.id


class TestListOrders:
    def test_lists_only_own_orders(self, make_product, place_order):
        pid = make_product(stock=10)
        place_order("user-1", [(pid, 1)])
        place_order("user-1", [(pid, 1)])
        place_order("user-2", [(pid, 1)])

        result = order_service.list_orders(CTX)

        assert len(result["orders"]) == 2
        assert result["pagination"]["total"] == 2
        assert all(o.user_id == "user-1" for o in result["orders"])

    def test_pagination(self, make_product, place_order):
        pid = make_product(stock=10)
        for _ in range(3):
            place_order("user-1", [(pid, 1)])

        result = order_service.list_orders(CTX, page=2, limit=2)

        assert len(result["orders"]) == 1
        assert result["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_limit_is_capped(self):
        result = order_service.list_orders(CTX, limit=10_000)
        assert result["pagination"]["limit"] == MAX_PAGE_SIZE
        assert result["pagination"]["pages"] == 0

    def test_status_filter(self, make_product, place_order):
        pid = make_product(stock=10)
        first = place_order("user-1", [(pid, 1)])
        place_order("user-1", [(pid, 1)])
        cancellation_service.cancel(CTX, first.id)

        result = order_service.list_orders(CTX, status=OrderStatus.CANCELLED.value)

        assert [o.id for o in result["orders"]] == [first.id]

    def test_admin_lists_everyone(self, make_product, place_order):
        pid = make_product(stock=10)
        place_order("user-1", [(pid, 1)])
        place_order("user-2", [(pid, 1)])
        admin = RequestContext(user_id="ops", role=Role.ADMIN)
        assert order_service.list_orders(admin)["pagination"]["total"] == 2


class TestRequestAuthorization:
    def test_attaches_handle(self, make_product, place_order, fake_gateway):
        pid = make_product(price=10.0)
        order = place_order("user-1", [(pid, 2)])

        result = order_service.request_authorization(CTX, order.id)

        assert result["authorization_handle"].startswith("fake_auth_")
        assert result["amount"] == 32.0
        assert result["client_secret"]
        assert order_service.get_order(CTX, order.id).authorization_handle == result["authorization_handle"]
        assert fake_gateway.calls[0]["idempotency_key"] == f"order-{order.id}-authorization"

    def test_repeat_request_keeps_first_handle(self, make_product, place_order, fake_gateway):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])

        first = order_service.request_authorization(CTX, order.id)
        second = order_service.request_authorization(CTX, order.id)

        assert first["authorization_handle"] == second["authorization_handle"]
        assert len(fake_gateway.authorizations) == 1

    def test_attach_is_idempotent(self, make_product, place_order):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        assert order_service.attach_authorization_handle(order.id, "auth-1") is True
        assert order_service.attach_authorization_handle(order.id, "auth-2") is False
        assert order_service.get_order(CTX, order.id).authorization_handle == "auth-1"

    def test_non_pending_order_rejected(self, make_product, place_order, fake_gateway):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        cancellation_service.cancel(CTX, order.id)

        with pytest.raises(ValidationError):
            order_service.request_authorization(CTX, order.id)


class TestConfirmAuthorization:
    def test_confirm_success(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])

        confirmed = order_service.confirm_authorization(CTX, order.id)

        assert confirmed.status == OrderStatus.PROCESSING.value
        assert ledger.available(pid) == 3

    def test_confirm_decline(self, make_product, authorized_order, fake_gateway):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        fake_gateway.configure(should_succeed=False)

        confirmed = order_service.confirm_authorization(CTX, order.id)

        assert confirmed.status == OrderStatus.CANCELLED.value
        assert ledger.available(pid) == 5

    def test_confirm_then_webhook_converge(self, make_product, authorized_order):
        pid = make_product(stock=5)
        order = authorized_order("user-1", [(pid, 2)])
        order_service.confirm_authorization(CTX, order.id)

        disposition = order_service.apply_gateway_result(order.authorization_handle, "succeeded", event_id="evt_1")

        assert disposition == "ignored"
        assert ledger.available(pid) == 3

    def test_confirm_without_handle_rejected(self, make_product, place_order, fake_gateway):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        with pytest.raises(ValidationError):
            order_service.confirm_authorization(CTX, order.id)


class TestAuthorizationStatus:
    def test_reports_gateway_status(self, make_product, authorized_order):
        pid = make_product(price=10.0)
        order = authorized_order("user-1", [(pid, 1)])

        status = order_service.authorization_status(CTX, order.id)

        assert status["authorization_handle"] == order.authorization_handle
        assert status["status"] == "requires_confirmation"
        assert status["amount"] == order.pricing.total

    def test_follows_confirmation(self, make_product, authorized_order):
        pid = make_product()
        order = authorized_order("user-1", [(pid, 1)])
        order_service.confirm_authorization(CTX, order.id)

        assert order_service.authorization_status(CTX, order.id)["status"] == "succeeded"

    def test_without_handle_rejected(self, make_product, place_order, fake_gateway):
        pid = make_product()
        order = place_order("user-1", [(pid, 1)])
        with pytest.raises(ValidationError):
            order_service.authorization_status(CTX, order.id)

    def test_other_user_sees_not_found(self, make_product, authorized_order):
        pid = make_product()
        order = authorized_order("user-1", [(pid, 1)])
        with pytest.raises(OrderNotFound):
            order_service.authorization_status(RequestContext(user_id="user-2"), order.id)
