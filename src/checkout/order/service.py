"""OrderService — the entry point for everything that writes an order.

Every call takes an explicit RequestContext instead of relying on ambient
request state. Writes run as Protean commands; the service's job is to hold
the right locks around each command so that its unit of work commits while
the lock is held:

    create_order:          idempotency key + cart, then every product in the cart
    apply_gateway_result:  the order, then every product on the order
    advance_fulfillment:   the order

Lock keys are acquired in sorted order by ``KeyedLocks.hold``.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from checkout.cart.snapshot import CartSnapshot
from checkout.config import get_settings
from checkout.exceptions import OrderNotFound
from checkout.gateway import get_gateway
from checkout.gateway.port import AuthorizationOutcome
from checkout.order.authorization import AttachAuthorizationHandle
from checkout.order.creation import CreateOrder, snapshot_to_json
from checkout.order.fulfillment import AdvanceFulfillment
from checkout.order.gateway_result import ApplyGatewayResult
from checkout.order.order import Order, OrderStatus
from checkout.utils.locks import cart_key, locks, order_key, product_key
from checkout.utils.locks import idempotency_key as idempotency_lock_key

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


class Role(Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class RequestContext:
    """Who is asking. Passed into every service call."""

    user_id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _product_keys(product_ids) -> list[str]:
    return [product_key(product_id) for product_id in product_ids]


class OrderService:
    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def _load(self, order_id) -> Order:
        try:
            return current_domain.repository_for(Order).get(str(order_id))
        except ObjectNotFoundError:
            raise OrderNotFound(order_id)

    def get_order(self, ctx: RequestContext, order_id) -> Order:
        """Fetch an order the caller may see. Other users' orders look missing."""
        order = self._load(order_id)
        if not ctx.is_admin and str(order.user_id) != str(ctx.user_id):
            raise OrderNotFound(order_id)
        return order

    def list_orders(self, ctx: RequestContext, status=None, page: int = 1, limit: int = 10) -> dict:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        user_id = None if ctx.is_admin else ctx.user_id

        orders, total = current_domain.repository_for(Order).list_for_user(
            user_id=user_id,
            status=status,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {
            "orders": orders,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def create_order(self, ctx: RequestContext, shipping_address: dict, billing_address=None, idempotency_key=None):
        """Convert the caller's cart into a PENDING order with stock reserved.

        A repeated idempotency key returns the order created by the first call
        without reserving anything again.
        """
        repo = current_domain.repository_for(Order)
        outer_keys = [cart_key(ctx.user_id)]
        if idempotency_key:
            outer_keys.append(idempotency_lock_key(ctx.user_id, idempotency_key))

        with locks.hold(*outer_keys):
            existing = repo.find_by_idempotency_key(ctx.user_id, idempotency_key)
            if existing is not None:
                logger.info("order_idempotent_replay", order_id=str(existing.id), idempotency_key=idempotency_key)
                return existing

            snapshot = CartSnapshot.capture(ctx.user_id)

            with locks.hold(*_product_keys(pid for pid, _ in snapshot.quantities)):
                order_id = current_domain.process(
                    CreateOrder(
                        user_id=ctx.user_id,
                        items=snapshot_to_json(snapshot),
                        shipping_address=json.dumps(shipping_address),
                        billing_address=json.dumps(billing_address) if billing_address else None,
                        idempotency_key=idempotency_key,
                    ),
                    asynchronous=False,
                )

        return repo.get(order_id)

    # -------------------------------------------------------------------
    # Payment authorization
    # -------------------------------------------------------------------
    def attach_authorization_handle(self, order_id, handle) -> bool:
        with locks.hold(order_key(order_id)):
            self._load(order_id)
            return current_domain.process(
                AttachAuthorizationHandle(order_id=str(order_id), authorization_handle=handle),
                asynchronous=False,
            )

    def request_authorization(self, ctx: RequestContext, order_id) -> dict:
        """Ask the gateway for an authorization of the order total and attach its handle.

        The gateway idempotency key is derived from the order id, so repeating
        the request yields the same authorization rather than a second one.
        """
        with locks.hold(order_key(order_id)):
            order = self.get_order(ctx, order_id)
            if order.order_status != OrderStatus.PENDING:
                raise ValidationError({"status": [f"Only PENDING orders can request authorization, order is {order.status}"]})

            result = get_gateway().create_authorization(
                amount=order.pricing.total,
                currency=order.pricing.currency or get_settings().currency,
                idempotency_key=f"order-{order.id}-authorization",
            )
            self.attach_authorization_handle(order.id, result.handle)
            order = self._load(order_id)

        logger.info("authorization_requested", order_id=str(order.id), handle=order.authorization_handle)
        return {
            "order_id": str(order.id),
            "authorization_handle": order.authorization_handle,
            "client_secret": result.client_secret if result.handle == order.authorization_handle else None,
            "amount": order.pricing.total,
            "currency": order.pricing.currency,
        }

    def authorization_status(self, ctx: RequestContext, order_id) -> dict:
        """The gateway's current view of the order's authorization. Read-only."""
        order = self.get_order(ctx, order_id)
        if not order.authorization_handle:
            raise ValidationError({"authorization_handle": ["Authorization has not been requested for this order"]})

        status = get_gateway().retrieve_authorization(order.authorization_handle)
        return {
            "order_id": str(order.id),
            "authorization_handle": status.handle,
            "status": status.status,
            "amount": status.amount,
            "currency": status.currency,
        }

    def confirm_authorization(self, ctx: RequestContext, order_id) -> Order:
        """Client-driven confirmation, converging with the webhook on the same outcome."""
        order = self.get_order(ctx, order_id)
        if not order.authorization_handle:
            raise ValidationError({"authorization_handle": ["Authorization has not been requested for this order"]})

        outcome = get_gateway().confirm_authorization(order.authorization_handle)
        if outcome in (AuthorizationOutcome.SUCCEEDED, AuthorizationOutcome.FAILED, AuthorizationOutcome.CANCELED):
            self.apply_gateway_result(
                order.authorization_handle,
                outcome,
                event_id=f"confirm:{order.authorization_handle}:{outcome.value}",
                event_type="confirmation",
            )
        else:
            logger.info("authorization_confirmation_pending", order_id=str(order.id), outcome=outcome.value)
        return self._load(order_id)

    # -------------------------------------------------------------------
    # Gateway results
    # -------------------------------------------------------------------
    def apply_gateway_result(self, handle, outcome, event_id, event_type=None) -> str:
        """Apply a gateway outcome to the order holding `handle`, at most once per event id.

        Returns the disposition: ``applied``, ``ignored`` or ``duplicate``.
        Raises OrderNotFound when no order holds the handle.
        """
        outcome = AuthorizationOutcome(outcome)
        order = current_domain.repository_for(Order).find_by_authorization_handle(handle)
        if order is None:
            raise OrderNotFound(handle)

        keys = [order_key(order.id), *_product_keys(line.product_id for line in order.items)]
        with locks.hold(*keys):
            return current_domain.process(
                ApplyGatewayResult(
                    authorization_handle=handle,
                    outcome=outcome.value,
                    event_id=str(event_id),
                    event_type=event_type,
                    order_id=str(order.id),
                ),
                asynchronous=False,
            )

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def advance_fulfillment(self, order_id, new_status) -> Order:
        status = OrderStatus(new_status)
        with locks.hold(order_key(order_id)):
            self._load(order_id)
            current_domain.process(
                AdvanceFulfillment(order_id=str(order_id), new_status=status.value),
                asynchronous=False,
            )
        logger.info("order_fulfillment_advanced", order_id=str(order_id), status=status.value)
        return self._load(order_id)


order_service = OrderService()
