"""FastAPI routes for the Checkout API — cart, orders, payment webhooks and admin.

The caller is identified by the ``X-User-Id`` header and turned into an
explicit RequestContext; ``X-User-Role: ADMIN`` unlocks the admin router.
Token issuance and verification happen upstream of this service.

Write endpoints are plain ``def`` so that FastAPI runs them in its worker
threadpool; the per-key locks they take are thread locks.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AddToCartRequest,
    AdvanceFulfillmentRequest,
    AuthorizationResponse,
    AuthorizationStatusResponse,
    CancelOrderRequest,
    CartResponse,
    ChangePriceRequest,
    CreateOrderRequest,
    ExpiredOrdersResponse,
    OrderListResponse,
    OrderResponse,
    ProductIdResponse,
    ReceiveStockRequest,
    RegisterProductRequest,
    RetryResultResponse,
    StatusResponse,
    StockResponse,
    UpdateCartQuantityRequest,
    UpstreamCancellationResponse,
    WebhookAckResponse,
)
from checkout.cancellation.service import cancellation_service
from checkout.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity, submit_cart_command
from checkout.cart.snapshot import cart_summary
from checkout.catalogue.management import ChangeProductPrice, DeactivateProduct, RegisterProduct
from checkout.domain import checkout
from checkout.inventory.management import InitializeStock, ReceiveStock
from checkout.inventory.stock import InventoryItem
from checkout.order.service import RequestContext, Role, order_service
from checkout.webhook.reconciler import webhook_reconciler


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------
def request_context(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default=Role.CUSTOMER.value),
) -> RequestContext:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        role = Role(x_user_role.upper())
    except ValueError:
        raise HTTPException(status_code=403, detail=f"Unknown role {x_user_role}")
    return RequestContext(user_id=x_user_id, role=role)


def admin_context(ctx: RequestContext = Depends(request_context)) -> RequestContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return ctx


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        user_id=str(order.user_id),
        status=order.status,
        items=[
            {
                "product_id": str(line.product_id),
                "sku": line.sku,
                "name": line.name,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "line_subtotal": line.line_subtotal,
            }
            for line in order.items
        ],
        subtotal=order.pricing.subtotal,
        tax=order.pricing.tax,
        shipping=order.pricing.shipping,
        total=order.pricing.total,
        currency=order.pricing.currency,
        shipping_address=order.shipping_address.to_dict() if order.shipping_address else None,
        billing_address=order.billing_address.to_dict() if order.billing_address else None,
        authorization_handle=order.authorization_handle,
        cancellation_reason=order.cancellation_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def _attempt_upstream_cancellation(order_id: str) -> None:
    """Background task: runs after the response, so it pushes its own domain context."""
    with checkout.domain_context():
        cancellation_service.attempt_upstream(order_id)


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
def get_cart(ctx: RequestContext = Depends(request_context)) -> CartResponse:
    return CartResponse(**cart_summary(ctx.user_id))


@cart_router.post("/items", status_code=201, response_model=CartResponse)
def add_to_cart(body: AddToCartRequest, ctx: RequestContext = Depends(request_context)) -> CartResponse:
    """Add a product to the cart, merging with an existing line."""
    submit_cart_command(AddToCart(user_id=ctx.user_id, product_id=body.product_id, quantity=body.quantity))
    return CartResponse(**cart_summary(ctx.user_id))


@cart_router.put("/items/{product_id}", response_model=CartResponse)
def update_cart_quantity(
    product_id: str,
    body: UpdateCartQuantityRequest,
    ctx: RequestContext = Depends(request_context),
) -> CartResponse:
    """Set a line's quantity; zero removes the line."""
    submit_cart_command(UpdateCartQuantity(user_id=ctx.user_id, product_id=product_id, new_quantity=body.quantity))
    return CartResponse(**cart_summary(ctx.user_id))


@cart_router.delete("/items/{product_id}", response_model=CartResponse)
def remove_from_cart(product_id: str, ctx: RequestContext = Depends(request_context)) -> CartResponse:
    submit_cart_command(RemoveFromCart(user_id=ctx.user_id, product_id=product_id))
    return CartResponse(**cart_summary(ctx.user_id))


@cart_router.delete("", response_model=CartResponse)
def clear_cart(ctx: RequestContext = Depends(request_context)) -> CartResponse:
    submit_cart_command(ClearCart(user_id=ctx.user_id))
    return CartResponse(**cart_summary(ctx.user_id))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
def create_order(
    body: CreateOrderRequest,
    ctx: RequestContext = Depends(request_context),
    idempotency_key: str | None = Header(default=None),
) -> OrderResponse:
    """Convert the caller's cart into a PENDING order with stock reserved."""
    order = order_service.create_order(
        ctx,
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        idempotency_key=body.idempotency_key or idempotency_key,
    )
    return _order_response(order)


@order_router.get("", response_model=OrderListResponse)
def list_orders(
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
    ctx: RequestContext = Depends(request_context),
) -> OrderListResponse:
    result = order_service.list_orders(ctx, status=status, page=page, limit=limit)
    return OrderListResponse(
        orders=[_order_response(order) for order in result["orders"]],
        pagination=result["pagination"],
    )


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, ctx: RequestContext = Depends(request_context)) -> OrderResponse:
    return _order_response(order_service.get_order(ctx, order_id))


@order_router.post("/{order_id}/payment", response_model=AuthorizationResponse)
def request_authorization(order_id: str, ctx: RequestContext = Depends(request_context)) -> AuthorizationResponse:
    """Create (or return the existing) gateway authorization for the order total."""
    return AuthorizationResponse(**order_service.request_authorization(ctx, order_id))


@order_router.get("/{order_id}/payment", response_model=AuthorizationStatusResponse)
def authorization_status(order_id: str, ctx: RequestContext = Depends(request_context)) -> AuthorizationStatusResponse:
    return AuthorizationStatusResponse(**order_service.authorization_status(ctx, order_id))


@order_router.post("/{order_id}/payment/confirm", response_model=OrderResponse)
def confirm_authorization(order_id: str, ctx: RequestContext = Depends(request_context)) -> OrderResponse:
    return _order_response(order_service.confirm_authorization(ctx, order_id))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    background_tasks: BackgroundTasks,
    body: CancelOrderRequest | None = None,
    ctx: RequestContext = Depends(request_context),
) -> OrderResponse:
    """Cancel a PENDING order; voiding its authorization continues in the background."""
    order = cancellation_service.cancel(ctx, order_id, reason=body.reason if body else None)
    if order.authorization_handle:
        background_tasks.add_task(_attempt_upstream_cancellation, str(order.id))
    return _order_response(order)


# ---------------------------------------------------------------------------
# Payment webhook Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=WebhookAckResponse)
async def process_webhook(
    request: Request,
    x_gateway_signature: str = Header(default=""),
    stripe_signature: str = Header(default=""),
) -> WebhookAckResponse:
    """Receive a gateway event. The signature covers the raw request body."""
    payload = await request.body()
    ack = await run_in_threadpool(webhook_reconciler.handle, payload, x_gateway_signature or stripe_signature)
    return WebhookAckResponse(event_id=ack.event_id, type=ack.type, disposition=ack.disposition)


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(admin_context)])


@admin_router.post("/products", status_code=201, response_model=ProductIdResponse)
def register_product(body: RegisterProductRequest) -> ProductIdResponse:
    """Register a product and create its inventory record."""
    product_id = current_domain.process(
        RegisterProduct(product_id=body.product_id, sku=body.sku, name=body.name, price=body.price),
        asynchronous=False,
    )
    current_domain.process(
        InitializeStock(product_id=product_id, initial_quantity=body.initial_stock),
        asynchronous=False,
    )
    return ProductIdResponse(product_id=product_id)


@admin_router.put("/products/{product_id}/price", response_model=StatusResponse)
def change_price(product_id: str, body: ChangePriceRequest) -> StatusResponse:
    current_domain.process(ChangeProductPrice(product_id=product_id, new_price=body.price), asynchronous=False)
    return StatusResponse(status="price_changed")


@admin_router.delete("/products/{product_id}", response_model=StatusResponse)
def deactivate_product(product_id: str) -> StatusResponse:
    current_domain.process(DeactivateProduct(product_id=product_id), asynchronous=False)
    return StatusResponse(status="deactivated")


@admin_router.post("/stock/{product_id}/receive", response_model=StockResponse)
def receive_stock(product_id: str, body: ReceiveStockRequest) -> StockResponse:
    current_domain.process(ReceiveStock(product_id=product_id, quantity=body.quantity), asynchronous=False)
    return get_stock(product_id)


@admin_router.get("/stock/{product_id}", response_model=StockResponse)
def get_stock(product_id: str) -> StockResponse:
    item = current_domain.repository_for(InventoryItem).get(product_id)
    return StockResponse(
        product_id=str(item.product_id),
        on_hand=item.levels.on_hand,
        reserved=item.levels.reserved,
        available=item.levels.available,
    )


@admin_router.post("/orders/{order_id}/fulfillment", response_model=OrderResponse)
def advance_fulfillment(order_id: str, body: AdvanceFulfillmentRequest) -> OrderResponse:
    return _order_response(order_service.advance_fulfillment(order_id, body.status))


@admin_router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
def admin_cancel_order(
    order_id: str,
    background_tasks: BackgroundTasks,
    body: CancelOrderRequest | None = None,
    ctx: RequestContext = Depends(admin_context),
) -> OrderResponse:
    order = cancellation_service.cancel(ctx, order_id, reason=body.reason if body else "Cancelled by operator")
    if order.authorization_handle:
        background_tasks.add_task(_attempt_upstream_cancellation, str(order.id))
    return _order_response(order)


@admin_router.get("/cancellations/stuck", response_model=list[UpstreamCancellationResponse])
def stuck_cancellations() -> list[UpstreamCancellationResponse]:
    """Upstream cancellations that need an operator."""
    return [
        UpstreamCancellationResponse(
            order_id=str(record.order_id),
            authorization_handle=record.authorization_handle,
            status=record.status,
            attempts=record.attempts,
            next_attempt_at=record.next_attempt_at,
            last_error=record.last_error,
        )
        for record in cancellation_service.stuck()
    ]


@admin_router.post("/cancellations/retry", response_model=RetryResultResponse)
def retry_cancellations() -> RetryResultResponse:
    return RetryResultResponse(results=cancellation_service.retry_due())


@admin_router.post("/orders/expire", response_model=ExpiredOrdersResponse)
def expire_stale_orders() -> ExpiredOrdersResponse:
    """Cancel PENDING orders older than the configured TTL."""
    return ExpiredOrdersResponse(order_ids=cancellation_service.expire_stale())
