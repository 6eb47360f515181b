"""Pydantic request/response schemas for the Checkout API.

Wire shapes for the HTTP surface. Routes translate them into Protean
commands and service calls; nothing below the API layer imports them.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)


class UpdateCartQuantityRequest(BaseModel):
    quantity: int = Field(ge=0)


class CartLineResponse(BaseModel):
    product_id: str
    sku: str | None = None
    name: str | None = None
    quantity: int
    unit_price: float | None = None
    line_subtotal: float | None = None
    available: bool
    in_stock: bool


class CartResponse(BaseModel):
    user_id: str
    items: list[CartLineResponse]
    item_count: int
    subtotal: float
    tax: float
    shipping: float
    total: float
    currency: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "street": "123 Main St",
                        "city": "Springfield",
                        "state": "IL",
                        "postal_code": "62701",
                        "country": "US",
                    },
                    "idempotency_key": "checkout-7f3a",
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class OrderLineResponse(BaseModel):
    product_id: str
    sku: str | None = None
    name: str | None = None
    quantity: int
    unit_price: float
    line_subtotal: float


class OrderResponse(BaseModel):
    id: str
    user_id: str
    status: str
    items: list[OrderLineResponse]
    subtotal: float
    tax: float
    shipping: float
    total: float
    currency: str
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    authorization_handle: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: PaginationResponse


class AuthorizationResponse(BaseModel):
    order_id: str
    authorization_handle: str
    client_secret: str | None = None
    amount: float
    currency: str


class AuthorizationStatusResponse(BaseModel):
    order_id: str
    authorization_handle: str
    status: str
    amount: float | None = None
    currency: str | None = None


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------
class WebhookAckResponse(BaseModel):
    received: bool = True
    event_id: str
    type: str
    disposition: str


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
class RegisterProductRequest(BaseModel):
    product_id: str | None = None
    sku: str = Field(max_length=50)
    name: str = Field(max_length=255)
    price: float = Field(ge=0)
    initial_stock: int = Field(ge=0, default=0)


class ChangePriceRequest(BaseModel):
    price: float = Field(ge=0)


class ReceiveStockRequest(BaseModel):
    quantity: int = Field(ge=1)


class StockResponse(BaseModel):
    product_id: str
    on_hand: int
    reserved: int
    available: int


class AdvanceFulfillmentRequest(BaseModel):
    status: str = Field(pattern="^(SHIPPED|DELIVERED)$")


class ProductIdResponse(BaseModel):
    product_id: str


class StatusResponse(BaseModel):
    status: str


class UpstreamCancellationResponse(BaseModel):
    order_id: str
    authorization_handle: str
    status: str
    attempts: int
    next_attempt_at: datetime | None = None
    last_error: str | None = None


class RetryResultResponse(BaseModel):
    results: dict[str, int]


class ExpiredOrdersResponse(BaseModel):
    order_ids: list[str]
