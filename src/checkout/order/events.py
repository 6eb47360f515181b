"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, String, Text

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """A cart was converted into a PENDING order with its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of priced lines
    subtotal = Float(required=True)
    tax = Float(required=True)
    shipping = Float(required=True)
    total = Float(required=True)
    currency = String(max_length=3, default="USD")
    idempotency_key = String(max_length=255)
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class AuthorizationAttached:
    """The gateway authorization handle for the order was recorded."""

    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)
    attached_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentAuthorized:
    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)
    gateway_event_id = String(required=True, max_length=255)
    amount = Float(required=True)
    authorized_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentDeclined:
    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)
    gateway_event_id = String(required=True, max_length=255)
    reason = String(max_length=500)
    declined_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderCancelled:
    """The order reached CANCELLED; reservations are released unless money had moved."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True, max_length=20)
    reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    authorization_handle = String(max_length=255)
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    authorization_handle = String(max_length=255)
    gateway_event_id = String(max_length=255)
    amount = Float(required=True)
    refunded_at = DateTime(required=True)
