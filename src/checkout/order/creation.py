"""Order creation — command and handler.

The handler runs inside one unit of work: reserving stock for every line,
persisting the PENDING order and clearing the cart either all commit or
none do. Callers go through ``OrderService.create_order``, which takes the
locks that make the reservation arithmetic linearizable per product.
"""

import json
from decimal import Decimal

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.cart.cart import Cart
from checkout.cart.items import load_cart
from checkout.cart.snapshot import CartSnapshot, SnapshotLine
from checkout.domain import checkout
from checkout.inventory.ledger import ledger
from checkout.order.order import Order
from checkout.order.pricing import compute_totals

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class CreateOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: snapshot lines
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    idempotency_key = String(max_length=255)


def snapshot_to_json(snapshot: CartSnapshot) -> str:
    return json.dumps(
        [
            {
                "product_id": line.product_id,
                "sku": line.sku,
                "name": line.name,
                "quantity": line.quantity,
                "unit_price": str(line.unit_price),
                "line_subtotal": str(line.line_subtotal),
            }
            for line in snapshot.lines
        ]
    )


def _snapshot_from_json(user_id, items) -> CartSnapshot:
    data = json.loads(items) if isinstance(items, str) else items
    lines = tuple(
        SnapshotLine(
            product_id=item["product_id"],
            sku=item["sku"],
            name=item["name"],
            quantity=int(item["quantity"]),
            unit_price=Decimal(item["unit_price"]),
            line_subtotal=Decimal(item["line_subtotal"]),
        )
        for item in data
    )
    return CartSnapshot(user_id=str(user_id), lines=lines)


def _load_json(value):
    if value is None:
        return None
    return json.loads(value) if isinstance(value, str) else value


@checkout.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        snapshot = _snapshot_from_json(command.user_id, command.items)
        pricing = compute_totals(snapshot.subtotal)

        order = Order.place(
            user_id=command.user_id,
            snapshot=snapshot,
            pricing=pricing,
            shipping_address=_load_json(command.shipping_address),
            billing_address=_load_json(command.billing_address),
            idempotency_key=command.idempotency_key,
        )

        tokens = ledger.reserve_all(order.id, snapshot.quantities)
        order.attach_reservations(tokens)
        current_domain.repository_for(Order).add(order)

        cart = load_cart(command.user_id)
        if cart is not None:
            cart.clear()
            current_domain.repository_for(Cart).add(cart)

        logger.info(
            "order_created",
            order_id=str(order.id),
            user_id=str(command.user_id),
            total=order.pricing.total,
            lines=len(snapshot.lines),
        )
        return str(order.id)
