"""CartSnapshot — freezes a user's cart into immutable priced lines.

Capturing reads the cart, the catalogue and the inventory ledger but writes
nothing: the cart is left as it was and no stock is reserved. Prices are
taken at capture time, so a price change after capture does not alter an
order built from the snapshot.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout.cart.items import load_cart
from checkout.catalogue.product import Product
from checkout.exceptions import EmptyCart, ProductNotFound
from checkout.inventory.ledger import ledger
from checkout.order.pricing import compute_totals, line_subtotal, to_money


@dataclass(frozen=True)
class SnapshotLine:
    product_id: str
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal


@dataclass(frozen=True)
class CartSnapshot:
    user_id: str
    lines: tuple[SnapshotLine, ...]
    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((line.line_subtotal for line in self.lines), Decimal("0")))

    @property
    def quantities(self) -> list[tuple[str, int]]:
        return [(line.product_id, line.quantity) for line in self.lines]

    @classmethod
    def capture(cls, user_id) -> "CartSnapshot":
        """Snapshot the user's cart at current prices.

        Raises EmptyCart when there is nothing to order, ProductNotFound for a
        missing or deactivated product, and InsufficientStock when a line could
        not be reserved right now.
        """
        cart = load_cart(user_id)
        if cart is None or cart.is_empty:
            raise EmptyCart(user_id)

        products = current_domain.repository_for(Product)
        lines = []
        for item in cart.items:
            try:
                product = products.get(str(item.product_id))
            except ObjectNotFoundError:
                raise ProductNotFound(item.product_id)
            if not product.is_active:
                raise ProductNotFound(item.product_id)

            unit_price = to_money(product.price)
            lines.append(
                SnapshotLine(
                    product_id=str(item.product_id),
                    sku=product.sku,
                    name=product.name,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    line_subtotal=line_subtotal(unit_price, item.quantity),
                )
            )

        snapshot = cls(user_id=str(user_id), lines=tuple(lines))
        ledger.ensure_available(snapshot.quantities)
        return snapshot


def cart_summary(user_id) -> dict:
    """Current cart contents priced with the same rules an order would use.

    Unlike ``CartSnapshot.capture`` this never fails on stock or inactive
    products; such lines are flagged instead so the user can fix the cart.
    """
    cart = load_cart(user_id)
    products = current_domain.repository_for(Product)

    lines = []
    subtotal = Decimal("0")
    for item in cart.items if cart else []:
        try:
            product = products.get(str(item.product_id))
        except ObjectNotFoundError:
            product = None

        available = ledger.available(item.product_id)
        if product is None or not product.is_active:
            lines.append(
                {
                    "product_id": str(item.product_id),
                    "quantity": item.quantity,
                    "available": False,
                    "in_stock": False,
                }
            )
            continue

        subtotal_for_line = line_subtotal(product.price, item.quantity)
        subtotal += subtotal_for_line
        lines.append(
            {
                "product_id": str(item.product_id),
                "sku": product.sku,
                "name": product.name,
                "quantity": item.quantity,
                "unit_price": float(to_money(product.price)),
                "line_subtotal": float(subtotal_for_line),
                "available": True,
                "in_stock": item.quantity <= available,
            }
        )

    totals = compute_totals(subtotal).as_floats()
    if subtotal == 0:
        # Nothing orderable to ship
        totals.update(shipping=0.0, total=0.0)

    return {
        "user_id": str(user_id),
        "items": lines,
        "item_count": sum(line["quantity"] for line in lines),
        **totals,
    }
