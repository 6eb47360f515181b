"""Cart item management — commands and handler.

Adding to the cart checks the product is still sold and that the merged
line quantity does not exceed available stock. Nothing is reserved here;
reservations happen only when the cart becomes an order.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from checkout.cart.cart import Cart
from checkout.catalogue.product import Product
from checkout.domain import checkout
from checkout.exceptions import InsufficientStock, ProductNotFound
from checkout.inventory.ledger import ledger
from checkout.utils.locks import cart_key, locks


@checkout.command(part_of="Cart")
class AddToCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@checkout.command(part_of="Cart")
class UpdateCartQuantity:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=0)


@checkout.command(part_of="Cart")
class RemoveFromCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)


@checkout.command(part_of="Cart")
class ClearCart:
    user_id = Identifier(required=True)


def load_cart(user_id, create=False):
    """Return the user's cart, or None (or a new unsaved cart when `create`)."""
    try:
        return current_domain.repository_for(Cart).get(str(user_id))
    except ObjectNotFoundError:
        return Cart.create(user_id=str(user_id)) if create else None


def _sellable_product(product_id):
    try:
        product = current_domain.repository_for(Product).get(str(product_id))
    except ObjectNotFoundError:
        raise ProductNotFound(product_id)
    if not product.is_active:
        raise ProductNotFound(product_id)
    return product


def _check_stock(product_id, quantity):
    available = ledger.available(product_id)
    if quantity > available:
        raise InsufficientStock(product_id, requested=quantity, available=available)


@checkout.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        _sellable_product(command.product_id)
        cart = load_cart(command.user_id, create=True)
        _check_stock(command.product_id, cart.quantity_of(command.product_id) + command.quantity)

        cart.add_item(product_id=command.product_id, quantity=command.quantity)
        current_domain.repository_for(Cart).add(cart)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        cart = load_cart(command.user_id)
        if cart is None:
            raise ObjectNotFoundError(f"Cart for user {command.user_id} does not exist")
        if command.new_quantity > 0:
            _sellable_product(command.product_id)
            _check_stock(command.product_id, command.new_quantity)

        cart.update_quantity(product_id=command.product_id, new_quantity=command.new_quantity)
        current_domain.repository_for(Cart).add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        cart = load_cart(command.user_id)
        if cart is None:
            raise ObjectNotFoundError(f"Cart for user {command.user_id} does not exist")

        cart.remove_item(product_id=command.product_id)
        current_domain.repository_for(Cart).add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        cart = load_cart(command.user_id)
        if cart is None:
            return

        cart.clear()
        current_domain.repository_for(Cart).add(cart)


def submit_cart_command(command):
    """Process a cart command while holding the user's cart lock."""
    with locks.hold(cart_key(command.user_id)):
        return current_domain.process(command, asynchronous=False)
