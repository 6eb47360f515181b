"""Stock initialization and receiving — commands and handler."""

from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.inventory.stock import InventoryItem
from checkout.utils.locks import locks, product_key


@checkout.command(part_of="InventoryItem")
class InitializeStock:
    """Create the inventory record for a product."""

    product_id = Identifier(required=True)
    initial_quantity = Integer(default=0, min_value=0)


@checkout.command(part_of="InventoryItem")
class ReceiveStock:
    """Record incoming units for a product."""

    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@checkout.command_handler(part_of=InventoryItem)
class StockManagementHandler:
    @handle(InitializeStock)
    def initialize_stock(self, command):
        item = InventoryItem.create(
            product_id=command.product_id,
            initial_quantity=command.initial_quantity or 0,
        )
        current_domain.repository_for(InventoryItem).add(item)
        return str(item.product_id)

    @handle(ReceiveStock)
    def receive_stock(self, command):
        with locks.hold(product_key(command.product_id)):
            repo = current_domain.repository_for(InventoryItem)
            item = repo.get(command.product_id)
            item.receive_stock(command.quantity)
            repo.add(item)
