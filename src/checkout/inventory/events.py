"""Domain events for the InventoryItem aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="InventoryItem")
class StockInitialized:
    __version__ = 1

    product_id = Identifier(required=True)
    initial_quantity = Integer(required=True)
    initialized_at = DateTime(required=True)


@checkout.event(part_of="InventoryItem")
class StockReceived:
    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_on_hand = Integer(required=True)
    new_available = Integer(required=True)
    received_at = DateTime(required=True)


@checkout.event(part_of="InventoryItem")
class StockReserved:
    """Units were set aside for an order. On-hand is unchanged until consumed."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reserved_at = DateTime(required=True)


@checkout.event(part_of="InventoryItem")
class ReservationReleased:
    """A reservation was returned to available stock (order cancelled or declined)."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(max_length=255)
    new_available = Integer(required=True)
    released_at = DateTime(required=True)


@checkout.event(part_of="InventoryItem")
class ReservationConsumed:
    """A reservation became a permanent stock decrement (payment authorized)."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_on_hand = Integer(required=True)
    consumed_at = DateTime(required=True)
