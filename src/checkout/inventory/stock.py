"""InventoryItem aggregate — per-product stock counters and reservation claims.

Stock Level Model:
    on_hand:   Units physically held (reduced only when a reservation is consumed)
    reserved:  Units claimed by active reservations
    available: on_hand - reserved (what a new reservation may take)

Reservation lifecycle:
    ACTIVE → CONSUMED  (payment authorized, permanent decrement)
    ACTIVE → RELEASED  (order cancelled or payment declined)

Both terminal operations are idempotent: settling an already settled
reservation is a no-op, so retried reconciliation never double-counts.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, ValueObject

from checkout.domain import checkout
from checkout.exceptions import InsufficientStock
from checkout.inventory.events import (
    ReservationConsumed,
    ReservationReleased,
    StockInitialized,
    StockReceived,
    StockReserved,
)


class ReservationStatus(Enum):
    ACTIVE = "Active"
    CONSUMED = "Consumed"
    RELEASED = "Released"


@checkout.value_object(part_of="InventoryItem")
class StockLevels:
    """Stock quantities. Available is denormalized as on_hand - reserved."""

    on_hand = Integer(default=0, min_value=0)
    reserved = Integer(default=0, min_value=0)
    available = Integer(default=0)


@checkout.entity(part_of="InventoryItem")
class Reservation:
    """A claim of `quantity` units held for one order."""

    order_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    status = String(
        choices=ReservationStatus,
        default=ReservationStatus.ACTIVE.value,
    )
    reserved_at = DateTime(required=True)
    settled_at = DateTime()


@checkout.aggregate
class InventoryItem:
    """Stock for one product, identified by the product id itself."""

    product_id = Identifier(identifier=True)
    levels = ValueObject(StockLevels)
    reservations = HasMany(Reservation)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def reserved_never_exceeds_on_hand(self):
        if self.levels and self.levels.reserved > self.levels.on_hand:
            raise ValidationError({"levels": ["Reserved units cannot exceed on-hand units"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, product_id, initial_quantity=0):
        if initial_quantity < 0:
            raise ValidationError({"quantity": ["Initial quantity cannot be negative"]})

        now = datetime.now(UTC)
        item = cls(
            product_id=product_id,
            levels=StockLevels(on_hand=initial_quantity, reserved=0, available=initial_quantity),
            created_at=now,
            updated_at=now,
        )
        item.raise_(
            StockInitialized(
                product_id=str(product_id),
                initial_quantity=initial_quantity,
                initialized_at=now,
            )
        )
        return item

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def available(self) -> int:
        return self.levels.available if self.levels else 0

    def _set_levels(self, on_hand, reserved):
        self.levels = StockLevels(on_hand=on_hand, reserved=reserved, available=on_hand - reserved)
        self.updated_at = datetime.now(UTC)

    def _find_reservation(self, reservation_id):
        reservation = next(
            (r for r in (self.reservations or []) if str(r.id) == str(reservation_id)),
            None,
        )
        if reservation is None:
            raise ValidationError({"reservation_id": [f"Reservation {reservation_id} not found"]})
        return reservation

    def active_reserved_quantity(self) -> int:
        return sum(
            r.quantity for r in (self.reservations or []) if r.status == ReservationStatus.ACTIVE.value
        )

    # -------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------
    def receive_stock(self, quantity):
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        on_hand = self.levels.on_hand + quantity
        self._set_levels(on_hand, self.levels.reserved)

        self.raise_(
            StockReceived(
                product_id=str(self.product_id),
                quantity=quantity,
                new_on_hand=on_hand,
                new_available=self.levels.available,
                received_at=self.updated_at,
            )
        )

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def ensure_available(self, quantity):
        """Raise InsufficientStock unless `quantity` units could be reserved right now."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if self.available < quantity:
            raise InsufficientStock(self.product_id, requested=quantity, available=self.available)

    def reserve(self, order_id, quantity):
        """Claim `quantity` units for an order and return the reservation id."""
        self.ensure_available(quantity)

        previous_available = self.available
        now = datetime.now(UTC)
        reservation_id = str(uuid4())

        self.add_reservations(
            Reservation(
                id=reservation_id,
                order_id=order_id,
                quantity=quantity,
                reserved_at=now,
            )
        )
        self._set_levels(self.levels.on_hand, self.levels.reserved + quantity)

        self.raise_(
            StockReserved(
                product_id=str(self.product_id),
                reservation_id=reservation_id,
                order_id=str(order_id),
                quantity=quantity,
                previous_available=previous_available,
                new_available=self.levels.available,
                reserved_at=now,
            )
        )
        return reservation_id

    def release_reservation(self, reservation_id, reason=""):
        """Return an active reservation to available stock. Returns False if already settled."""
        reservation = self._find_reservation(reservation_id)
        if reservation.status != ReservationStatus.ACTIVE.value:
            return False

        now = datetime.now(UTC)
        reservation.status = ReservationStatus.RELEASED.value
        reservation.settled_at = now
        self._set_levels(self.levels.on_hand, self.levels.reserved - reservation.quantity)

        self.raise_(
            ReservationReleased(
                product_id=str(self.product_id),
                reservation_id=str(reservation_id),
                order_id=str(reservation.order_id),
                quantity=reservation.quantity,
                reason=reason,
                new_available=self.levels.available,
                released_at=now,
            )
        )
        return True

    def consume_reservation(self, reservation_id):
        """Turn an active reservation into a permanent decrement. Returns False if already settled."""
        reservation = self._find_reservation(reservation_id)
        if reservation.status != ReservationStatus.ACTIVE.value:
            return False

        now = datetime.now(UTC)
        reservation.status = ReservationStatus.CONSUMED.value
        reservation.settled_at = now
        self._set_levels(
            self.levels.on_hand - reservation.quantity,
            self.levels.reserved - reservation.quantity,
        )

        self.raise_(
            ReservationConsumed(
                product_id=str(self.product_id),
                reservation_id=str(reservation_id),
                order_id=str(reservation.order_id),
                quantity=reservation.quantity,
                new_on_hand=self.levels.on_hand,
                consumed_at=now,
            )
        )
        return True
