"""InventoryLedger — reserve, release and consume stock per product.

The ledger is the only code that changes reservation counts. Every call
assumes the caller holds the product lock (see ``checkout.utils.locks``) for
the products it touches, and takes it again itself so that it is also safe
when used on its own. Inside a command handler the writes join the handler's
unit of work, which is what makes a multi-product reservation atomic.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout.exceptions import InsufficientStock
from checkout.inventory.stock import InventoryItem
from checkout.utils.locks import locks, product_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReservationToken:
    """Handle to one reservation, stored on the order line that owns it."""

    product_id: str
    reservation_id: str
    quantity: int


def _totals_by_product(lines) -> dict[str, int]:
    totals: dict[str, int] = {}
    for product_id, quantity in lines:
        totals[str(product_id)] = totals.get(str(product_id), 0) + quantity
    return totals


class InventoryLedger:
    def _repository(self):
        return current_domain.repository_for(InventoryItem)

    def _load(self, product_id, requested: int = 0) -> InventoryItem:
        try:
            return self._repository().get(str(product_id))
        except ObjectNotFoundError:
            # A product without an inventory record has nothing to reserve
            raise InsufficientStock(product_id, requested=requested, available=0)

    def available(self, product_id) -> int:
        try:
            return self._repository().get(str(product_id)).available
        except ObjectNotFoundError:
            return 0

    def ensure_available(self, lines) -> None:
        """Advisory check that every (product_id, quantity) line could be reserved now.

        Does not reserve anything; a concurrent caller can still win the race,
        which ``reserve`` and ``reserve_all`` detect under the product lock.
        """
        for product_id, quantity in _totals_by_product(lines).items():
            self._load(product_id, quantity).ensure_available(quantity)

    def reserve(self, product_id, quantity: int, order_id) -> ReservationToken:
        with locks.hold(product_key(product_id)):
            item = self._load(product_id, quantity)
            reservation_id = item.reserve(order_id=str(order_id), quantity=quantity)
            self._repository().add(item)

        logger.debug(
            "stock_reserved",
            product_id=str(product_id),
            order_id=str(order_id),
            quantity=quantity,
            available=item.available,
        )
        return ReservationToken(product_id=str(product_id), reservation_id=reservation_id, quantity=quantity)

    def reserve_all(self, order_id, lines) -> list[ReservationToken]:
        """Reserve every (product_id, quantity) line or none of them.

        All items are loaded and reserved in memory first and written only
        once every line has succeeded, so a failure on a later line leaves no
        earlier reservation behind.
        """
        lines = list(lines)
        keys = [product_key(product_id) for product_id, _ in lines]

        with locks.hold(*keys):
            items: dict[str, InventoryItem] = {}
            tokens: list[ReservationToken] = []
            for product_id, quantity in lines:
                pid = str(product_id)
                if pid not in items:
                    items[pid] = self._load(pid, quantity)
                reservation_id = items[pid].reserve(order_id=str(order_id), quantity=quantity)
                tokens.append(ReservationToken(product_id=pid, reservation_id=reservation_id, quantity=quantity))

            repo = self._repository()
            for item in items.values():
                repo.add(item)

        logger.info("order_stock_reserved", order_id=str(order_id), lines=len(tokens))
        return tokens

    def release(self, token: ReservationToken, reason: str = "") -> bool:
        """Return a reservation to available stock. Already settled tokens are a no-op."""
        with locks.hold(product_key(token.product_id)):
            item = self._repository().get(token.product_id)
            released = item.release_reservation(token.reservation_id, reason=reason)
            if released:
                self._repository().add(item)
        return released

    def consume(self, token: ReservationToken) -> bool:
        """Make a reservation a permanent decrement. Already settled tokens are a no-op."""
        with locks.hold(product_key(token.product_id)):
            item = self._repository().get(token.product_id)
            consumed = item.consume_reservation(token.reservation_id)
            if consumed:
                self._repository().add(item)
        return consumed

    def return_to_stock(self, token: ReservationToken) -> None:
        """Put consumed units back on hand (order reversed before it shipped)."""
        with locks.hold(product_key(token.product_id)):
            item = self._repository().get(token.product_id)
            item.receive_stock(token.quantity)
            self._repository().add(item)

    def release_all(self, tokens, reason: str = "") -> int:
        return sum(1 for token in tokens if self.release(token, reason=reason))

    def consume_all(self, tokens) -> int:
        return sum(1 for token in tokens if self.consume(token))


ledger = InventoryLedger()
