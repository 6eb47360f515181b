"""Error taxonomy for the checkout core.

Business rule violations extend Protean's ValidationError so that they surface
as 400 responses through the standard FastAPI exception handlers; a missing
order extends ObjectNotFoundError (404). Signature and upstream failures are
not domain validation problems and get their own handlers in the API layer.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class InsufficientStock(ValidationError):
    """Not enough unreserved stock to satisfy a line."""

    def __init__(self, product_id, requested: int, available: int) -> None:
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available
        super().__init__(
            {
                "product_id": [
                    f"Insufficient stock for product {self.product_id}: {available} available, {requested} requested"
                ]
            }
        )


class EmptyCart(ValidationError):
    """The cart holds no lines to convert."""

    def __init__(self, user_id) -> None:
        self.user_id = str(user_id)
        super().__init__({"cart": ["Cart is empty"]})


class ProductNotFound(ValidationError):
    """A cart line references a product that no longer exists or was deactivated."""

    def __init__(self, product_id) -> None:
        self.product_id = str(product_id)
        super().__init__({"product_id": [f"Product {self.product_id} is not available"]})


class InvalidTransition(ValidationError):
    """The order state machine has no edge between the two statuses."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__({"status": [f"Cannot transition from {from_status} to {to_status}"]})


class OrderNotFound(ObjectNotFoundError):
    def __init__(self, reference) -> None:
        self.reference = str(reference)
        super().__init__(f"Order {self.reference} does not exist")


class InvalidSignature(Exception):
    """A webhook delivery failed signature verification. Never mutates state."""

    def __init__(self, reason: str = "Invalid webhook signature") -> None:
        self.reason = reason
        super().__init__(reason)


class UpstreamUnavailable(Exception):
    """The payment gateway could not be reached or answered with a transient error."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Payment gateway unavailable during {operation}: {detail}".rstrip(": "))
