"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement, plus
the neutral webhook event shape the reconciler consumes. Adapters raise
``UpstreamUnavailable`` for transient failures (network, rate limiting,
processor outage) and return results for definitive answers.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

# Neutral webhook event types
AUTHORIZATION_SUCCEEDED = "authorization.succeeded"
AUTHORIZATION_FAILED = "authorization.failed"
AUTHORIZATION_CANCELED = "authorization.canceled"
AUTHORIZATION_REFUNDED = "authorization.refunded"


class AuthorizationOutcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"  # Customer action still required
    CANCELED = "canceled"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class AuthorizationResult:
    """Result of requesting a new authorization."""

    handle: str
    client_secret: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class AuthorizationStatus:
    """Current state of an authorization as the gateway reports it."""

    handle: str
    status: str
    amount: float | None = None
    currency: str | None = None


@dataclass(frozen=True)
class CancellationResult:
    """Result of asking the gateway to cancel an authorization."""

    success: bool
    status: str | None = None
    retryable: bool = False
    failure_reason: str | None = None


@dataclass(frozen=True)
class GatewayEvent:
    """A webhook delivery reduced to the fields reconciliation depends on."""

    event_id: str
    type: str
    handle: str | None
    payload: dict = field(default_factory=dict, compare=False)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_authorization(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> AuthorizationResult:
        """Request an authorization for `amount`. Repeating the idempotency key returns the same handle."""
        ...

    @abstractmethod
    def confirm_authorization(self, handle: str) -> AuthorizationOutcome:
        """Confirm a previously created authorization and report the outcome."""
        ...

    @abstractmethod
    def retrieve_authorization(self, handle: str) -> AuthorizationStatus:
        """Look up an authorization. Handles the gateway does not know report status ``unknown``."""
        ...

    @abstractmethod
    def cancel_authorization(self, handle: str) -> CancellationResult:
        """Cancel an authorization that has not been captured."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: bytes | str,
        signature: str,
        secret: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...

    def parse_event(self, payload: bytes | str) -> GatewayEvent:
        """Decode a verified payload in the neutral ``{event_id, type, handle}`` shape.

        Adapters whose processor sends a different envelope override this.
        Raises ValueError when the payload is not a JSON object or lacks an event id.
        """
        data = json.loads(payload)
        if not isinstance(data, dict) or not data.get("event_id"):
            raise ValueError("Webhook payload must be a JSON object with an event_id")
        return GatewayEvent(
            event_id=str(data["event_id"]),
            type=str(data.get("type", "")),
            handle=data.get("handle"),
            payload=data,
        )
