"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment gateway without any external calls.
It can be configured at runtime to authorize or decline, to be unreachable,
or to fail a number of cancellation attempts before succeeding, making it
useful for:
- Automated tests with predictable outcomes
- Development without real gateway credentials
- Exercising the webhook path via ``build_webhook``

Webhook signatures are an HMAC-SHA256 hex digest of the raw payload keyed by
the shared webhook secret.
"""

import hashlib
import hmac
import json
from uuid import uuid4

from checkout.exceptions import UpstreamUnavailable
from checkout.gateway.port import (
    AuthorizationOutcome,
    AuthorizationResult,
    AuthorizationStatus,
    CancellationResult,
    PaymentGateway,
)


def sign_payload(payload: bytes | str, secret: str) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.available: bool = True
        self.cancel_failures_remaining: int = 0
        self.cancel_rejects: bool = False
        self.authorizations: dict[str, dict] = {}
        self._by_idempotency_key: dict[str, AuthorizationResult] = {}
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        available: bool = True,
        cancel_failures: int = 0,
        cancel_rejects: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime.

        `cancel_failures` makes that many cancellation calls raise
        UpstreamUnavailable before one succeeds; `cancel_rejects` makes every
        cancellation a definitive (non-retryable) refusal.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.available = available
        self.cancel_failures_remaining = cancel_failures
        self.cancel_rejects = cancel_rejects

    def _ensure_available(self, operation: str) -> None:
        if not self.available:
            raise UpstreamUnavailable(operation, "fake gateway configured as unavailable")

    def create_authorization(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> AuthorizationResult:
        self.calls.append(
            {
                "method": "create_authorization",
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        self._ensure_available("create_authorization")

        if idempotency_key in self._by_idempotency_key:
            return self._by_idempotency_key[idempotency_key]

        handle = f"fake_auth_{uuid4().hex[:12]}"
        result = AuthorizationResult(
            handle=handle,
            client_secret=f"{handle}_secret_{uuid4().hex[:8]}",
            status="requires_confirmation",
        )
        self.authorizations[handle] = {"amount": amount, "currency": currency, "status": result.status}
        self._by_idempotency_key[idempotency_key] = result
        return result

    def confirm_authorization(self, handle: str) -> AuthorizationOutcome:
        self.calls.append({"method": "confirm_authorization", "handle": handle})
        self._ensure_available("confirm_authorization")

        record = self.authorizations.get(handle)
        if record is None:
            return AuthorizationOutcome.FAILED
        if record["status"] == "canceled":
            return AuthorizationOutcome.CANCELED

        record["status"] = "succeeded" if self.should_succeed else "failed"
        return AuthorizationOutcome(record["status"])

    def retrieve_authorization(self, handle: str) -> AuthorizationStatus:
        self.calls.append({"method": "retrieve_authorization", "handle": handle})
        self._ensure_available("retrieve_authorization")

        record = self.authorizations.get(handle)
        if record is None:
            return AuthorizationStatus(handle=handle, status="unknown")
        return AuthorizationStatus(
            handle=handle,
            status=record["status"],
            amount=record["amount"],
            currency=record["currency"],
        )

    def cancel_authorization(self, handle: str) -> CancellationResult:
        self.calls.append({"method": "cancel_authorization", "handle": handle})
        self._ensure_available("cancel_authorization")

        if self.cancel_failures_remaining > 0:
            self.cancel_failures_remaining -= 1
            raise UpstreamUnavailable("cancel_authorization", "simulated timeout")

        if self.cancel_rejects:
            return CancellationResult(success=False, status="rejected", failure_reason="Cancellation rejected")

        record = self.authorizations.setdefault(handle, {"amount": 0.0, "currency": "", "status": "unknown"})
        if record["status"] == "succeeded":
            return CancellationResult(
                success=False,
                status="succeeded",
                failure_reason="Authorization already captured",
            )

        record["status"] = "canceled"
        return CancellationResult(success=True, status="canceled")

    def verify_webhook_signature(self, payload: bytes | str, signature: str, secret: str) -> bool:
        if not signature or not secret:
            return False
        return hmac.compare_digest(sign_payload(payload, secret), signature)

    def build_webhook(self, event_type: str, handle: str, secret: str, event_id: str | None = None):
        """Return a (payload, signature) pair as the gateway would deliver it."""
        payload = json.dumps(
            {
                "event_id": event_id or f"evt_{uuid4().hex[:16]}",
                "type": event_type,
                "handle": handle,
            }
        )
        return payload, sign_payload(payload, secret)
