"""Stripe payment gateway adapter.

Authorizations are Stripe PaymentIntents created with manual confirmation:
- create_authorization -> PaymentIntent.create (amount in minor units)
- confirm_authorization -> PaymentIntent.confirm
- retrieve_authorization -> PaymentIntent.retrieve
- cancel_authorization -> PaymentIntent.cancel
Webhook signatures are checked with ``stripe.WebhookSignature.verify_header``
and Stripe events are mapped onto the neutral authorization event types.
"""

import json
from decimal import Decimal

import stripe
import structlog

from checkout.exceptions import UpstreamUnavailable
from checkout.gateway.port import (
    AUTHORIZATION_CANCELED,
    AUTHORIZATION_FAILED,
    AUTHORIZATION_REFUNDED,
    AUTHORIZATION_SUCCEEDED,
    AuthorizationOutcome,
    AuthorizationResult,
    AuthorizationStatus,
    CancellationResult,
    GatewayEvent,
    PaymentGateway,
)
from checkout.order.pricing import to_money

logger = structlog.get_logger(__name__)

# Stripe event type -> neutral event type
_EVENT_TYPES = {
    "payment_intent.succeeded": AUTHORIZATION_SUCCEEDED,
    "payment_intent.amount_capturable_updated": AUTHORIZATION_SUCCEEDED,
    "payment_intent.payment_failed": AUTHORIZATION_FAILED,
    "payment_intent.canceled": AUTHORIZATION_CANCELED,
    "charge.refunded": AUTHORIZATION_REFUNDED,
}

_INTENT_OUTCOMES = {
    "succeeded": AuthorizationOutcome.SUCCEEDED,
    "requires_capture": AuthorizationOutcome.SUCCEEDED,
    "canceled": AuthorizationOutcome.CANCELED,
    "requires_payment_method": AuthorizationOutcome.FAILED,
}

# Errors worth retrying; everything else is a definitive answer
_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def to_minor_units(amount) -> int:
    return int(to_money(amount) * 100)


def from_minor_units(amount) -> float:
    return float(to_money(Decimal(amount) / 100))


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def create_authorization(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> AuthorizationResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                confirmation_method="manual",
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except _TRANSIENT_ERRORS as exc:
            raise UpstreamUnavailable("create_authorization", str(exc)) from exc

        return AuthorizationResult(handle=intent.id, client_secret=intent.client_secret, status=intent.status)

    def confirm_authorization(self, handle: str) -> AuthorizationOutcome:
        try:
            intent = stripe.PaymentIntent.confirm(handle, api_key=self.api_key)
        except stripe.CardError as exc:
            logger.info("stripe_confirmation_declined", handle=handle, code=exc.code)
            return AuthorizationOutcome.FAILED
        except _TRANSIENT_ERRORS as exc:
            raise UpstreamUnavailable("confirm_authorization", str(exc)) from exc

        return _INTENT_OUTCOMES.get(intent.status, AuthorizationOutcome.PENDING)

    def retrieve_authorization(self, handle: str) -> AuthorizationStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(handle, api_key=self.api_key)
        except stripe.InvalidRequestError:
            return AuthorizationStatus(handle=handle, status="unknown")
        except _TRANSIENT_ERRORS as exc:
            raise UpstreamUnavailable("retrieve_authorization", str(exc)) from exc

        return AuthorizationStatus(
            handle=intent.id,
            status=intent.status,
            amount=from_minor_units(intent.amount),
            currency=intent.currency.upper(),
        )

    def cancel_authorization(self, handle: str) -> CancellationResult:
        try:
            intent = stripe.PaymentIntent.cancel(handle, api_key=self.api_key)
        except stripe.InvalidRequestError as exc:
            # Already canceled or already captured; retrying cannot change the answer
            return CancellationResult(success=False, status="invalid_request", failure_reason=str(exc))
        except _TRANSIENT_ERRORS as exc:
            raise UpstreamUnavailable("cancel_authorization", str(exc)) from exc

        return CancellationResult(success=intent.status == "canceled", status=intent.status)

    def verify_webhook_signature(self, payload: bytes | str, signature: str, secret: str) -> bool:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            return stripe.WebhookSignature.verify_header(payload, signature, secret or self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError:
            return False

    def parse_event(self, payload: bytes | str) -> GatewayEvent:
        data = json.loads(payload)
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("Stripe event payload must be a JSON object with an id")

        obj = (data.get("data") or {}).get("object") or {}
        stripe_type = data.get("type", "")
        # Charges point back to their PaymentIntent; intents are the handle themselves
        handle = obj.get("payment_intent") if stripe_type.startswith("charge.") else obj.get("id")

        return GatewayEvent(
            event_id=str(data["id"]),
            type=_EVENT_TYPES.get(stripe_type, stripe_type),
            handle=handle,
            payload=data,
        )
