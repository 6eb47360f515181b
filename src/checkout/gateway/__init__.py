"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (CHECKOUT_GATEWAY=fake, the default)
- StripeGateway for production (CHECKOUT_GATEWAY=stripe)
"""

from checkout.config import get_settings
from checkout.gateway.fake_adapter import FakeGateway
from checkout.gateway.port import PaymentGateway
from checkout.gateway.stripe_adapter import StripeGateway

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.gateway == "stripe":
        return StripeGateway(api_key=settings.stripe_api_key, webhook_secret=settings.webhook_secret)
    return FakeGateway()


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, built from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the configured default gateway."""
    global _current_gateway
    _current_gateway = None
