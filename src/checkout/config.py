"""Service settings for the Checkout domain.

Protean's own configuration (providers, event store, brokers) lives in
``domain.toml``. The settings here are the business and integration knobs
that the order lifecycle needs, read from the environment once and frozen.
Provides get_settings() / override_settings() / reset_settings() so tests can
swap values without touching the environment.
"""

import os
from dataclasses import dataclass, replace
from decimal import Decimal


@dataclass(frozen=True)
class CheckoutSettings:
    tax_rate: Decimal = Decimal("0.10")
    free_shipping_threshold: Decimal = Decimal("100.00")
    flat_shipping_fee: Decimal = Decimal("10.00")
    currency: str = "USD"
    gateway: str = "fake"  # fake, stripe
    webhook_secret: str = "whsec_test_secret"
    stripe_api_key: str = ""
    cancel_retry_base_seconds: float = 2.0
    cancel_retry_max_seconds: float = 300.0
    cancel_max_attempts: int = 8
    worker_poll_seconds: float = 5.0
    pending_order_ttl_seconds: float = 900.0

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        env = os.environ
        defaults = cls()
        return cls(
            tax_rate=Decimal(env.get("CHECKOUT_TAX_RATE", str(defaults.tax_rate))),
            free_shipping_threshold=Decimal(
                env.get("CHECKOUT_FREE_SHIPPING_THRESHOLD", str(defaults.free_shipping_threshold))
            ),
            flat_shipping_fee=Decimal(env.get("CHECKOUT_FLAT_SHIPPING_FEE", str(defaults.flat_shipping_fee))),
            currency=env.get("CHECKOUT_CURRENCY", defaults.currency),
            gateway=env.get("CHECKOUT_GATEWAY", defaults.gateway).lower(),
            webhook_secret=env.get("CHECKOUT_WEBHOOK_SECRET", defaults.webhook_secret),
            stripe_api_key=env.get("STRIPE_API_KEY", defaults.stripe_api_key),
            cancel_retry_base_seconds=float(
                env.get("CHECKOUT_CANCEL_RETRY_BASE_SECONDS", defaults.cancel_retry_base_seconds)
            ),
            cancel_retry_max_seconds=float(
                env.get("CHECKOUT_CANCEL_RETRY_MAX_SECONDS", defaults.cancel_retry_max_seconds)
            ),
            cancel_max_attempts=int(env.get("CHECKOUT_CANCEL_MAX_ATTEMPTS", defaults.cancel_max_attempts)),
            worker_poll_seconds=float(env.get("CHECKOUT_WORKER_POLL_SECONDS", defaults.worker_poll_seconds)),
            pending_order_ttl_seconds=float(
                env.get("CHECKOUT_PENDING_ORDER_TTL_SECONDS", defaults.pending_order_ttl_seconds)
            ),
        )


_current_settings: CheckoutSettings | None = None


def get_settings() -> CheckoutSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = CheckoutSettings.from_env()
    return _current_settings


def override_settings(**changes) -> CheckoutSettings:
    """Replace individual settings (useful for tests)."""
    global _current_settings
    _current_settings = replace(get_settings(), **changes)
    return _current_settings


def reset_settings() -> None:
    """Drop overrides; the next get_settings() call re-reads the environment."""
    global _current_settings
    _current_settings = None
