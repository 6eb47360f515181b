"""Order pricing — subtotal, tax, shipping and total in Decimal.

Amounts are computed in Decimal and quantized to cents; they are stored as
floats on the aggregate only after rounding.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from checkout.config import CheckoutSettings, get_settings

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert a float, int, str or Decimal amount into a cent-rounded Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    currency: str

    def as_floats(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "total": float(self.total),
            "currency": self.currency,
        }


def line_subtotal(unit_price, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def compute_totals(subtotal, settings: CheckoutSettings | None = None) -> PriceBreakdown:
    """Tax is a flat rate on the subtotal; shipping is free strictly above the threshold."""
    settings = settings or get_settings()
    subtotal = to_money(subtotal)

    tax = to_money(subtotal * settings.tax_rate)
    shipping = Decimal("0.00") if subtotal > settings.free_shipping_threshold else to_money(settings.flat_shipping_fee)
    total = to_money(subtotal + tax + shipping)

    return PriceBreakdown(subtotal=subtotal, tax=tax, shipping=shipping, total=total, currency=settings.currency)
