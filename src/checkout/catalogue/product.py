"""Product aggregate — the slice of the catalogue that checkout depends on.

Browsing, categories and reviews live elsewhere; checkout only needs to know
whether a product still exists and what it costs right now. Prices are read at
snapshot time and never locked before then.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, String

from checkout.catalogue.events import ProductDeactivated, ProductPriceChanged, ProductRegistered
from checkout.domain import checkout


@checkout.aggregate
class Product:
    sku = String(required=True, max_length=50)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, sku, name, price, product_id=None):
        now = datetime.now(UTC)
        kwargs = {"id": product_id} if product_id else {}
        product = cls(
            sku=sku,
            name=name,
            price=price,
            is_active=True,
            created_at=now,
            updated_at=now,
            **kwargs,
        )
        product.raise_(
            ProductRegistered(
                product_id=str(product.id),
                sku=sku,
                name=name,
                price=price,
                registered_at=now,
            )
        )
        return product

    def change_price(self, new_price):
        if new_price < 0:
            raise ValidationError({"price": ["Price cannot be negative"]})

        previous_price = self.price
        now = datetime.now(UTC)
        self.price = new_price
        self.updated_at = now

        self.raise_(
            ProductPriceChanged(
                product_id=str(self.id),
                previous_price=previous_price,
                new_price=new_price,
                changed_at=now,
            )
        )

    def deactivate(self):
        if not self.is_active:
            return

        now = datetime.now(UTC)
        self.is_active = False
        self.updated_at = now
        self.raise_(ProductDeactivated(product_id=str(self.id), deactivated_at=now))
