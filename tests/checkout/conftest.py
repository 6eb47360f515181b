import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

ADDRESS = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield

        # Clear all databases and drain the event store while the context is still active
        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def fake_gateway():
    from checkout.gateway import set_gateway
    from checkout.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway()
    set_gateway(gateway)
    return gateway


@pytest.fixture()
def make_product():
    """Register a product with an inventory record; returns its id."""
    from checkout.catalogue.management import RegisterProduct
    from checkout.inventory.management import InitializeStock

    def _make(sku="sku-1", price=10.0, stock=5, name=None, product_id=None):
        pid = current_domain.process(
            RegisterProduct(product_id=product_id, sku=sku, name=name or f"Product {sku}", price=price),
            asynchronous=False,
        )
        current_domain.process(InitializeStock(product_id=pid, initial_quantity=stock), asynchronous=False)
        return pid

    return _make


@pytest.fixture()
def add_to_cart():
    from checkout.cart.items import AddToCart, submit_cart_command

    def _add(user_id, product_id, quantity=1):
        submit_cart_command(AddToCart(user_id=user_id, product_id=product_id, quantity=quantity))

    return _add


@pytest.fixture()
def place_order(add_to_cart):
    """Fill a user's cart with (product_id, quantity) lines and create an order from it."""
    from checkout.order.service import RequestContext, order_service

    def _place(user_id, lines, idempotency_key=None):
        for product_id, quantity in lines:
            add_to_cart(user_id, product_id, quantity)
        return order_service.create_order(
            RequestContext(user_id=user_id),
            shipping_address=ADDRESS,
            idempotency_key=idempotency_key,
        )

    return _place


@pytest.fixture()
def authorized_order(place_order, fake_gateway):
    """A PENDING order that already holds a gateway authorization handle."""
    from checkout.order.service import RequestContext, order_service

    def _make(user_id, lines):
        order = place_order(user_id, lines)
        order_service.request_authorization(RequestContext(user_id=user_id), order.id)
        return order_service.get_order(RequestContext(user_id=user_id), order.id)

    return _make
