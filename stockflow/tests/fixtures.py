from decimal import Decimal

import pytest

from ..account.models import Customer
from ..core.events import EVENT_SIGNALS
from ..inventory.models import Supplier
from ..order.models import SalesOrder, SalesOrderLine
from ..product.models import Product, ProductVariant
from ..shipping.models import Carrier
from ..warehouse.models import Stock, Warehouse


@pytest.fixture(autouse=True)
def enable_db_access_for_all_tests(db):
    pass


@pytest.fixture
def customer():
    return Customer.objects.create(name="Ana Torres", email="ana@example.com")


@pytest.fixture
def supplier():
    return Supplier.objects.create(name="Acme Components", contact_email="po@acme.test")


@pytest.fixture
def carrier():
    return Carrier.objects.create(name="Fast Parcel")


@pytest.fixture
def product():
    return Product.objects.create(
        name="Desk Lamp",
        currency="EUR",
        default_price_amount=Decimal("20.00"),
        weight_kg=Decimal("1.5000"),
        lead_time_days=5,
    )


@pytest.fixture
def variant(product):
    return ProductVariant.objects.create(
        product=product, sku="LAMP-BLK", price_amount=Decimal("25.00")
    )


@pytest.fixture
def variant_factory(product):
    def create_variant(sku, **kwargs):
        return ProductVariant.objects.create(product=product, sku=sku, **kwargs)

    return create_variant


@pytest.fixture
def warehouse_factory():
    def create_warehouse(name, **kwargs):
        return Warehouse.objects.create(name=name, **kwargs)

    return create_warehouse


@pytest.fixture
def warehouse(warehouse_factory):
    return warehouse_factory("Madrid")


@pytest.fixture
def second_warehouse(warehouse_factory):
    return warehouse_factory("Valencia")


@pytest.fixture
def stock_factory():
    def create_stock(variant, warehouse, quantity, quantity_reserved=0, **kwargs):
        return Stock.objects.create(
            product_variant=variant,
            warehouse=warehouse,
            quantity=quantity,
            quantity_reserved=quantity_reserved,
            **kwargs,
        )

    return create_stock


@pytest.fixture
def stock(variant, warehouse, stock_factory):
    return stock_factory(variant, warehouse, 15)


@pytest.fixture
def sales_order(customer):
    return SalesOrder.objects.create(customer=customer, currency="EUR")


@pytest.fixture
def order_line(sales_order, variant):
    return SalesOrderLine.objects.create(
        order=sales_order,
        variant=variant,
        quantity=5,
        unit_price_amount=Decimal("25.00"),
        total_line_amount=Decimal("125.00"),
    )


@pytest.fixture
def captured_events():
    """Collect every domain event sent while the test runs."""
    events = []

    def receiver(sender, event, **kwargs):
        events.append(event)

    for signal in EVENT_SIGNALS.values():
        signal.connect(receiver, weak=False, dispatch_uid="captured_events")
    yield events
    for signal in EVENT_SIGNALS.values():
        signal.disconnect(dispatch_uid="captured_events")
