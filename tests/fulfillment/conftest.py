import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from fulfillment.lookup import reset_lookups
from fulfillment.monitoring import reset_temperature_policy
from fulfillment.utils.logging import clear_context


@pytest.fixture(scope="session")
def fulfillment_bed():
    from fulfillment.domain import fulfillment

    bed = DomainFixture(fulfillment)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(fulfillment_bed):
    with fulfillment_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()

    reset_lookups()
    reset_temperature_policy()
    clear_context()


@pytest.fixture()
def catalog():
    from fulfillment.lookup import get_catalog

    return get_catalog()


@pytest.fixture()
def directory():
    from fulfillment.lookup import get_directory

    return get_directory()


@pytest.fixture()
def make_order():
    """Build an Order in memory with one line item per given quantity."""
    from fulfillment.order.order import Order

    def _make(quantities=(100,), unit_price=10.0, clear_events=True, **overrides):
        items = [
            {
                "product_id": f"prod-{i}",
                "product_name": f"Product {i}",
                "sku": f"SKU-{i:03d}",
                "quantity": quantity,
                "unit_price": unit_price,
            }
            for i, quantity in enumerate(quantities, start=1)
        ]
        defaults = {"buyer_id": "buyer-001", "supplier_id": "supplier-001", "items_data": items}
        defaults.update(overrides)
        order = Order.create(**defaults)
        if clear_events:
            order._events.clear()
        return order

    return _make
