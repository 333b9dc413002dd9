"""Tests for the published fulfillment event contracts."""

from fulfillment.order import events as source
from protean.domain import Domain
from protean.utils.reflection import declared_fields
from shared.events import fulfillment as contracts


class TestEventContracts:
    def test_type_strings_follow_the_publishing_domain(self):
        assert contracts.EVENT_TYPES[contracts.OrderStatusChanged] == "Fulfillment.OrderStatusChanged.v1"
        assert contracts.STREAM_CATEGORY == "fulfillment::order"

    def test_contract_fields_exist_on_source_events(self):
        for contract in contracts.EVENT_TYPES:
            source_fields = set(declared_fields(getattr(source, contract.__name__)))
            missing = set(declared_fields(contract)) - source_fields
            assert not missing, f"{contract.__name__} declares fields missing from the source event: {missing}"

    def test_register_contracts_on_a_subscriber(self):
        subscriber = Domain(name="notifications")
        registered = contracts.register_contracts(subscriber)
        assert sorted(registered) == sorted(contracts.EVENT_TYPES.values())
