"""Tests for Order aggregate creation, totals and invariants."""

import re

import pytest
from fulfillment.order.events import OrderCreated
from fulfillment.order.order import LineItemStatus, Order, OrderStatus, TemperatureRequirement
from protean import atomic_change
from protean.exceptions import ValidationError


def _items(*quantities, unit_price=10.0):
    return [
        {
            "product_id": f"prod-{i}",
            "product_name": f"Product {i}",
            "quantity": quantity,
            "unit_price": unit_price,
        }
        for i, quantity in enumerate(quantities, start=1)
    ]


class TestOrderCreation:
    def test_create_sets_parties(self, make_order):
        order = make_order()
        assert str(order.buyer_id) == "buyer-001"
        assert str(order.supplier_id) == "supplier-001"

    def test_create_starts_pending(self, make_order):
        order = make_order()
        assert order.status == OrderStatus.PENDING.value

    def test_create_as_draft(self, make_order):
        order = make_order(as_draft=True)
        assert order.status == OrderStatus.DRAFT.value

    def test_order_number_format(self, make_order):
        order = make_order()
        assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{6}", order.order_number)

    def test_order_numbers_are_distinct(self, make_order):
        assert make_order().order_number != make_order().order_number

    def test_line_items_keep_their_position(self, make_order):
        order = make_order(quantities=(5, 6, 7))
        assert [item.quantity for item in order.line_items_in_order()] == [5, 6, 7]
        assert [item.position for item in order.line_items_in_order()] == [0, 1, 2]

    def test_line_items_start_pending_with_zero_quantities(self, make_order):
        item = make_order().line_items[0]
        assert item.status == LineItemStatus.PENDING.value
        assert item.allocated_quantity == 0
        assert item.shipped_quantity == 0
        assert item.delivered_quantity == 0
        assert item.returned_quantity == 0
        assert item.remaining_quantity == 100

    def test_each_line_item_gets_an_initial_timeline_entry(self, make_order):
        order = make_order(quantities=(1, 2))
        for item in order.line_items:
            timeline = order.timeline_for(item.id)
            assert [entry.status for entry in timeline] == ["pending"]

    def test_optional_attributes(self, make_order):
        order = make_order(
            buyer_name="Acme Pharmacy",
            priority="urgent",
            currency="EUR",
            allow_partial_fulfillment=True,
            minimum_fulfillment_percentage=80,
        )
        assert order.buyer_name == "Acme Pharmacy"
        assert order.priority == "urgent"
        assert order.currency == "EUR"
        assert order.allow_partial_fulfillment is True
        assert order.minimum_fulfillment_percentage == 80

    def test_order_without_items_rejected(self):
        with pytest.raises(ValidationError) as exc:
            Order.create(buyer_id="buyer-001", supplier_id="supplier-001", items_data=[])
        assert "at least one line item" in str(exc.value)

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            Order.create(buyer_id="buyer-001", supplier_id="supplier-001", items_data=_items(0))

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            Order.create(
                buyer_id="buyer-001",
                supplier_id="supplier-001",
                items_data=_items(1, unit_price=-1.0),
            )

    def test_missing_product_name_rejected(self):
        with pytest.raises(ValidationError):
            Order.create(
                buyer_id="buyer-001",
                supplier_id="supplier-001",
                items_data=[{"product_id": "prod-1", "quantity": 1, "unit_price": 1.0}],
            )


class TestOrderTotals:
    def test_line_total_is_quantity_times_price(self, make_order):
        order = make_order(quantities=(3,), unit_price=2.5)
        assert order.line_items[0].total_price == 7.5

    def test_subtotal_sums_line_totals(self, make_order):
        order = make_order(quantities=(3, 4), unit_price=2.5)
        assert order.subtotal == 17.5

    def test_total_applies_tax_shipping_and_discount(self, make_order):
        order = make_order(quantities=(10,), unit_price=10.0, tax=8.0, shipping=12.0, discount=5.0)
        assert order.subtotal == 100.0
        assert order.total == 115.0

    def test_totals_are_rounded_to_cents(self, make_order):
        order = make_order(quantities=(3,), unit_price=0.1)
        assert order.subtotal == 0.3
        assert order.total == 0.3

    def test_temperature_controlled_flag(self):
        items = _items(1, 1)
        items[0]["temperature_requirement"] = TemperatureRequirement(min_value=2.0, max_value=8.0)
        order = Order.create(buyer_id="buyer-001", supplier_id="supplier-001", items_data=items)
        assert order.requires_temperature_control is True

    def test_flag_is_false_without_requirements(self, make_order):
        assert make_order().requires_temperature_control is False

    def test_inverted_temperature_requirement_rejected(self):
        with pytest.raises(ValidationError) as exc:
            TemperatureRequirement(min_value=8.0, max_value=2.0)
        assert "Minimum must not exceed maximum" in str(exc.value)


class TestOrderCreatedEvent:
    def test_order_created_raised(self, make_order):
        order = make_order(quantities=(2, 3), clear_events=False)
        events = [e for e in order._events if isinstance(e, OrderCreated)]
        assert len(events) == 1
        event = events[0]
        assert event.order_number == order.order_number
        assert event.line_item_count == 2
        assert event.total == order.total


class TestQuantityInvariants:
    def test_shipped_beyond_declared_rejected(self, make_order):
        order = make_order(quantities=(10,))
        item = order.line_items[0]
        with pytest.raises(ValidationError) as exc:
            with atomic_change(order):
                item.shipped_quantity = 11
        assert "exceeds declared quantity" in str(exc.value)

    def test_delivered_beyond_shipped_rejected(self, make_order):
        order = make_order(quantities=(10,))
        item = order.line_items[0]
        with pytest.raises(ValidationError) as exc:
            with atomic_change(order):
                item.delivered_quantity = 5
        assert "more delivered than shipped" in str(exc.value)

    def test_stale_total_rejected(self, make_order):
        order = make_order(quantities=(10,))
        with pytest.raises(ValidationError) as exc:
            with atomic_change(order):
                order.total = 1.0
        assert "Order totals do not match line items" in str(exc.value)

    def test_delivered_status_without_deliveries_rejected(self, make_order):
        order = make_order(quantities=(10,))
        with pytest.raises(ValidationError) as exc:
            with atomic_change(order):
                order.status = OrderStatus.DELIVERED.value
        assert "cannot be delivered while line items are undelivered" in str(exc.value)

    def test_shipped_status_without_shipments_rejected(self, make_order):
        order = make_order(quantities=(10,))
        with pytest.raises(ValidationError) as exc:
            with atomic_change(order):
                order.status = OrderStatus.PARTIALLY_SHIPPED.value
        assert "before anything has shipped" in str(exc.value)


class TestFulfillmentPercentage:
    def test_nothing_delivered(self, make_order):
        assert make_order().fulfillment_percentage == 0

    @pytest.mark.parametrize(
        "quantity, delivered, expected",
        [
            (100, 80, 80),
            (3, 1, 33),
            (3, 2, 67),
            (8, 1, 13),  # 12.5 rounds half up
            (10, 10, 100),
        ],
    )
    def test_rounds_half_up(self, make_order, quantity, delivered, expected):
        order = make_order(quantities=(quantity,))
        item = order.line_items[0]
        with atomic_change(order):
            item.shipped_quantity = quantity
            item.delivered_quantity = delivered
        assert order.fulfillment_percentage == expected

    def test_across_line_items(self, make_order):
        order = make_order(quantities=(50, 50))
        first = order.line_items_in_order()[0]
        with atomic_change(order):
            first.shipped_quantity = 50
            first.delivered_quantity = 50
        assert order.fulfillment_percentage == 50


class TestLookups:
    def test_unknown_line_item(self, make_order):
        from fulfillment.order.exceptions import NotFound

        order = make_order()
        with pytest.raises(NotFound):
            order.get_line_item("missing")

    def test_unknown_shipment(self, make_order):
        from fulfillment.order.exceptions import NotFound

        order = make_order()
        with pytest.raises(NotFound):
            order.get_shipment("missing")
