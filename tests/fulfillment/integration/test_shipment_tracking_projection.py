"""Integration tests for the ShipmentTrackingView projection."""

import json
from datetime import UTC, datetime, timedelta

from fulfillment.order.creation import CreateOrder
from fulfillment.order.order import Order
from fulfillment.order.shipping import CreateShipment
from fulfillment.order.tracking import RecordTrackingEvent
from fulfillment.projections.shipment_tracking import (
    ShipmentTrackingView,
    find_by_tracking_number,
    find_shipment,
    overdue_shipments,
)
from protean import current_domain


def _create_order():
    return current_domain.process(
        CreateOrder(
            buyer_id="buyer-001",
            supplier_id="supplier-001",
            items=json.dumps([{"product_id": "p-1", "product_name": "Vaccine", "quantity": 10, "unit_price": 1.0}]),
        ),
        asynchronous=False,
    )


def _create_shipment(order_id, tracking_number=None, estimated_delivery_at=None):
    order = current_domain.repository_for(Order).get(order_id)
    return current_domain.process(
        CreateShipment(
            order_id=order_id,
            carrier="ColdFreight",
            lines=json.dumps([{"line_item_id": str(order.line_items[0].id), "quantity": 5}]),
            tracking_number=tracking_number,
            estimated_delivery_at=estimated_delivery_at,
        ),
        asynchronous=False,
    )


def _track(order_id, shipment_id, status, location=None):
    current_domain.process(
        RecordTrackingEvent(order_id=order_id, shipment_id=shipment_id, status=status, location=location),
        asynchronous=False,
    )


class TestShipmentTrackingView:
    def test_view_created_with_shipment(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id, tracking_number="TRK-10")
        view = current_domain.repository_for(ShipmentTrackingView).get(shipment_id)
        assert str(view.order_id) == order_id
        assert view.current_status == "preparing"
        assert view.carrier == "ColdFreight"

    def test_view_follows_tracking_events(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id)
        _track(order_id, shipment_id, "in_transit", location="Hamburg")
        _track(order_id, shipment_id, "customs hold")
        view = find_shipment(shipment_id)
        assert view.current_status == "in_transit"
        assert view.current_location == "Hamburg"
        assert view.last_event_at is not None

    def test_view_records_delivery(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id)
        _track(order_id, shipment_id, "delivered")
        view = find_shipment(shipment_id)
        assert view.current_status == "delivered"
        assert view.delivered_at is not None

    def test_find_by_tracking_number(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id, tracking_number="TRK-11")
        assert str(find_by_tracking_number("TRK-11").shipment_id) == shipment_id
        assert find_by_tracking_number("TRK-404") is None

    def test_unknown_shipment(self):
        assert find_shipment("missing") is None


class TestOverdueShipments:
    def test_past_estimate_is_overdue(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id, estimated_delivery_at=datetime.now(UTC) - timedelta(hours=2))
        assert [str(v.shipment_id) for v in overdue_shipments()] == [shipment_id]

    def test_future_estimate_is_not_overdue(self):
        order_id = _create_order()
        _create_shipment(order_id, estimated_delivery_at=datetime.now(UTC) + timedelta(days=2))
        assert overdue_shipments() == []

    def test_shipment_without_estimate_is_not_overdue(self):
        _create_shipment(_create_order())
        assert overdue_shipments() == []

    def test_as_of_a_later_time(self):
        order_id = _create_order()
        eta = datetime.now(UTC) + timedelta(days=2)
        shipment_id = _create_shipment(order_id, estimated_delivery_at=eta)
        later = datetime.now(UTC) + timedelta(days=3)
        assert [str(v.shipment_id) for v in overdue_shipments(later)] == [shipment_id]

    def test_naive_reference_time_is_treated_as_utc(self):
        order_id = _create_order()
        _create_shipment(order_id, estimated_delivery_at=datetime(2020, 1, 1, tzinfo=UTC))
        assert len(overdue_shipments(datetime(2020, 1, 2))) == 1

    def test_failed_shipment_stays_overdue(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id, estimated_delivery_at=datetime.now(UTC) - timedelta(days=1))
        _track(order_id, shipment_id, "failed")
        assert [str(v.shipment_id) for v in overdue_shipments()] == [shipment_id]

    def test_returned_shipment_is_not_overdue(self):
        order_id = _create_order()
        shipment_id = _create_shipment(order_id, estimated_delivery_at=datetime.now(UTC) - timedelta(days=1))
        _track(order_id, shipment_id, "returned")
        assert overdue_shipments() == []
