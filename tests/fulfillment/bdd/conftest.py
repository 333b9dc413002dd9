"""Shared BDD fixtures and step definitions for the fulfillment core."""

import pytest
from fulfillment.order.events import (
    LineItemStatusChanged,
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderStatusChanged,
    ShipmentCreated,
    ShipmentDelivered,
    TemperatureAlertRaised,
    TemperatureReadingRecorded,
    TrackingEventRecorded,
)
from fulfillment.order.order import Order
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

_ORDER_EVENT_CLASSES = {
    "OrderCreated": OrderCreated,
    "OrderStatusChanged": OrderStatusChanged,
    "LineItemStatusChanged": LineItemStatusChanged,
    "ShipmentCreated": ShipmentCreated,
    "TrackingEventRecorded": TrackingEventRecorded,
    "ShipmentDelivered": ShipmentDelivered,
    "TemperatureReadingRecorded": TemperatureReadingRecorded,
    "TemperatureAlertRaised": TemperatureAlertRaised,
    "OrderCancelled": OrderCancelled,
    "OrderCompleted": OrderCompleted,
}


def _new_order(quantity, **attributes):
    order = Order.create(
        buyer_id="buyer-bdd",
        supplier_id="supplier-bdd",
        items_data=[
            {
                "product_id": "prod-vax",
                "product_name": "Flu vaccine",
                "sku": "VAX-01",
                "quantity": quantity,
                "unit_price": 4.0,
            }
        ],
        **attributes,
    )
    order._events.clear()
    return order


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


@pytest.fixture()
def shipments():
    """Shipments created during the scenario, oldest first."""
    return []


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("an order of {quantity:d} units"), target_fixture="order")
def order_of_units(quantity):
    return _new_order(quantity)


@given(
    parsers.cfparse(
        "an order of {quantity:d} units that allows partial fulfillment with a minimum of {minimum:d} percent"
    ),
    target_fixture="order",
)
def partial_order_of_units(quantity, minimum):
    return _new_order(quantity, allow_partial_fulfillment=True, minimum_fulfillment_percentage=minimum)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("a shipment of {quantity:d} units is created"), target_fixture="order")
def create_shipment(order, shipments, quantity):
    item = order.line_items_in_order()[0]
    shipments.append(
        order.create_shipment(
            carrier="ColdFreight",
            lines=[{"line_item_id": str(item.id), "quantity": quantity}],
        )
    )
    return order


@when(parsers.cfparse("a shipment of {quantity:d} units is attempted"), target_fixture="order")
def attempt_shipment(order, shipments, quantity, error):
    try:
        create_shipment(order, shipments, quantity)
    except ValidationError as exc:
        error["exc"] = exc
    return order


@when("the shipment is delivered", target_fixture="order")
def deliver_last_shipment(order, shipments):
    order.record_tracking_event(shipments[-1].id, "delivered")
    return order


@when("every shipment is delivered", target_fixture="order")
def deliver_every_shipment(order, shipments):
    for shipment in shipments:
        order.record_tracking_event(shipment.id, "delivered")
    return order


@when("the order is completed", target_fixture="order")
def complete_order(order):
    order.complete(actor="ops")
    return order


@when("completion is attempted", target_fixture="order")
def attempt_completion(order, error):
    try:
        order.complete(actor="ops")
    except ValidationError as exc:
        error["exc"] = exc
    return order


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert order.status == status


@then(parsers.cfparse('the order action fails with "{error_type}"'))
def order_action_fails(error, error_type):
    assert error["exc"] is not None, "Expected an error but none was raised"
    assert type(error["exc"]).__name__ == error_type


@then(parsers.cfparse("the fulfillment percentage is {percentage:d}"))
def fulfillment_percentage_is(order, percentage):
    assert order.fulfillment_percentage == percentage


@then(parsers.cfparse("the shipped quantity is {quantity:d}"))
def shipped_quantity_is(order, quantity):
    assert order.line_items[0].shipped_quantity == quantity


@then(parsers.cfparse("the order has {count:d} shipments"))
@then(parsers.cfparse("the order has {count:d} shipment"))
def order_has_shipments(order, count):
    assert len(order.shipments) == count


@then(parsers.cfparse("a {event_type} event is raised"))
def order_event_raised(order, event_type):
    event_cls = _ORDER_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in order._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in order._events]}"
