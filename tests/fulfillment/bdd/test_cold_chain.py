"""BDD tests for cold-chain temperature monitoring."""

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/cold_chain.feature")


@pytest.fixture()
def alerts():
    return []


@given("a refrigerated shipment in transit", target_fixture="order")
def refrigerated_shipment(order, shipments):
    item = order.line_items_in_order()[0]
    shipment = order.create_shipment(
        carrier="ColdFreight",
        lines=[{"line_item_id": str(item.id), "quantity": item.quantity}],
    )
    order.record_tracking_event(shipment.id, "in_transit")
    order._events.clear()
    shipments.append(shipment)
    return order


@when(parsers.cfparse("a reading of {value} {unit} is recorded for the {zone} zone"), target_fixture="order")
def record_reading(order, shipments, alerts, value, unit, zone):
    alerts.append(order.record_temperature_reading(shipments[-1].id, float(value), unit, zone))
    return order


@then("no temperature alert is raised")
def no_alert(order, shipments, alerts):
    assert alerts[-1] is None
    assert order.alerts_for(shipments[-1].id) == []


@then(parsers.cfparse('a "{severity}" temperature alert is raised'))
def alert_raised(order, shipments, alerts, severity):
    assert alerts[-1] is not None
    assert alerts[-1].severity == severity
    assert len(order.alerts_for(shipments[-1].id)) == 1


@then(parsers.cfparse("the shipment has {count:d} reading"))
def shipment_has_readings(order, shipments, count):
    assert len(order.readings_for(shipments[-1].id)) == count
