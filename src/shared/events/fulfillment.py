"""Cross-domain event contracts for Fulfillment domain events.

These classes define the event shape for collaborators subscribing to the
fulfillment core (notification dispatch, payments, reporting). A subscriber
registers them as external events with ``register_contracts(domain)``, which
uses the matching ``__type__`` strings so Protean's stream deserialization
works correctly.

The source-of-truth events are in src/fulfillment/order/events.py.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, Integer, String, Text


class OrderStatusChanged(BaseEvent):
    """``order.status_changed`` — the derived order status moved."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    fulfillment_percentage = Integer(required=True)
    changed_at = DateTime(required=True)


class ShipmentDelivered(BaseEvent):
    """``shipment.delivered`` — the carrier delivered a shipment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    shipment_id = Identifier(required=True)
    shipment_number = String(required=True)
    tracking_number = String()
    lines = Text(required=True)  # JSON list of {line_item_id, quantity}
    delivered_at = DateTime(required=True)


class TemperatureAlertRaised(BaseEvent):
    """``temperature.alert_raised`` — a reading violated its zone threshold."""

    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    alert_id = Identifier(required=True)
    reading_id = Identifier(required=True)
    zone = String(required=True)
    value = Float(required=True)
    unit = String(required=True)
    severity = String(required=True)
    message = String(required=True, max_length=500)
    raised_at = DateTime(required=True)


EVENT_TYPES = {
    OrderStatusChanged: "Fulfillment.OrderStatusChanged.v1",
    ShipmentDelivered: "Fulfillment.ShipmentDelivered.v1",
    TemperatureAlertRaised: "Fulfillment.TemperatureAlertRaised.v1",
}

# Stream the fulfillment core publishes on
STREAM_CATEGORY = "fulfillment::order"


def register_contracts(domain) -> list[str]:
    """Register every contract as an external event of ``domain``."""
    for event_cls, type_string in EVENT_TYPES.items():
        domain.register_external_event(event_cls, type_string)
    return list(EVENT_TYPES.values())
