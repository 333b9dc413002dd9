"""Order domain events — immutable facts about fulfillment and cold-chain changes.

All events are past tense, versioned, and carry enough data for projectors
and for collaborators subscribing to ``order.status_changed``,
``shipment.delivered`` and ``temperature.alert_raised``.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="Order")
class OrderCreated:
    """An order was created with its fixed list of line items."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    line_items = Text(required=True)  # JSON list of {line_item_id, product_id, quantity}
    line_item_count = Integer(required=True)
    total = Float(required=True)
    currency = String(required=True)
    created_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderStatusChanged:
    """The derived order status moved to a new state."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    fulfillment_percentage = Integer(required=True)
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class LineItemStatusChanged:
    """One line item advanced by one status step."""

    __version__ = 1

    order_id = Identifier(required=True)
    line_item_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor = String()
    notes = String()
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class ShipmentCreated:
    """A consignment carrying part of the order was created."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    shipment_id = Identifier(required=True)
    shipment_number = String(required=True)
    carrier = String(required=True)
    tracking_number = String()
    lines = Text(required=True)  # JSON list of {line_item_id, quantity}
    estimated_delivery_at = DateTime()
    created_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class TrackingEventRecorded:
    """A carrier-reported tracking event was appended to a shipment."""

    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    status = String(required=True)
    shipment_status = String(required=True)
    location = String()
    description = String()
    occurred_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class ShipmentDelivered:
    """The carrier delivered a shipment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    shipment_id = Identifier(required=True)
    shipment_number = String(required=True)
    tracking_number = String()
    lines = Text(required=True)  # JSON list of {line_item_id, quantity}
    delivered_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class TemperatureReadingRecorded:
    """A temperature reading was appended to a shipment."""

    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    reading_id = Identifier(required=True)
    value = Float(required=True)
    unit = String(required=True)
    zone = String(required=True)
    recorded_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class TemperatureAlertRaised:
    """A reading violated its zone threshold."""

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


@fulfillment.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled; unshipped line items were cancelled with it."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String()
    cancelled_line_item_ids = Text()  # JSON list of line item ID strings
    cancelled_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderCompleted:
    """The order was finalized at or above its fulfillment threshold."""

    __version__ = 1

    order_id = Identifier(required=True)
    fulfillment_percentage = Integer(required=True)
    completed_by = String()
    completed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderRefunded:
    """The order was refunded before delivery."""

    __version__ = 1

    order_id = Identifier(required=True)
    refunded_by = String()
    reason = String()
    refunded_at = DateTime(required=True)
