"""Shipment creation — command and handler.

Ships part of an order's remaining quantities as one consignment. Carrier
details are recorded as reported; no carrier is called.
"""

import json

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class CreateShipment:
    order_id = Identifier(required=True)
    carrier = String(required=True, max_length=100)
    lines = Text(required=True)  # JSON list of {line_item_id, quantity}
    tracking_number = String(max_length=255)
    service_level = String(max_length=50)
    pickup_address = Text()  # JSON address dict
    delivery_address = Text()  # JSON address dict
    estimated_pickup_at = DateTime()
    estimated_delivery_at = DateTime()
    notes = String(max_length=1000)
    actor = String(max_length=255)
    expected_revision = Integer()


def _load_json(value):
    if value is None or not isinstance(value, str):
        return value
    return json.loads(value)


@fulfillment.command_handler(part_of=Order)
class ShippingHandler:
    @handle(CreateShipment)
    def create_shipment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        shipment = order.create_shipment(
            carrier=command.carrier,
            lines=_load_json(command.lines),
            tracking_number=command.tracking_number,
            pickup_address=_load_json(command.pickup_address),
            delivery_address=_load_json(command.delivery_address),
            actor=command.actor,
            service_level=command.service_level,
            estimated_pickup_at=command.estimated_pickup_at,
            estimated_delivery_at=command.estimated_delivery_at,
            notes=command.notes,
        )
        repo.save_checked(order)
        logger.info(
            "shipment_created",
            order_id=str(order.id),
            shipment_id=str(shipment.id),
            shipment_number=shipment.shipment_number,
            carrier=shipment.carrier,
        )
        return str(shipment.id)
