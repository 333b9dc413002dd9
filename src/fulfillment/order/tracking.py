"""Shipment tracking — command and handler.

Records carrier-reported tracking events (webhook or manual entry).
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class RecordTrackingEvent:
    """Record a tracking event reported by the carrier."""

    order_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    status = String(required=True, max_length=100)
    location = String(max_length=200)
    description = String(max_length=500)
    event_code = String(max_length=50)
    occurred_at = DateTime()
    expected_revision = Integer()


@fulfillment.command_handler(part_of=Order)
class TrackingHandler:
    @handle(RecordTrackingEvent)
    def record_tracking_event(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        shipment = order.record_tracking_event(
            command.shipment_id,
            command.status,
            location=command.location,
            description=command.description,
            event_code=command.event_code,
            occurred_at=command.occurred_at,
        )
        repo.save_checked(order)
        logger.info(
            "tracking_event_recorded",
            order_id=str(order.id),
            shipment_id=str(shipment.id),
            reported_status=command.status,
            shipment_status=shipment.status,
        )
        return str(shipment.id)
