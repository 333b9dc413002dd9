"""Line item tracking — command and handler.

Moves a whole line item one status step forward (or to cancelled/returned).
Partial quantities move through shipments instead.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class UpdateLineItemStatus:
    order_id = Identifier(required=True)
    line_item_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    actor = String(max_length=255)
    notes = String(max_length=1000)
    expected_revision = Integer()


@fulfillment.command_handler(part_of=Order)
class LineItemHandler:
    @handle(UpdateLineItemStatus)
    def update_line_item_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        item = order.update_line_item_status(
            command.line_item_id,
            command.status,
            actor=command.actor,
            notes=command.notes,
        )
        repo.save_checked(order)
        logger.info(
            "line_item_status_updated",
            order_id=str(order.id),
            line_item_id=str(item.id),
            status=item.status,
            order_status=order.status,
        )
        return str(item.id)
