"""Order cancellation — command and handler.

Only line items that have not shipped are cancelled; shipped quantities
continue to delivery or return.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor = String(max_length=255)
    expected_revision = Integer()


@fulfillment.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        cancelled = order.cancel(command.reason, actor=command.actor)
        repo.save_checked(order)
        logger.info(
            "order_cancelled",
            order_id=str(order.id),
            cancelled_line_items=len(cancelled),
        )
