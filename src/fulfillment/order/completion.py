"""Order completion and refund — commands and handlers."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class CompleteOrder:
    """Finalize the order, subject to its partial-fulfillment policy."""

    order_id = Identifier(required=True)
    actor = String(max_length=255)
    expected_revision = Integer()


@fulfillment.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    actor = String(max_length=255)
    reason = String(max_length=500)
    expected_revision = Integer()


@fulfillment.command_handler(part_of=Order)
class CompletionHandler:
    @handle(CompleteOrder)
    def complete_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        order.complete(actor=command.actor)
        repo.save_checked(order)
        logger.info(
            "order_completed",
            order_id=str(order.id),
            fulfillment_percentage=order.fulfillment_percentage,
        )

    @handle(RefundOrder)
    def refund_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        order.refund(actor=command.actor, reason=command.reason)
        repo.save_checked(order)
        logger.info("order_refunded", order_id=str(order.id))
