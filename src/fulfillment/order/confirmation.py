"""Order confirmation — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order


@fulfillment.command(part_of="Order")
class ConfirmOrder:
    """Supplier accepts the order; every pending line item becomes confirmed."""

    order_id = Identifier(required=True)
    actor = String(max_length=255)
    expected_revision = Integer()


@fulfillment.command_handler(part_of=Order)
class ConfirmOrderHandler:
    @handle(ConfirmOrder)
    def confirm_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        order.confirm(actor=command.actor)
        repo.save_checked(order)
