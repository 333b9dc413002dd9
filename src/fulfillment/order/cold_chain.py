"""Cold-chain monitoring — command and handler.

Temperature readings are appended to a shipment and evaluated against the
active temperature policy. A violation is recorded as an alert; it is never
an error.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class RecordTemperatureReading:
    order_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    value = Float(required=True)
    unit = String(required=True, max_length=1)
    zone = String(required=True, max_length=20)
    recorded_at = DateTime()
    device_id = String(max_length=100)
    location = String(max_length=200)
    expected_revision = Integer()


@fulfillment.command_handler(part_of=Order)
class ColdChainHandler:
    @handle(RecordTemperatureReading)
    def record_temperature_reading(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_for_update(command.order_id, command.expected_revision)
        alert = order.record_temperature_reading(
            command.shipment_id,
            command.value,
            command.unit,
            command.zone,
            recorded_at=command.recorded_at,
            device_id=command.device_id,
            location=command.location,
        )
        repo.save_checked(order)

        if alert is None:
            return None
        logger.warning(
            "temperature_alert_raised",
            order_id=str(order.id),
            shipment_id=str(command.shipment_id),
            zone=alert.zone,
            value=alert.value,
            unit=alert.unit,
            severity=alert.severity,
        )
        return str(alert.id)
