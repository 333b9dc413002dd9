"""Shipment tracking — read model indexed by tracking number and delivery estimate.

Answers the questions the Order aggregate cannot answer cheaply: which order
owns a carrier tracking number, and which shipments are past their estimated
delivery without having arrived.
"""

from datetime import UTC, datetime

from protean.core.projector import on
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.events import ShipmentCreated, ShipmentDelivered, TrackingEventRecorded
from fulfillment.order.order import Order, ShipmentStatus

_OPEN_STATUSES = (
    ShipmentStatus.PREPARING,
    ShipmentStatus.DISPATCHED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.FAILED,
)


@fulfillment.projection
class ShipmentTrackingView:
    shipment_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    order_number = String(required=True)
    shipment_number = String(required=True)
    carrier = String()
    tracking_number = String()
    current_status = String(required=True)
    current_location = String()
    estimated_delivery_at = DateTime()
    delivered_at = DateTime()
    last_event_at = DateTime()
    created_at = DateTime()


@fulfillment.projector(projector_for=ShipmentTrackingView, aggregates=[Order])
class ShipmentTrackingProjector:
    @on(ShipmentCreated)
    def on_shipment_created(self, event):
        current_domain.repository_for(ShipmentTrackingView).add(
            ShipmentTrackingView(
                shipment_id=event.shipment_id,
                order_id=event.order_id,
                order_number=event.order_number,
                shipment_number=event.shipment_number,
                carrier=event.carrier,
                tracking_number=event.tracking_number,
                current_status=ShipmentStatus.PREPARING.value,
                estimated_delivery_at=event.estimated_delivery_at,
                created_at=event.created_at,
            )
        )

    @on(TrackingEventRecorded)
    def on_tracking_event_recorded(self, event):
        repo = current_domain.repository_for(ShipmentTrackingView)
        view = repo.get(event.shipment_id)
        view.current_status = event.shipment_status
        if event.location:
            view.current_location = event.location
        view.last_event_at = event.occurred_at
        repo.add(view)

    @on(ShipmentDelivered)
    def on_shipment_delivered(self, event):
        repo = current_domain.repository_for(ShipmentTrackingView)
        view = repo.get(event.shipment_id)
        view.current_status = ShipmentStatus.DELIVERED.value
        view.delivered_at = event.delivered_at
        repo.add(view)


def find_by_tracking_number(tracking_number: str) -> ShipmentTrackingView | None:
    repo = current_domain.repository_for(ShipmentTrackingView)
    results = repo._dao.query.filter(tracking_number=tracking_number).all().items
    return results[0] if results else None


def find_shipment(shipment_id: str) -> ShipmentTrackingView | None:
    repo = current_domain.repository_for(ShipmentTrackingView)
    results = repo._dao.query.filter(shipment_id=str(shipment_id)).all().items
    return results[0] if results else None


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def overdue_shipments(now: datetime | None = None) -> list[ShipmentTrackingView]:
    """Shipments past their estimated delivery that have not been delivered or returned."""
    now = _as_utc(now or datetime.now(UTC))
    repo = current_domain.repository_for(ShipmentTrackingView)
    overdue = []
    for status in _OPEN_STATUSES:
        for view in repo._dao.query.filter(current_status=status.value).all().items:
            if view.estimated_delivery_at and _as_utc(view.estimated_delivery_at) < now:
                overdue.append(view)
    return sorted(overdue, key=lambda v: _as_utc(v.estimated_delivery_at))
