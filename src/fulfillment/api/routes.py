"""FastAPI routes for the Fulfillment domain.

Every route delegates to the shared ``OrderCoordinator``, so HTTP callers get
the same per-order serialization and retry behaviour as in-process callers.
An ``If-Match`` header pins the order revision the caller expects.
"""

from datetime import datetime

from fastapi import APIRouter, Header

from fulfillment.api.schemas import (
    ActorRequest,
    AlertResponse,
    CancelOrderRequest,
    CreateOrderRequest,
    CreateShipmentRequest,
    LineItemResponse,
    OrderResponse,
    OrderSummaryResponse,
    RefundOrderRequest,
    ShipmentResponse,
    ShipmentTrackingResponse,
    TemperatureReadingRequest,
    TemperatureReadingResponse,
    TrackingEventRequest,
    UpdateLineItemStatusRequest,
    alert_response,
    line_item_response,
    order_response,
    order_summary,
    shipment_response,
    tracking_response,
)
from fulfillment.order.coordinator import OrderCoordinator

coordinator = OrderCoordinator()

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: CreateOrderRequest) -> OrderResponse:
    """Create an order with its line items."""
    options = body.model_dump(exclude={"buyer_id", "supplier_id", "items"}, exclude_none=True)
    order = await coordinator.create_order(
        body.buyer_id,
        body.supplier_id,
        [item.model_dump(mode="json", exclude_none=True) for item in body.items],
        **options,
    )
    return order_response(order)


@order_router.get("", response_model=list[OrderSummaryResponse])
async def list_orders(
    buyer_id: str | None = None,
    supplier_id: str | None = None,
    status: str | None = None,
) -> list[OrderSummaryResponse]:
    orders = await coordinator.list_orders(buyer_id=buyer_id, supplier_id=supplier_id, status=status)
    return [order_summary(order) for order in orders]


@order_router.get("/by-number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(order_number: str) -> OrderResponse:
    return order_response(await coordinator.get_order_by_number(order_number))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    """Get an order with its derived status and totals."""
    return order_response(await coordinator.get_order(order_id))


@order_router.put("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: str,
    body: ActorRequest,
    if_match: int | None = Header(default=None),
) -> OrderResponse:
    order = await coordinator.confirm_order(order_id, actor=body.actor, expected_revision=if_match)
    return order_response(order)


@order_router.put("/{order_id}/line-items/{line_item_id}/status", response_model=LineItemResponse)
async def update_line_item_status(
    order_id: str,
    line_item_id: str,
    body: UpdateLineItemStatusRequest,
    if_match: int | None = Header(default=None),
) -> LineItemResponse:
    """Move a whole line item one status step."""
    item = await coordinator.update_line_item_status(
        order_id,
        line_item_id,
        body.status,
        actor=body.actor,
        notes=body.notes,
        expected_revision=if_match,
    )
    return line_item_response(item)


@order_router.post("/{order_id}/shipments", status_code=201, response_model=ShipmentResponse)
async def create_shipment(
    order_id: str,
    body: CreateShipmentRequest,
    if_match: int | None = Header(default=None),
) -> ShipmentResponse:
    """Ship part of the order's remaining quantities."""
    shipment = await coordinator.create_shipment(
        order_id,
        carrier=body.carrier,
        lines=[line.model_dump() for line in body.lines],
        tracking_number=body.tracking_number,
        pickup_address=body.pickup_address.model_dump() if body.pickup_address else None,
        delivery_address=body.delivery_address.model_dump() if body.delivery_address else None,
        actor=body.actor,
        service_level=body.service_level,
        estimated_pickup_at=body.estimated_pickup_at,
        estimated_delivery_at=body.estimated_delivery_at,
        notes=body.notes,
        expected_revision=if_match,
    )
    order = await coordinator.get_order(order_id)
    return shipment_response(order, shipment)


@order_router.get("/{order_id}/shipments", response_model=list[ShipmentResponse])
async def list_shipments(order_id: str) -> list[ShipmentResponse]:
    order = await coordinator.get_order(order_id)
    return [shipment_response(order, shipment) for shipment in order.shipments_in_order()]


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    if_match: int | None = Header(default=None),
) -> OrderResponse:
    """Cancel the order; shipped quantities continue to delivery or return."""
    order = await coordinator.cancel_order(order_id, body.reason, actor=body.actor, expected_revision=if_match)
    return order_response(order)


@order_router.put("/{order_id}/complete", response_model=OrderResponse)
async def complete_order(
    order_id: str,
    body: ActorRequest,
    if_match: int | None = Header(default=None),
) -> OrderResponse:
    """Finalize the order, subject to its partial-fulfillment policy."""
    order = await coordinator.complete_order(order_id, actor=body.actor, expected_revision=if_match)
    return order_response(order)


@order_router.put("/{order_id}/refund", response_model=OrderResponse)
async def refund_order(
    order_id: str,
    body: RefundOrderRequest,
    if_match: int | None = Header(default=None),
) -> OrderResponse:
    order = await coordinator.refund_order(
        order_id,
        actor=body.actor,
        reason=body.reason,
        expected_revision=if_match,
    )
    return order_response(order)


# ---------------------------------------------------------------------------
# Shipment Router
# ---------------------------------------------------------------------------
shipment_router = APIRouter(prefix="/shipments", tags=["shipments"])


@shipment_router.get("/overdue", response_model=list[ShipmentTrackingResponse])
async def overdue_shipments(as_of: datetime | None = None) -> list[ShipmentTrackingResponse]:
    """Shipments past their estimated delivery that have not arrived."""
    return [tracking_response(view) for view in await coordinator.overdue_shipments(as_of)]


@shipment_router.get("/by-tracking/{tracking_number}", response_model=ShipmentTrackingResponse)
async def find_by_tracking_number(tracking_number: str) -> ShipmentTrackingResponse:
    return tracking_response(await coordinator.find_shipment_by_tracking_number(tracking_number))


@shipment_router.post("/{shipment_id}/tracking-events", response_model=ShipmentResponse)
async def record_tracking_event(
    shipment_id: str,
    body: TrackingEventRequest,
    if_match: int | None = Header(default=None),
) -> ShipmentResponse:
    """Record a carrier-reported tracking event."""
    shipment = await coordinator.record_tracking_event(
        shipment_id,
        body.status,
        order_id=body.order_id,
        location=body.location,
        description=body.description,
        event_code=body.event_code,
        occurred_at=body.occurred_at,
        expected_revision=if_match,
    )
    order = await coordinator.get_order_for_shipment(shipment_id, order_id=body.order_id)
    return shipment_response(order, shipment)


@shipment_router.post("/{shipment_id}/temperature-readings", response_model=TemperatureReadingResponse)
async def record_temperature_reading(
    shipment_id: str,
    body: TemperatureReadingRequest,
    if_match: int | None = Header(default=None),
) -> TemperatureReadingResponse:
    """Append a temperature reading. A violation comes back as an alert."""
    alert = await coordinator.record_temperature_reading(
        shipment_id,
        body.value,
        body.unit,
        body.zone,
        order_id=body.order_id,
        recorded_at=body.recorded_at,
        device_id=body.device_id,
        location=body.location,
        expected_revision=if_match,
    )
    return TemperatureReadingResponse(alert=alert_response(alert) if alert else None)


@shipment_router.get("/{shipment_id}/alerts", response_model=list[AlertResponse])
async def alert_history(shipment_id: str, order_id: str | None = None) -> list[AlertResponse]:
    alerts = await coordinator.get_alert_history(shipment_id, order_id=order_id)
    return [alert_response(alert) for alert in alerts]
