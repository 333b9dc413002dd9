"""Pydantic API schemas for the Fulfillment domain.

These are the external API contracts, kept separate from domain commands.
The API layer translates between these schemas and coordinator calls.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class TemperatureRequirementSchema(BaseModel):
    min_value: float
    max_value: float
    unit: str = "C"


class AddressSchema(BaseModel):
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str
    contact_name: str | None = None
    contact_phone: str | None = None


class LineItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    product_name: str | None = None
    sku: str | None = None
    unit: str | None = None
    temperature_requirement: TemperatureRequirementSchema | None = None
    batch_number: str | None = None
    production_date: date | None = None
    expiry_date: date | None = None
    warehouse_location: str | None = None


class CreateOrderRequest(BaseModel):
    buyer_id: str
    supplier_id: str
    items: list[LineItemRequest]
    buyer_name: str | None = None
    supplier_name: str | None = None
    priority: str | None = None
    currency: str | None = None
    payment_terms: str | None = None
    tax: float = 0.0
    shipping: float = 0.0
    discount: float = 0.0
    allow_partial_fulfillment: bool = False
    minimum_fulfillment_percentage: int | None = Field(default=None, ge=0, le=100)
    required_by: date | None = None
    buyer_notes: str | None = None
    supplier_notes: str | None = None
    as_draft: bool = False
    actor: str | None = None


class ActorRequest(BaseModel):
    actor: str | None = None


class UpdateLineItemStatusRequest(BaseModel):
    status: str
    actor: str | None = None
    notes: str | None = None


class ShipmentLineRequest(BaseModel):
    line_item_id: str
    quantity: int


class CreateShipmentRequest(BaseModel):
    carrier: str
    lines: list[ShipmentLineRequest]
    tracking_number: str | None = None
    service_level: str | None = None
    pickup_address: AddressSchema | None = None
    delivery_address: AddressSchema | None = None
    estimated_pickup_at: datetime | None = None
    estimated_delivery_at: datetime | None = None
    notes: str | None = None
    actor: str | None = None


class TrackingEventRequest(BaseModel):
    status: str
    order_id: str | None = None
    location: str | None = None
    description: str | None = None
    event_code: str | None = None
    occurred_at: datetime | None = None


class TemperatureReadingRequest(BaseModel):
    value: float
    unit: str
    zone: str
    order_id: str | None = None
    recorded_at: datetime | None = None
    device_id: str | None = None
    location: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str
    actor: str | None = None


class RefundOrderRequest(BaseModel):
    actor: str | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class LineItemResponse(BaseModel):
    line_item_id: str
    product_id: str
    product_name: str
    sku: str | None = None
    quantity: int
    unit: str | None = None
    unit_price: float
    total_price: float
    temperature_requirement: TemperatureRequirementSchema | None = None
    allocated_quantity: int
    shipped_quantity: int
    delivered_quantity: int
    returned_quantity: int
    status: str


class ShipmentLineResponse(BaseModel):
    line_item_id: str
    quantity: int


class ShipmentResponse(BaseModel):
    shipment_id: str
    shipment_number: str
    carrier: str
    tracking_number: str | None = None
    service_level: str | None = None
    status: str
    lines: list[ShipmentLineResponse]
    estimated_pickup_at: datetime | None = None
    actual_pickup_at: datetime | None = None
    estimated_delivery_at: datetime | None = None
    actual_delivery_at: datetime | None = None
    created_at: datetime | None = None


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    buyer_id: str
    buyer_name: str | None = None
    supplier_id: str
    supplier_name: str | None = None
    status: str
    priority: str
    currency: str
    payment_status: str
    allow_partial_fulfillment: bool
    minimum_fulfillment_percentage: int | None = None
    fulfillment_percentage: int
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float
    requires_temperature_control: bool
    revision: int
    line_items: list[LineItemResponse]
    shipments: list[ShipmentResponse]


class OrderSummaryResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    total: float
    fulfillment_percentage: int


class AlertResponse(BaseModel):
    alert_id: str
    reading_id: str
    zone: str
    value: float
    unit: str
    severity: str
    message: str
    raised_at: datetime


class TemperatureReadingResponse(BaseModel):
    alert: AlertResponse | None = None


class ShipmentTrackingResponse(BaseModel):
    shipment_id: str
    order_id: str
    order_number: str
    shipment_number: str
    carrier: str | None = None
    tracking_number: str | None = None
    current_status: str
    current_location: str | None = None
    estimated_delivery_at: datetime | None = None
    delivered_at: datetime | None = None


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def line_item_response(item) -> LineItemResponse:
    requirement = item.temperature_requirement
    return LineItemResponse(
        line_item_id=str(item.id),
        product_id=str(item.product_id),
        product_name=item.product_name,
        sku=item.sku,
        quantity=item.quantity,
        unit=item.unit,
        unit_price=item.unit_price,
        total_price=item.total_price,
        temperature_requirement=(
            TemperatureRequirementSchema(
                min_value=requirement.min_value,
                max_value=requirement.max_value,
                unit=requirement.unit,
            )
            if requirement
            else None
        ),
        allocated_quantity=item.allocated_quantity,
        shipped_quantity=item.shipped_quantity,
        delivered_quantity=item.delivered_quantity,
        returned_quantity=item.returned_quantity,
        status=item.status,
    )


def shipment_response(order, shipment) -> ShipmentResponse:
    return ShipmentResponse(
        shipment_id=str(shipment.id),
        shipment_number=shipment.shipment_number,
        carrier=shipment.carrier,
        tracking_number=shipment.tracking_number,
        service_level=shipment.service_level,
        status=shipment.status,
        lines=[
            ShipmentLineResponse(line_item_id=str(line.line_item_id), quantity=line.quantity)
            for line in order.lines_for(shipment.id)
        ],
        estimated_pickup_at=shipment.estimated_pickup_at,
        actual_pickup_at=shipment.actual_pickup_at,
        estimated_delivery_at=shipment.estimated_delivery_at,
        actual_delivery_at=shipment.actual_delivery_at,
        created_at=shipment.created_at,
    )


def order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        buyer_id=str(order.buyer_id),
        buyer_name=order.buyer_name,
        supplier_id=str(order.supplier_id),
        supplier_name=order.supplier_name,
        status=order.status,
        priority=order.priority,
        currency=order.currency,
        payment_status=order.payment_status,
        allow_partial_fulfillment=order.allow_partial_fulfillment,
        minimum_fulfillment_percentage=order.minimum_fulfillment_percentage,
        fulfillment_percentage=order.fulfillment_percentage,
        subtotal=order.subtotal,
        tax=order.tax,
        shipping=order.shipping,
        discount=order.discount,
        total=order.total,
        requires_temperature_control=order.requires_temperature_control,
        revision=order.revision,
        line_items=[line_item_response(item) for item in order.line_items_in_order()],
        shipments=[shipment_response(order, s) for s in order.shipments_in_order()],
    )


def order_summary(order) -> OrderSummaryResponse:
    return OrderSummaryResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        status=order.status,
        total=order.total,
        fulfillment_percentage=order.fulfillment_percentage,
    )


def alert_response(alert) -> AlertResponse:
    return AlertResponse(
        alert_id=str(alert.id),
        reading_id=str(alert.reading_id),
        zone=alert.zone,
        value=alert.value,
        unit=alert.unit,
        severity=alert.severity,
        message=alert.message,
        raised_at=alert.raised_at,
    )


def tracking_response(view) -> ShipmentTrackingResponse:
    return ShipmentTrackingResponse(
        shipment_id=str(view.shipment_id),
        order_id=str(view.order_id),
        order_number=view.order_number,
        shipment_number=view.shipment_number,
        carrier=view.carrier,
        tracking_number=view.tracking_number,
        current_status=view.current_status,
        current_location=view.current_location,
        estimated_delivery_at=view.estimated_delivery_at,
        delivered_at=view.delivered_at,
    )
