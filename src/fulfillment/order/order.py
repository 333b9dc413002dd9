"""Order aggregate (CQRS) — the core of the fulfillment domain.

The Order owns its line items, the shipments carrying them, and the cold-chain
data recorded against those shipments. Everything lives under one consistency
boundary: status, quantities and totals change together or not at all.

Children are kept as flat, id-keyed collections on the root (shipment lines,
tracking events, readings and alerts reference their shipment by id). The
``position``/``sequence`` fields only drive display order.

Order status is derived from line-item statuses after every mutation:
    DRAFT → PENDING → CONFIRMED → PROCESSING → PARTIALLY_SHIPPED →
    SHIPPED → IN_TRANSIT → DELIVERED → COMPLETED
    {DRAFT .. IN_TRANSIT} → CANCELLED
    {DRAFT .. IN_TRANSIT, CANCELLED} → REFUNDED

Line item status:
    pending → confirmed → allocated → picked → packed → shipped → delivered
    any non-terminal → cancelled | returned

Shipment status:
    preparing → dispatched → in_transit → out_for_delivery → delivered
    any non-terminal → failed | returned
    failed → dispatched | in_transit | out_for_delivery | delivered
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from fulfillment.domain import fulfillment
from fulfillment.monitoring import get_temperature_policy
from fulfillment.monitoring.evaluation import evaluate_reading
from fulfillment.monitoring.policy import (
    AlertSeverity,
    TemperatureUnit,
    TemperatureZone,
    parse_unit,
    parse_zone,
)
from fulfillment.order.events import (
    LineItemStatusChanged,
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderRefunded,
    OrderStatusChanged,
    ShipmentCreated,
    ShipmentDelivered,
    TemperatureAlertRaised,
    TemperatureReadingRecorded,
    TrackingEventRecorded,
)
from fulfillment.order.exceptions import (
    FulfillmentThresholdNotMet,
    InvalidTransition,
    NotFound,
    OverAllocation,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class LineItemStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ALLOCATED = "allocated"
    PICKED = "picked"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class ShipmentStatus(Enum):
    PREPARING = "preparing"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETURNED = "returned"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PaymentStatus(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    REFUNDED = "refunded"


# ---------------------------------------------------------------------------
# State machines
# ---------------------------------------------------------------------------
_ORDER_RANK = {
    OrderStatus.DRAFT: 0,
    OrderStatus.PENDING: 1,
    OrderStatus.CONFIRMED: 2,
    OrderStatus.PROCESSING: 3,
    OrderStatus.PARTIALLY_SHIPPED: 4,
    OrderStatus.SHIPPED: 5,
    OrderStatus.IN_TRANSIT: 6,
    OrderStatus.DELIVERED: 7,
    OrderStatus.COMPLETED: 8,
}

# Orders in these states are never recomputed from their line items
_FINAL_ORDER_STATUSES = {
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    OrderStatus.COMPLETED,
}

_NON_CANCELLABLE_STATUSES = _FINAL_ORDER_STATUSES | {OrderStatus.DELIVERED}

_PRE_DELIVERY_STATUSES = {
    OrderStatus.DRAFT,
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PARTIALLY_SHIPPED,
    OrderStatus.SHIPPED,
    OrderStatus.IN_TRANSIT,
}

_REFUNDABLE_STATUSES = _PRE_DELIVERY_STATUSES | {OrderStatus.CANCELLED}

_LINE_ITEM_FLOW = [
    LineItemStatus.PENDING,
    LineItemStatus.CONFIRMED,
    LineItemStatus.ALLOCATED,
    LineItemStatus.PICKED,
    LineItemStatus.PACKED,
    LineItemStatus.SHIPPED,
    LineItemStatus.DELIVERED,
]

_TERMINAL_LINE_ITEM_STATUSES = {
    LineItemStatus.DELIVERED,
    LineItemStatus.CANCELLED,
    LineItemStatus.RETURNED,
}

# Statuses counted as "shipped or later" when deriving the order status.
# A returned item only counts once some of it actually shipped.
_DISPATCHED_LINE_ITEM_STATUSES = {
    LineItemStatus.SHIPPED,
    LineItemStatus.DELIVERED,
}

# Order statuses that imply at least one unit left the supplier
_IN_FLIGHT_ORDER_STATUSES = {
    OrderStatus.PARTIALLY_SHIPPED,
    OrderStatus.SHIPPED,
    OrderStatus.IN_TRANSIT,
}

_SHIPMENT_FLOW = [
    ShipmentStatus.PREPARING,
    ShipmentStatus.DISPATCHED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
]

_TERMINAL_SHIPMENT_STATUSES = {ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED}


def _line_total(quantity, unit_price) -> float:
    return round(quantity * unit_price, 2)


def _is_withdrawn(item) -> bool:
    """Cancelled, or returned before any of it shipped."""
    status = LineItemStatus(item.status)
    if status == LineItemStatus.CANCELLED:
        return True
    return status == LineItemStatus.RETURNED and not item.shipped_quantity


def _is_dispatched(item) -> bool:
    status = LineItemStatus(item.status)
    if status in _DISPATCHED_LINE_ITEM_STATUSES:
        return True
    return status == LineItemStatus.RETURNED and (item.shipped_quantity or 0) > 0


def _parse_shipment_status(raw) -> ShipmentStatus | None:
    """Map a carrier-reported status onto a shipment status, if it names one."""
    if raw is None:
        return None
    normalized = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return ShipmentStatus(normalized)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class Address:
    """Pickup or delivery address of a shipment."""

    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    contact_name = String(max_length=200)
    contact_phone = String(max_length=50)


@fulfillment.value_object(part_of="Order")
class TemperatureRequirement:
    """Acceptable storage range declared for a temperature-controlled product."""

    min_value = Float(required=True)
    max_value = Float(required=True)
    unit = String(max_length=1, choices=TemperatureUnit, default=TemperatureUnit.CELSIUS.value)

    @invariant.post
    def range_must_be_ordered(self):
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise ValidationError({"temperature_requirement": ["Minimum must not exceed maximum"]})


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class LineItem:
    """One product line of the order with its per-quantity fulfillment state."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    sku = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit = String(max_length=50, default="unit")
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(default=0.0)
    temperature_requirement = ValueObject(TemperatureRequirement)
    batch_number = String(max_length=100)
    production_date = Date()
    expiry_date = Date()
    warehouse_location = String(max_length=100)
    allocated_quantity = Integer(default=0, min_value=0)
    shipped_quantity = Integer(default=0, min_value=0)
    delivered_quantity = Integer(default=0, min_value=0)
    returned_quantity = Integer(default=0, min_value=0)
    status = String(
        max_length=50,
        choices=LineItemStatus,
        default=LineItemStatus.PENDING.value,
    )
    position = Integer(default=0)

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.shipped_quantity


@fulfillment.entity(part_of="Order")
class StatusChange:
    """Timeline entry: one status step of one line item."""

    line_item_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    changed_at = DateTime(required=True)
    actor = String(max_length=255)
    notes = String(max_length=1000)
    sequence = Integer(default=0)


@fulfillment.entity(part_of="Order")
class Shipment:
    """A physical consignment carrying part of the order."""

    shipment_number = String(required=True, max_length=50)
    carrier = String(required=True, max_length=100)
    tracking_number = String(max_length=255)
    service_level = String(max_length=50)
    pickup_address = ValueObject(Address)
    delivery_address = ValueObject(Address)
    estimated_pickup_at = DateTime()
    actual_pickup_at = DateTime()
    estimated_delivery_at = DateTime()
    actual_delivery_at = DateTime()
    status = String(
        max_length=50,
        choices=ShipmentStatus,
        default=ShipmentStatus.PREPARING.value,
    )
    created_by = String(max_length=255)
    notes = String(max_length=1000)
    created_at = DateTime()
    sequence = Integer(default=0)


@fulfillment.entity(part_of="Order")
class ShipmentLine:
    """Quantity of one line item carried by one shipment."""

    shipment_id = Identifier(required=True)
    line_item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    position = Integer(default=0)


@fulfillment.entity(part_of="Order")
class ShipmentTrackingEvent:
    """A carrier-reported tracking event. Append-only."""

    shipment_id = Identifier(required=True)
    status = String(required=True, max_length=100)
    location = String(max_length=200)
    description = String(max_length=500)
    event_code = String(max_length=50)
    occurred_at = DateTime(required=True)
    recorded_at = DateTime()
    sequence = Integer(default=0)


@fulfillment.entity(part_of="Order")
class TemperatureReading:
    """A temperature measured during transport. Never edited."""

    shipment_id = Identifier(required=True)
    value = Float(required=True)
    unit = String(required=True, max_length=1, choices=TemperatureUnit)
    zone = String(required=True, max_length=20, choices=TemperatureZone)
    recorded_at = DateTime(required=True)
    device_id = String(max_length=100)
    location = String(max_length=200)
    sequence = Integer(default=0)


@fulfillment.entity(part_of="Order")
class TemperatureAlert:
    """A threshold violation derived from a reading. Never retracted."""

    shipment_id = Identifier(required=True)
    reading_id = Identifier(required=True)
    zone = String(required=True, max_length=20, choices=TemperatureZone)
    value = Float(required=True)
    unit = String(required=True, max_length=1, choices=TemperatureUnit)
    severity = String(required=True, max_length=10, choices=AlertSeverity)
    message = String(required=True, max_length=500)
    raised_at = DateTime(required=True)
    sequence = Integer(default=0)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    order_number = String(required=True, max_length=30, unique=True)
    buyer_id = Identifier(required=True)
    buyer_name = String(max_length=255)
    supplier_id = Identifier(required=True)
    supplier_name = String(max_length=255)
    status = String(
        max_length=50,
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    priority = String(max_length=10, choices=Priority, default=Priority.MEDIUM.value)
    currency = String(max_length=3, default="USD")
    payment_terms = String(max_length=100)
    payment_status = String(
        max_length=20,
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    allow_partial_fulfillment = Boolean(default=False)
    minimum_fulfillment_percentage = Integer(min_value=0, max_value=100)

    line_items = HasMany(LineItem)
    status_changes = HasMany(StatusChange)
    shipments = HasMany(Shipment)
    shipment_lines = HasMany(ShipmentLine)
    tracking_events = HasMany(ShipmentTrackingEvent)
    temperature_readings = HasMany(TemperatureReading)
    temperature_alerts = HasMany(TemperatureAlert)

    # Money: tax/shipping/discount fixed at creation, the rest derived
    subtotal = Float(default=0.0)
    tax = Float(default=0.0, min_value=0.0)
    shipping = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    total = Float(default=0.0)
    requires_temperature_control = Boolean(default=False)

    buyer_notes = Text()
    supplier_notes = Text()
    cancellation_reason = String(max_length=500)
    required_by = Date()
    ordered_at = DateTime()
    confirmed_at = DateTime()
    delivered_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def line_item_quantities_within_declared(self):
        for item in self.line_items:
            for field_name in ("allocated_quantity", "shipped_quantity", "delivered_quantity", "returned_quantity"):
                if (getattr(item, field_name) or 0) > item.quantity:
                    raise ValidationError(
                        {"line_items": [f"{field_name} of line item {item.id} exceeds declared quantity"]}
                    )
            if (item.delivered_quantity or 0) > (item.shipped_quantity or 0):
                raise ValidationError({"line_items": [f"Line item {item.id} has more delivered than shipped"]})

    @invariant.post
    def shipments_within_declared_quantity(self):
        carried = {}
        for line in self.shipment_lines:
            key = str(line.line_item_id)
            carried[key] = carried.get(key, 0) + line.quantity
        for item in self.line_items:
            if carried.get(str(item.id), 0) > item.quantity:
                raise ValidationError({"shipments": [f"Shipments carry more than declared for line item {item.id}"]})

    @invariant.post
    def totals_match_line_items(self):
        if not self.line_items:
            return
        for item in self.line_items:
            if item.total_price != _line_total(item.quantity, item.unit_price):
                raise ValidationError({"line_items": [f"Line total of {item.id} is out of date"]})
        if self.subtotal != self._derived_subtotal() or self.total != self._derived_total():
            raise ValidationError({"total": ["Order totals do not match line items"]})

    @invariant.post
    def status_matches_line_items(self):
        if not self.line_items:
            return
        status = OrderStatus(self.status)
        if status == OrderStatus.DELIVERED:
            active = [item for item in self.line_items if not _is_withdrawn(item)]
            if not active or any(LineItemStatus(item.status) != LineItemStatus.DELIVERED for item in active):
                raise ValidationError({"status": ["Order cannot be delivered while line items are undelivered"]})
        if status in _IN_FLIGHT_ORDER_STATUSES and not any(
            (item.shipped_quantity or 0) > 0 for item in self.line_items
        ):
            raise ValidationError({"status": [f"Order cannot be {status.value} before anything has shipped"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        buyer_id: str,
        supplier_id: str,
        items_data: list[dict],
        actor: str | None = None,
        as_draft: bool = False,
        **attributes,
    ):
        """Create an order with its fixed list of line items.

        ``attributes`` carries the optional order fields (names, priority,
        currency, payment terms, tax/shipping/discount, partial-fulfillment
        policy, notes, ``required_by``).
        """
        if not items_data:
            raise ValidationError({"line_items": ["An order must contain at least one line item"]})

        now = datetime.now(UTC)
        initial_status = OrderStatus.DRAFT if as_draft else OrderStatus.PENDING
        order = cls(
            order_number=f"ORD-{now:%Y%m%d}-{uuid4().hex[:6].upper()}",
            buyer_id=buyer_id,
            supplier_id=supplier_id,
            status=initial_status.value,
            ordered_at=now,
            created_at=now,
            updated_at=now,
            **attributes,
        )

        with atomic_change(order):
            for position, item_data in enumerate(items_data):
                item = LineItem(**item_data, status=LineItemStatus.PENDING.value, position=position)
                item.total_price = _line_total(item.quantity, item.unit_price)
                order.add_line_items(item)
                order._append_status_change(item, LineItemStatus.PENDING, actor, "Order created", now)
            order._recalculate_totals()

        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                order_number=order.order_number,
                buyer_id=str(buyer_id),
                supplier_id=str(supplier_id),
                line_items=json.dumps(
                    [
                        {
                            "line_item_id": str(item.id),
                            "product_id": str(item.product_id),
                            "quantity": item.quantity,
                        }
                        for item in order.line_items_in_order()
                    ]
                ),
                line_item_count=len(items_data),
                total=order.total,
                currency=order.currency,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    def _derived_subtotal(self) -> float:
        return round(sum(_line_total(item.quantity, item.unit_price) for item in self.line_items), 2)

    def _derived_total(self) -> float:
        return round(self._derived_subtotal() + (self.tax or 0.0) + (self.shipping or 0.0) - (self.discount or 0.0), 2)

    def _recalculate_totals(self):
        """Recalculate line totals, subtotal, total and the cold-chain flag."""
        for item in self.line_items:
            line_total = _line_total(item.quantity, item.unit_price)
            if item.total_price != line_total:
                item.total_price = line_total
        self.subtotal = self._derived_subtotal()
        self.total = self._derived_total()
        self.requires_temperature_control = any(item.temperature_requirement for item in self.line_items)

    @property
    def revision(self) -> int:
        """Persisted version of the order, 0 until it is first saved."""
        return max(self._version, 0)

    @property
    def fulfillment_percentage(self) -> int:
        """Delivered share of the declared quantity, as a whole percentage (half-up)."""
        declared = sum(item.quantity for item in self.line_items)
        if declared == 0:
            return 0
        delivered = sum(item.delivered_quantity or 0 for item in self.line_items)
        return (200 * delivered + declared) // (2 * declared)

    def _derive_status(self) -> OrderStatus | None:
        active = [item for item in self.line_items if not _is_withdrawn(item)]
        if not active:
            return None
        statuses = [LineItemStatus(item.status) for item in active]
        if all(status == LineItemStatus.DELIVERED for status in statuses):
            return OrderStatus.DELIVERED
        if any(_is_dispatched(item) for item in active):
            return OrderStatus.PARTIALLY_SHIPPED
        confirmed_rank = _LINE_ITEM_FLOW.index(LineItemStatus.CONFIRMED)
        if all(_LINE_ITEM_FLOW.index(status) >= confirmed_rank for status in statuses):
            return OrderStatus.CONFIRMED
        return None

    def _recompute_status(self, now: datetime) -> None:
        """Move the order to the status its line items imply, never backwards."""
        current = OrderStatus(self.status)
        if current in _FINAL_ORDER_STATUSES:
            return
        candidate = self._derive_status()
        if candidate is None or _ORDER_RANK[candidate] <= _ORDER_RANK[current]:
            return

        self.status = candidate.value
        if candidate == OrderStatus.CONFIRMED and self.confirmed_at is None:
            self.confirmed_at = now
        if candidate == OrderStatus.DELIVERED:
            self.delivered_at = now
        self._raise_status_changed(current, candidate, now)

    def _raise_status_changed(self, previous: OrderStatus, new: OrderStatus, now: datetime) -> None:
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=previous.value,
                new_status=new.value,
                fulfillment_percentage=self.fulfillment_percentage,
                changed_at=now,
            )
        )

    def _touch(self, now: datetime) -> None:
        self._recalculate_totals()
        self._recompute_status(now)
        self.updated_at = now

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def get_line_item(self, line_item_id) -> LineItem:
        item = next((i for i in self.line_items if str(i.id) == str(line_item_id)), None)
        if item is None:
            raise NotFound({"line_item_id": [f"Line item {line_item_id} not found in order {self.order_number}"]})
        return item

    def get_shipment(self, shipment_id) -> Shipment:
        shipment = next((s for s in self.shipments if str(s.id) == str(shipment_id)), None)
        if shipment is None:
            raise NotFound({"shipment_id": [f"Shipment {shipment_id} not found in order {self.order_number}"]})
        return shipment

    def line_items_in_order(self) -> list[LineItem]:
        return sorted(self.line_items, key=lambda i: i.position)

    def timeline_for(self, line_item_id) -> list[StatusChange]:
        self.get_line_item(line_item_id)
        return sorted(
            (c for c in self.status_changes if str(c.line_item_id) == str(line_item_id)),
            key=lambda c: c.sequence,
        )

    def shipments_in_order(self) -> list[Shipment]:
        return sorted(self.shipments, key=lambda s: s.sequence)

    def lines_for(self, shipment_id) -> list[ShipmentLine]:
        self.get_shipment(shipment_id)
        return sorted(
            (line for line in self.shipment_lines if str(line.shipment_id) == str(shipment_id)),
            key=lambda line: line.position,
        )

    def tracking_events_for(self, shipment_id) -> list[ShipmentTrackingEvent]:
        self.get_shipment(shipment_id)
        return sorted(
            (e for e in self.tracking_events if str(e.shipment_id) == str(shipment_id)),
            key=lambda e: e.sequence,
        )

    def readings_for(self, shipment_id) -> list[TemperatureReading]:
        self.get_shipment(shipment_id)
        return sorted(
            (r for r in self.temperature_readings if str(r.shipment_id) == str(shipment_id)),
            key=lambda r: r.sequence,
        )

    def alerts_for(self, shipment_id) -> list[TemperatureAlert]:
        self.get_shipment(shipment_id)
        return sorted(
            (a for a in self.temperature_alerts if str(a.shipment_id) == str(shipment_id)),
            key=lambda a: a.sequence,
        )

    # -------------------------------------------------------------------
    # Line item tracking
    # -------------------------------------------------------------------
    def _append_status_change(self, item, status: LineItemStatus, actor, notes, now) -> None:
        self.add_status_changes(
            StatusChange(
                line_item_id=str(item.id),
                status=status.value,
                changed_at=now,
                actor=actor,
                notes=notes,
                sequence=len(self.status_changes),
            )
        )

    def _step_line_item(self, item, target: LineItemStatus, actor, notes, now) -> None:
        """Record one status step of a line item, without touching quantities."""
        previous = item.status
        item.status = target.value
        self._append_status_change(item, target, actor, notes, now)
        self.raise_(
            LineItemStatusChanged(
                order_id=str(self.id),
                line_item_id=str(item.id),
                previous_status=previous,
                new_status=target.value,
                actor=actor,
                notes=notes,
                changed_at=now,
            )
        )

    def _assert_line_item_can_transition(self, item, target: LineItemStatus) -> None:
        current = LineItemStatus(item.status)
        if current in _TERMINAL_LINE_ITEM_STATUSES:
            raise InvalidTransition(
                {"status": [f"Line item {item.id} is {current.value} and cannot move to {target.value}"]}
            )
        if target in (LineItemStatus.CANCELLED, LineItemStatus.RETURNED):
            return
        current_rank = _LINE_ITEM_FLOW.index(current)
        if _LINE_ITEM_FLOW.index(target) != current_rank + 1:
            raise InvalidTransition({"status": [f"Cannot transition line item from {current.value} to {target.value}"]})
        if target == LineItemStatus.DELIVERED and item.shipped_quantity < item.quantity:
            raise InvalidTransition(
                {
                    "status": [
                        f"Line item {item.id} still has {item.quantity - item.shipped_quantity} "
                        "unit(s) undispatched and cannot be delivered"
                    ]
                }
            )

    def update_line_item_status(self, line_item_id, new_status: str, actor: str | None = None, notes=None):
        """Advance one line item by one step, moving its whole quantity along.

        ``allocated``, ``shipped`` and ``delivered`` set the matching quantity
        to the declared quantity; ``returned`` marks the delivered quantity as
        returned. The order status is recomputed afterwards.
        """
        item = self.get_line_item(line_item_id)
        try:
            target = LineItemStatus(new_status)
        except ValueError:
            raise InvalidTransition({"status": [f"Unknown line item status '{new_status}'"]}) from None
        self._assert_line_item_can_transition(item, target)

        now = datetime.now(UTC)
        with atomic_change(self):
            if target == LineItemStatus.ALLOCATED:
                item.allocated_quantity = item.quantity
            elif target == LineItemStatus.SHIPPED:
                item.shipped_quantity = item.quantity
            elif target == LineItemStatus.DELIVERED:
                item.delivered_quantity = item.quantity
            elif target == LineItemStatus.RETURNED:
                item.returned_quantity = max(item.returned_quantity, item.delivered_quantity)
            self._step_line_item(item, target, actor, notes, now)
            self._touch(now)
        return item

    def confirm(self, actor: str | None = None) -> None:
        """Confirm every pending line item, which confirms the order."""
        current = OrderStatus(self.status)
        if current not in _PRE_DELIVERY_STATUSES:
            raise InvalidTransition({"status": [f"Cannot confirm an order in {current.value} state"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            for item in self.line_items_in_order():
                if LineItemStatus(item.status) == LineItemStatus.PENDING:
                    self._step_line_item(item, LineItemStatus.CONFIRMED, actor, "Order confirmed", now)
            self._touch(now)

    # -------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------
    def _assert_shippable(self):
        current = OrderStatus(self.status)
        if current in _NON_CANCELLABLE_STATUSES:
            raise InvalidTransition({"status": [f"Cannot ship against an order in {current.value} state"]})

    def create_shipment(
        self,
        carrier: str,
        lines: list[dict],
        tracking_number: str | None = None,
        pickup_address: dict | None = None,
        delivery_address: dict | None = None,
        actor: str | None = None,
        service_level: str | None = None,
        estimated_pickup_at: datetime | None = None,
        estimated_delivery_at: datetime | None = None,
        notes: str | None = None,
    ) -> Shipment:
        """Dispatch part of the remaining quantities as one shipment.

        ``lines`` is a list of ``{"line_item_id", "quantity"}``. Duplicated
        line items are summed. Every line is validated before anything
        changes; requests are never clamped to what remains.
        """
        self._assert_shippable()
        if not lines:
            raise OverAllocation({"lines": ["A shipment must carry at least one line item"]})

        requested = {}
        for line in lines:
            key = str(line.get("line_item_id"))
            quantity = line.get("quantity")
            if isinstance(quantity, bool) or not isinstance(quantity, int):
                raise ValidationError({"quantity": [f"Quantity for line item {key} must be a whole number"]})
            if quantity <= 0:
                raise OverAllocation({"quantity": [f"Quantity for line item {key} must be positive"]})
            requested[key] = requested.get(key, 0) + quantity

        items = {}
        for line_item_id, quantity in requested.items():
            item = self.get_line_item(line_item_id)
            status = LineItemStatus(item.status)
            if status in _TERMINAL_LINE_ITEM_STATUSES:
                raise InvalidTransition({"status": [f"Line item {item.id} is {status.value} and cannot be shipped"]})
            if item.shipped_quantity + quantity > item.quantity:
                raise OverAllocation(
                    {
                        "quantity": [
                            f"Cannot ship {quantity} of line item {item.id}: "
                            f"{item.shipped_quantity} of {item.quantity} already shipped"
                        ]
                    }
                )
            items[line_item_id] = item

        now = datetime.now(UTC)
        shipment = Shipment(
            shipment_number=f"SHP-{int(now.timestamp() * 1000)}-{uuid4().hex[:5].upper()}",
            carrier=carrier,
            tracking_number=tracking_number,
            service_level=service_level,
            pickup_address=Address(**pickup_address) if pickup_address else None,
            delivery_address=Address(**delivery_address) if delivery_address else None,
            estimated_pickup_at=estimated_pickup_at,
            estimated_delivery_at=estimated_delivery_at,
            status=ShipmentStatus.PREPARING.value,
            created_by=actor,
            notes=notes,
            created_at=now,
            sequence=len(self.shipments),
        )

        shipped_status_rank = _LINE_ITEM_FLOW.index(LineItemStatus.SHIPPED)
        with atomic_change(self):
            self.add_shipments(shipment)
            for position, (line_item_id, quantity) in enumerate(requested.items()):
                item = items[line_item_id]
                self.add_shipment_lines(
                    ShipmentLine(
                        shipment_id=str(shipment.id),
                        line_item_id=line_item_id,
                        quantity=quantity,
                        position=position,
                    )
                )
                item.shipped_quantity += quantity
                item.allocated_quantity = max(item.allocated_quantity, item.shipped_quantity)

                # One timeline entry per intermediate status up to shipped
                rank = _LINE_ITEM_FLOW.index(LineItemStatus(item.status))
                for step in _LINE_ITEM_FLOW[rank + 1 : shipped_status_rank + 1]:
                    self._step_line_item(item, step, actor, f"Shipment {shipment.shipment_number}", now)
            self._touch(now)

        self.raise_(
            ShipmentCreated(
                order_id=str(self.id),
                order_number=self.order_number,
                shipment_id=str(shipment.id),
                shipment_number=shipment.shipment_number,
                carrier=carrier,
                tracking_number=tracking_number,
                lines=json.dumps([{"line_item_id": k, "quantity": v} for k, v in requested.items()]),
                estimated_delivery_at=estimated_delivery_at,
                created_at=now,
            )
        )
        return shipment

    def _assert_shipment_can_transition(self, shipment, target: ShipmentStatus) -> None:
        current = ShipmentStatus(shipment.status)
        if current in _TERMINAL_SHIPMENT_STATUSES:
            raise InvalidTransition(
                {"status": [f"Shipment {shipment.shipment_number} is {current.value} and cannot move to {target.value}"]}
            )
        if target in (ShipmentStatus.FAILED, ShipmentStatus.RETURNED):
            return
        if current == ShipmentStatus.FAILED:
            allowed = _SHIPMENT_FLOW.index(target) >= _SHIPMENT_FLOW.index(ShipmentStatus.DISPATCHED)
        else:
            allowed = _SHIPMENT_FLOW.index(target) > _SHIPMENT_FLOW.index(current)
        if not allowed:
            raise InvalidTransition({"status": [f"Cannot transition shipment from {current.value} to {target.value}"]})

    def record_tracking_event(
        self,
        shipment_id,
        status: str,
        location: str | None = None,
        description: str | None = None,
        event_code: str | None = None,
        occurred_at: datetime | None = None,
    ) -> Shipment:
        """Append a carrier tracking event and apply the status it reports.

        Statuses that do not name a shipment status are recorded as-is. A
        repeat of the current status changes nothing but the event log.
        """
        shipment = self.get_shipment(shipment_id)
        target = _parse_shipment_status(status)
        current = ShipmentStatus(shipment.status)
        if target is not None and target != current:
            self._assert_shipment_can_transition(shipment, target)
        else:
            target = None

        now = datetime.now(UTC)
        occurred_at = occurred_at or now
        delivered_lines = []
        with atomic_change(self):
            self.add_tracking_events(
                ShipmentTrackingEvent(
                    shipment_id=str(shipment.id),
                    status=status,
                    location=location,
                    description=description,
                    event_code=event_code,
                    occurred_at=occurred_at,
                    recorded_at=now,
                    sequence=len(self.tracking_events),
                )
            )
            if target is not None:
                shipment.status = target.value
                if target in _SHIPMENT_FLOW[1:] and shipment.actual_pickup_at is None:
                    shipment.actual_pickup_at = occurred_at
                if target == ShipmentStatus.DELIVERED:
                    shipment.actual_delivery_at = occurred_at
                    delivered_lines = self._apply_delivery(shipment, now)
                elif target == ShipmentStatus.RETURNED:
                    self._apply_return(shipment)
            self._touch(now)

        self.raise_(
            TrackingEventRecorded(
                order_id=str(self.id),
                shipment_id=str(shipment.id),
                status=status,
                shipment_status=shipment.status,
                location=location,
                description=description,
                occurred_at=occurred_at,
            )
        )
        if target == ShipmentStatus.DELIVERED:
            self.raise_(
                ShipmentDelivered(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    shipment_id=str(shipment.id),
                    shipment_number=shipment.shipment_number,
                    tracking_number=shipment.tracking_number,
                    lines=json.dumps(delivered_lines),
                    delivered_at=occurred_at,
                )
            )
        return shipment

    def _apply_delivery(self, shipment, now) -> list[dict]:
        delivered = []
        for line in self.lines_for(shipment.id):
            item = self.get_line_item(line.line_item_id)
            quantity = min(line.quantity, item.shipped_quantity - item.delivered_quantity)
            item.delivered_quantity += quantity
            delivered.append({"line_item_id": str(item.id), "quantity": quantity})
            if item.delivered_quantity == item.quantity and LineItemStatus(item.status) == LineItemStatus.SHIPPED:
                self._step_line_item(
                    item, LineItemStatus.DELIVERED, None, f"Shipment {shipment.shipment_number} delivered", now
                )
        return delivered

    def _apply_return(self, shipment) -> None:
        for line in self.lines_for(shipment.id):
            item = self.get_line_item(line.line_item_id)
            item.returned_quantity = min(item.returned_quantity + line.quantity, item.shipped_quantity)

    # -------------------------------------------------------------------
    # Cold chain
    # -------------------------------------------------------------------
    def record_temperature_reading(
        self,
        shipment_id,
        value: float,
        unit: str,
        zone: str,
        recorded_at: datetime | None = None,
        device_id: str | None = None,
        location: str | None = None,
        policy=None,
    ) -> TemperatureAlert | None:
        """Append a reading and, when it violates its zone threshold, an alert.

        Returns the alert, or ``None`` for an in-range reading. Readings on
        delivered or returned shipments are still accepted.
        """
        shipment = self.get_shipment(shipment_id)
        unit_value = parse_unit(unit).value
        zone_value = parse_zone(zone).value
        assessment = evaluate_reading(value, unit_value, zone_value, policy or get_temperature_policy())

        now = datetime.now(UTC)
        recorded_at = recorded_at or now
        reading = TemperatureReading(
            shipment_id=str(shipment.id),
            value=float(value),
            unit=unit_value,
            zone=zone_value,
            recorded_at=recorded_at,
            device_id=device_id,
            location=location,
            sequence=len(self.temperature_readings),
        )
        alert = None
        with atomic_change(self):
            self.add_temperature_readings(reading)
            if assessment is not None:
                alert = TemperatureAlert(
                    shipment_id=str(shipment.id),
                    reading_id=str(reading.id),
                    zone=zone_value,
                    value=float(value),
                    unit=unit_value,
                    severity=assessment.severity,
                    message=assessment.message,
                    raised_at=recorded_at,
                    sequence=len(self.temperature_alerts),
                )
                self.add_temperature_alerts(alert)
            self.updated_at = now

        self.raise_(
            TemperatureReadingRecorded(
                order_id=str(self.id),
                shipment_id=str(shipment.id),
                reading_id=str(reading.id),
                value=float(value),
                unit=unit_value,
                zone=zone_value,
                recorded_at=recorded_at,
            )
        )
        if alert is not None:
            self.raise_(
                TemperatureAlertRaised(
                    order_id=str(self.id),
                    shipment_id=str(shipment.id),
                    alert_id=str(alert.id),
                    reading_id=str(reading.id),
                    zone=zone_value,
                    value=float(value),
                    unit=unit_value,
                    severity=alert.severity,
                    message=alert.message,
                    raised_at=recorded_at,
                )
            )
        return alert

    # -------------------------------------------------------------------
    # Order-level transitions
    # -------------------------------------------------------------------
    def cancel(self, reason: str, actor: str | None = None) -> list[str]:
        """Cancel the order and every line item that has not shipped.

        Shipped quantities stay as they are and can still be delivered or
        returned. Returns the ids of the cancelled line items.
        """
        current = OrderStatus(self.status)
        if current in _NON_CANCELLABLE_STATUSES:
            raise InvalidTransition({"status": [f"Cannot cancel an order in {current.value} state"]})

        now = datetime.now(UTC)
        shipped_rank = _LINE_ITEM_FLOW.index(LineItemStatus.SHIPPED)
        cancelled_ids = []
        with atomic_change(self):
            for item in self.line_items_in_order():
                status = LineItemStatus(item.status)
                if status in _TERMINAL_LINE_ITEM_STATUSES:
                    continue
                if _LINE_ITEM_FLOW.index(status) < shipped_rank and item.shipped_quantity == 0:
                    self._step_line_item(item, LineItemStatus.CANCELLED, actor, reason, now)
                    cancelled_ids.append(str(item.id))
            self.status = OrderStatus.CANCELLED.value
            self.cancellation_reason = reason
            self.cancelled_at = now
            self._recalculate_totals()
            self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=actor,
                cancelled_line_item_ids=json.dumps(cancelled_ids),
                cancelled_at=now,
            )
        )
        self._raise_status_changed(current, OrderStatus.CANCELLED, now)
        return cancelled_ids

    def complete(self, actor: str | None = None) -> None:
        """Finalize the order, subject to the partial-fulfillment policy.

        At least one unit must have shipped, even when partial fulfillment
        is allowed without a minimum.
        """
        current = OrderStatus(self.status)
        if current in _FINAL_ORDER_STATUSES:
            raise InvalidTransition({"status": [f"Cannot complete an order in {current.value} state"]})
        if not any((item.shipped_quantity or 0) > 0 for item in self.line_items):
            raise FulfillmentThresholdNotMet(
                {"fulfillment_percentage": [f"Nothing has shipped for order {self.order_number}"]}
            )

        percentage = self.fulfillment_percentage
        if self.allow_partial_fulfillment:
            required = self.minimum_fulfillment_percentage or 0
        else:
            required = 100
        if percentage < required:
            raise FulfillmentThresholdNotMet(
                {"fulfillment_percentage": [f"Order is {percentage}% fulfilled, {required}% is required"]}
            )

        now = datetime.now(UTC)
        self.status = OrderStatus.COMPLETED.value
        self.completed_at = now
        self.updated_at = now
        self.raise_(
            OrderCompleted(
                order_id=str(self.id),
                fulfillment_percentage=percentage,
                completed_by=actor,
                completed_at=now,
            )
        )
        self._raise_status_changed(current, OrderStatus.COMPLETED, now)

    def refund(self, actor: str | None = None, reason: str | None = None) -> None:
        """Refund a pre-delivery or cancelled order."""
        current = OrderStatus(self.status)
        if current not in _REFUNDABLE_STATUSES:
            raise InvalidTransition({"status": [f"Cannot refund an order in {current.value} state"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.REFUNDED.value
            self.payment_status = PaymentStatus.REFUNDED.value
            self.updated_at = now
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                refunded_by=actor,
                reason=reason,
                refunded_at=now,
            )
        )
        self._raise_status_changed(current, OrderStatus.REFUNDED, now)
