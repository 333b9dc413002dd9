"""Order coordinator — the async entry point into the fulfillment core.

Every operation is a coroutine. Mutations of one order are serialized behind a
per-order ``asyncio.Lock``; different orders proceed independently. Each
mutation runs as one Protean command (one unit of work), and
``ConcurrentModification`` is retried with exponential backoff unless the
caller pinned the revision it expects.
"""

import asyncio
import json
import weakref
from datetime import datetime

import structlog
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.utils.globals import current_domain

from fulfillment.order.cancellation import CancelOrder
from fulfillment.order.cold_chain import RecordTemperatureReading
from fulfillment.order.completion import CompleteOrder, RefundOrder
from fulfillment.order.confirmation import ConfirmOrder
from fulfillment.order.creation import CreateOrder
from fulfillment.order.exceptions import ConcurrentModification, NotFound
from fulfillment.order.line_items import UpdateLineItemStatus
from fulfillment.order.order import Order
from fulfillment.order.repository import conflict_from
from fulfillment.order.shipping import CreateShipment
from fulfillment.order.tracking import RecordTrackingEvent
from fulfillment.projections import shipment_tracking
from fulfillment.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.05


class OrderCoordinator:
    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, base_delay: float = DEFAULT_BASE_DELAY):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        # Locks disappear once no coroutine holds a reference to them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, order_id: str) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        return lock

    async def _mutate(self, order_id: str, command_factory, expected_revision=None, timeout=None):
        """Run one command against ``order_id`` under its lock, retrying conflicts.

        ``timeout`` bounds the wait for the lock. ``asyncio.TimeoutError`` is
        raised when it expires, before anything is changed.
        """
        order_id = str(order_id)
        lock = self._lock_for(order_id)
        if timeout is None:
            await lock.acquire()
        else:
            await asyncio.wait_for(lock.acquire(), timeout)

        add_context(order_id=order_id)
        try:
            attempt = 1
            while True:
                try:
                    return current_domain.process(command_factory(), asynchronous=False)
                except (ConcurrentModification, ExpectedVersionError) as exc:
                    if expected_revision is not None or attempt >= self.max_attempts:
                        if isinstance(exc, ExpectedVersionError):
                            raise conflict_from(order_id, exc) from exc
                        raise
                    delay = self.base_delay * 2 ** (attempt - 1)
                    logger.warning("order_conflict_retry", attempt=attempt, delay=delay)
                    await asyncio.sleep(delay)
                    attempt += 1
        finally:
            clear_context("order_id")
            lock.release()

    async def _order_id_for_shipment(self, shipment_id: str, order_id: str | None) -> str:
        if order_id:
            return str(order_id)
        order = current_domain.repository_for(Order).find_by_shipment_id(shipment_id)
        if order is None:
            raise NotFound({"shipment_id": [f"Shipment {shipment_id} not found"]})
        return str(order.id)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    async def create_order(self, buyer_id: str, supplier_id: str, items: list[dict], **options) -> Order:
        """Create an order. ``options`` are the optional ``CreateOrder`` fields."""
        order_id = current_domain.process(
            CreateOrder(
                buyer_id=buyer_id,
                supplier_id=supplier_id,
                items=json.dumps(items, default=str),
                **options,
            ),
            asynchronous=False,
        )
        return await self.get_order(order_id)

    async def get_order(self, order_id: str) -> Order:
        return current_domain.repository_for(Order).get_for_update(str(order_id))

    async def get_order_by_number(self, order_number: str) -> Order:
        order = current_domain.repository_for(Order).find_by_order_number(order_number)
        if order is None:
            raise NotFound({"order_number": [f"Order {order_number} not found"]})
        return order

    async def list_orders(
        self,
        buyer_id: str | None = None,
        supplier_id: str | None = None,
        status: str | None = None,
    ) -> list[Order]:
        """List orders by buyer, supplier or status. Filters combine."""
        repo = current_domain.repository_for(Order)
        if buyer_id:
            orders = repo.find_by_buyer(buyer_id)
        elif supplier_id:
            orders = repo.find_by_supplier(supplier_id)
        elif status:
            orders = repo.find_by_status(status)
        else:
            raise ValidationError({"filter": ["Provide buyer_id, supplier_id or status"]})

        if supplier_id:
            orders = [o for o in orders if str(o.supplier_id) == str(supplier_id)]
        if status:
            orders = [o for o in orders if o.status == status]
        return orders

    async def confirm_order(self, order_id, actor=None, expected_revision=None, timeout=None) -> Order:
        await self._mutate(
            order_id,
            lambda: ConfirmOrder(order_id=order_id, actor=actor, expected_revision=expected_revision),
            expected_revision,
            timeout,
        )
        return await self.get_order(order_id)

    async def cancel_order(self, order_id, reason: str, actor=None, expected_revision=None, timeout=None) -> Order:
        await self._mutate(
            order_id,
            lambda: CancelOrder(order_id=order_id, reason=reason, actor=actor, expected_revision=expected_revision),
            expected_revision,
            timeout,
        )
        return await self.get_order(order_id)

    async def complete_order(self, order_id, actor=None, expected_revision=None, timeout=None) -> Order:
        await self._mutate(
            order_id,
            lambda: CompleteOrder(order_id=order_id, actor=actor, expected_revision=expected_revision),
            expected_revision,
            timeout,
        )
        return await self.get_order(order_id)

    async def refund_order(self, order_id, actor=None, reason=None, expected_revision=None, timeout=None) -> Order:
        await self._mutate(
            order_id,
            lambda: RefundOrder(order_id=order_id, actor=actor, reason=reason, expected_revision=expected_revision),
            expected_revision,
            timeout,
        )
        return await self.get_order(order_id)

    # -------------------------------------------------------------------
    # Line items
    # -------------------------------------------------------------------
    async def update_line_item_status(
        self,
        order_id,
        line_item_id,
        status: str,
        actor=None,
        notes=None,
        expected_revision=None,
        timeout=None,
    ):
        await self._mutate(
            order_id,
            lambda: UpdateLineItemStatus(
                order_id=order_id,
                line_item_id=line_item_id,
                status=status,
                actor=actor,
                notes=notes,
                expected_revision=expected_revision,
            ),
            expected_revision,
            timeout,
        )
        order = await self.get_order(order_id)
        return order.get_line_item(line_item_id)

    # -------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------
    async def create_shipment(
        self,
        order_id,
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
        expected_revision: int | None = None,
        timeout: float | None = None,
    ):
        shipment_id = await self._mutate(
            order_id,
            lambda: CreateShipment(
                order_id=order_id,
                carrier=carrier,
                lines=json.dumps(lines),
                tracking_number=tracking_number,
                pickup_address=json.dumps(pickup_address) if pickup_address else None,
                delivery_address=json.dumps(delivery_address) if delivery_address else None,
                actor=actor,
                service_level=service_level,
                estimated_pickup_at=estimated_pickup_at,
                estimated_delivery_at=estimated_delivery_at,
                notes=notes,
                expected_revision=expected_revision,
            ),
            expected_revision,
            timeout,
        )
        order = await self.get_order(order_id)
        return order.get_shipment(shipment_id)

    async def list_shipments(self, order_id) -> list:
        order = await self.get_order(order_id)
        return order.shipments_in_order()

    async def record_tracking_event(
        self,
        shipment_id,
        status: str,
        order_id=None,
        location: str | None = None,
        description: str | None = None,
        event_code: str | None = None,
        occurred_at: datetime | None = None,
        expected_revision: int | None = None,
        timeout: float | None = None,
    ):
        order_id = await self._order_id_for_shipment(shipment_id, order_id)
        await self._mutate(
            order_id,
            lambda: RecordTrackingEvent(
                order_id=order_id,
                shipment_id=shipment_id,
                status=status,
                location=location,
                description=description,
                event_code=event_code,
                occurred_at=occurred_at,
                expected_revision=expected_revision,
            ),
            expected_revision,
            timeout,
        )
        order = await self.get_order(order_id)
        return order.get_shipment(shipment_id)

    async def find_shipment_by_tracking_number(self, tracking_number: str):
        view = shipment_tracking.find_by_tracking_number(tracking_number)
        if view is None:
            raise NotFound({"tracking_number": [f"No shipment with tracking number {tracking_number}"]})
        return view

    async def overdue_shipments(self, now: datetime | None = None) -> list:
        return shipment_tracking.overdue_shipments(now)

    # -------------------------------------------------------------------
    # Cold chain
    # -------------------------------------------------------------------
    async def record_temperature_reading(
        self,
        shipment_id,
        value: float,
        unit: str,
        zone: str,
        order_id=None,
        recorded_at: datetime | None = None,
        device_id: str | None = None,
        location: str | None = None,
        expected_revision: int | None = None,
        timeout: float | None = None,
    ):
        """Append a reading. Returns the alert it raised, or ``None``."""
        order_id = await self._order_id_for_shipment(shipment_id, order_id)
        alert_id = await self._mutate(
            order_id,
            lambda: RecordTemperatureReading(
                order_id=order_id,
                shipment_id=shipment_id,
                value=value,
                unit=unit,
                zone=zone,
                recorded_at=recorded_at,
                device_id=device_id,
                location=location,
                expected_revision=expected_revision,
            ),
            expected_revision,
            timeout,
        )
        if alert_id is None:
            return None
        order = await self.get_order(order_id)
        return next(a for a in order.alerts_for(shipment_id) if str(a.id) == alert_id)

    async def get_order_for_shipment(self, shipment_id, order_id=None) -> Order:
        return await self.get_order(await self._order_id_for_shipment(shipment_id, order_id))

    async def get_alert_history(self, shipment_id, order_id=None) -> list:
        order = await self.get_order_for_shipment(shipment_id, order_id)
        return order.alerts_for(shipment_id)
