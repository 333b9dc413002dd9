"""Repository for the Order aggregate.

``Order.revision`` is the aggregate's persisted ``_version``. Protean compares
it atomically with the stored version on every write, so a stale save fails
with ``ExpectedVersionError``; ``save_checked`` reports that as
``ConcurrentModification``.
"""

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError

from fulfillment.domain import fulfillment
from fulfillment.order.exceptions import ConcurrentModification, NotFound
from fulfillment.order.order import Order, Shipment

logger = structlog.get_logger(__name__)


def conflict_from(order_id, exc: ExpectedVersionError) -> ConcurrentModification:
    logger.warning("order_revision_conflict", order_id=str(order_id), detail=str(exc))
    return ConcurrentModification({"revision": [f"Order {order_id} was modified concurrently"]})


@fulfillment.repository(part_of=Order)
class OrderRepository:
    def get_for_update(self, order_id: str, expected_revision: int | None = None) -> Order:
        """Load an order for mutation, optionally pinned to a known revision."""
        try:
            order = self.get(order_id)
        except ObjectNotFoundError:
            raise NotFound({"order_id": [f"Order {order_id} not found"]}) from None

        if expected_revision is not None and order.revision != expected_revision:
            raise ConcurrentModification(
                {"revision": [f"Order {order_id} is at revision {order.revision}, expected {expected_revision}"]}
            )
        return order

    def save_checked(self, order: Order) -> Order:
        """Persist ``order`` if nobody else saved it since it was loaded."""
        try:
            self.add(order)
        except ExpectedVersionError as exc:
            raise conflict_from(order.id, exc) from exc
        return order

    def find_by_shipment_id(self, shipment_id: str) -> Order | None:
        """Return the order that owns ``shipment_id``, read from the write model."""
        shipments = self._domain.repository_for(Shipment)._dao.query.filter(id=str(shipment_id)).all().items
        if not shipments:
            return None
        return self.get(shipments[0].order_id)

    def find_by_order_number(self, order_number: str) -> Order | None:
        results = self._dao.query.filter(order_number=order_number).all().items
        return results[0] if results else None

    def find_by_buyer(self, buyer_id: str) -> list[Order]:
        return self._sorted(self._dao.query.filter(buyer_id=str(buyer_id)).all().items)

    def find_by_supplier(self, supplier_id: str) -> list[Order]:
        return self._sorted(self._dao.query.filter(supplier_id=str(supplier_id)).all().items)

    def find_by_status(self, status: str) -> list[Order]:
        return self._sorted(self._dao.query.filter(status=status).all().items)

    @staticmethod
    def _sorted(orders: list[Order]) -> list[Order]:
        # Newest first
        return sorted(orders, key=lambda o: o.created_at, reverse=True)
