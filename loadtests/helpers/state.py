"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state. State tracks the ids
returned by creation endpoints so follow-up operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class OrderState:
    """Tracks a single order through shipping and delivery."""

    order_id: str | None = None
    line_item_ids: list[str] = field(default_factory=list)
    quantities: list[int] = field(default_factory=list)
    current_status: str = "pending"
    revision: int = 0


@dataclass
class ShipmentState:
    """Tracks one shipment and the readings sent for it."""

    shipment_id: str | None = None
    tracking_number: str | None = None
    zone: str = "refrigerated"
    readings_sent: int = 0
    alerts_raised: int = 0
