"""Fulfillment bounded context — Order Fulfillment and Cold-Chain Tracking.

Manages a commercial order from confirmation through partial or full delivery,
tracks the shipments that carry subsets of its line items, and monitors
temperature-controlled transport. The Order aggregate is the single
consistency boundary for line items, shipments and cold-chain records.
"""

import structlog
from protean.domain import Domain

fulfillment = Domain(name="fulfillment")

logger = structlog.get_logger(__name__)
