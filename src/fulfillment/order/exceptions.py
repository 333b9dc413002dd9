"""Typed failures of the fulfillment core.

All of them carry a ``{field: [messages]}`` dictionary like any other Protean
error, so API layers can render them uniformly. Only
``ConcurrentModification`` is worth retrying; the rest are final for the
request that caused them.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class NotFound(ObjectNotFoundError):
    """An order, line item or shipment identifier is unknown."""

    def __init__(self, messages, **kwargs):
        super().__init__(messages, **kwargs)
        self.messages = messages


class InvalidTransition(ValidationError):
    """A status change that is not forward-reachable from the current status."""


class OverAllocation(ValidationError):
    """A shipment would carry more of a line item than remains undispatched."""


class FulfillmentThresholdNotMet(ValidationError):
    """Finalizing an order below its required fulfillment percentage."""


class ConcurrentModification(ValidationError):
    """The order changed after it was read; reload and retry."""
