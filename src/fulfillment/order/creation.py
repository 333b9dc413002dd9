"""Order creation — command and handler.

Buyer/supplier names and product details are snapshotted from the directory
and catalogue lookups. Values given explicitly in the request win over the
catalogue's.
"""

import json
from datetime import date

import structlog
from protean import handle
from protean.fields import Boolean, Date, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.lookup import get_catalog, get_directory
from fulfillment.order.order import Order, TemperatureRequirement

logger = structlog.get_logger(__name__)

_LINE_ITEM_FIELDS = (
    "product_id",
    "product_name",
    "sku",
    "quantity",
    "unit",
    "unit_price",
    "temperature_requirement",
    "batch_number",
    "production_date",
    "expiry_date",
    "warehouse_location",
)

_DATE_FIELDS = ("production_date", "expiry_date")


@fulfillment.command(part_of="Order")
class CreateOrder:
    """Create an order with a fixed list of line items."""

    buyer_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of line item dicts
    buyer_name = String(max_length=255)
    supplier_name = String(max_length=255)
    priority = String(max_length=10)
    currency = String(max_length=3)
    payment_terms = String(max_length=100)
    tax = Float(default=0.0)
    shipping = Float(default=0.0)
    discount = Float(default=0.0)
    allow_partial_fulfillment = Boolean(default=False)
    minimum_fulfillment_percentage = Integer(min_value=0, max_value=100)
    required_by = Date()
    buyer_notes = Text()
    supplier_notes = Text()
    as_draft = Boolean(default=False)
    actor = String(max_length=255)


def snapshot_line_item(item_data: dict, catalog) -> dict:
    """Merge a requested line item with the catalogue's view of the product."""
    product_id = item_data.get("product_id")
    product = (catalog.resolve_product(str(product_id)) if product_id is not None else None) or {}
    merged = {
        "product_name": product.get("name"),
        "sku": product.get("sku"),
        "unit": product.get("unit"),
        "temperature_requirement": product.get("temperature_requirement"),
    }
    merged.update({k: v for k, v in item_data.items() if k in _LINE_ITEM_FIELDS and v is not None})
    merged = {k: v for k, v in merged.items() if v is not None}

    requirement = merged.get("temperature_requirement")
    if isinstance(requirement, dict):
        merged["temperature_requirement"] = TemperatureRequirement(**requirement)
    for field_name in _DATE_FIELDS:
        if isinstance(merged.get(field_name), str):
            merged[field_name] = date.fromisoformat(merged[field_name])
    return merged


@fulfillment.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        catalog = get_catalog()
        directory = get_directory()

        buyer = directory.resolve_company(str(command.buyer_id)) or {}
        supplier = directory.resolve_company(str(command.supplier_id)) or {}

        attributes = {
            "buyer_name": command.buyer_name or buyer.get("name"),
            "supplier_name": command.supplier_name or supplier.get("name"),
            "priority": command.priority,
            "currency": command.currency,
            "payment_terms": command.payment_terms,
            "tax": command.tax,
            "shipping": command.shipping,
            "discount": command.discount,
            "allow_partial_fulfillment": command.allow_partial_fulfillment,
            "minimum_fulfillment_percentage": command.minimum_fulfillment_percentage,
            "required_by": command.required_by,
            "buyer_notes": command.buyer_notes,
            "supplier_notes": command.supplier_notes,
        }
        attributes = {k: v for k, v in attributes.items() if v is not None}

        order = Order.create(
            buyer_id=command.buyer_id,
            supplier_id=command.supplier_id,
            items_data=[snapshot_line_item(item, catalog) for item in items_data],
            actor=command.actor,
            as_draft=command.as_draft,
            **attributes,
        )
        current_domain.repository_for(Order).add(order)
        logger.info(
            "order_created",
            order_id=str(order.id),
            order_number=order.order_number,
            line_items=len(items_data),
        )
        return str(order.id)
