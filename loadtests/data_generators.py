"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the API's Pydantic request
schemas and the Order aggregate's validation rules.
"""

import random
import uuid

from faker import Faker

fake = Faker()

ZONE_RANGES = {
    "refrigerated": (2.0, 8.0),
    "frozen": (-25.0, -15.0),
    "ambient": (15.0, 25.0),
}


def company_id(prefix: str) -> str:
    return f"{prefix}-LT-{uuid.uuid4().hex[:8]}"


def line_item_data(zone: str | None = None) -> dict:
    """Generate one LineItemRequest payload."""
    item = {
        "product_id": f"prod-{uuid.uuid4().hex[:8]}",
        "product_name": fake.catch_phrase()[:255],
        "sku": f"SKU-{random.randint(10000, 99999)}",
        "quantity": random.randint(10, 200),
        "unit_price": round(random.uniform(0.5, 250.0), 2),
        "batch_number": f"B{random.randint(100000, 999999)}",
        "expiry_date": fake.date_between(start_date="+30d", end_date="+2y").isoformat(),
    }
    if zone:
        low, high = ZONE_RANGES[zone]
        item["temperature_requirement"] = {"min_value": low, "max_value": high, "unit": "C"}
    return item


def order_data(zone: str | None = "refrigerated", items: int | None = None) -> dict:
    """Generate a CreateOrderRequest payload."""
    count = items or random.randint(1, 4)
    partial = random.random() < 0.3
    payload = {
        "buyer_id": company_id("BUY"),
        "supplier_id": company_id("SUP"),
        "buyer_name": fake.company()[:255],
        "supplier_name": fake.company()[:255],
        "priority": random.choice(["low", "medium", "high", "urgent"]),
        "items": [line_item_data(zone) for _ in range(count)],
        "tax": round(random.uniform(0, 50), 2),
        "shipping": round(random.uniform(0, 80), 2),
        "allow_partial_fulfillment": partial,
    }
    if partial:
        payload["minimum_fulfillment_percentage"] = random.choice([50, 80, 90])
    return payload


def address_data() -> dict:
    """Generate an AddressSchema payload."""
    return {
        "street": fake.street_address()[:255],
        "city": fake.city()[:100],
        "state": fake.state_abbr(),
        "postal_code": fake.zipcode()[:20],
        "country": "US",
        "contact_name": fake.name()[:200],
        "contact_phone": fake.phone_number()[:50],
    }


def tracking_number() -> str:
    return f"TRK-{uuid.uuid4().hex[:12].upper()}"


def reading_value(zone: str, excursion_rate: float = 0.1) -> float:
    """A reading for ``zone``, outside its range with probability ``excursion_rate``."""
    low, high = ZONE_RANGES[zone]
    if random.random() < excursion_rate:
        width = high - low
        return round(random.choice([low - random.uniform(0.1, width), high + random.uniform(0.1, width)]), 1)
    return round(random.uniform(low, high), 1)
