"""Cold-chain load test scenarios.

A stateful journey that takes one order from creation through split
shipments, carrier tracking and temperature monitoring to completion, and a
reading flood that hammers the per-order lock with concurrent readings.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import address_data, order_data, reading_value, tracking_number
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import OrderState, ShipmentState

_TRACKING_STEPS = ["dispatched", "in_transit", "out_for_delivery", "delivered"]


class ColdChainOrderJourney(SequentialTaskSet):
    """Create -> Confirm -> Ship in two parts -> Track + Readings -> Deliver -> Complete."""

    def on_start(self):
        self.state = OrderState()
        self.shipments: list[ShipmentState] = []

    @task
    def create_order(self):
        payload = order_data(zone="refrigerated", items=2)
        with self.client.post("/orders", json=payload, catch_response=True, name="POST /orders") as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.order_id = body["order_id"]
                self.state.line_item_ids = [item["line_item_id"] for item in body["line_items"]]
                self.state.quantities = [item["quantity"] for item in body["line_items"]]
                self.state.revision = body["revision"]
            else:
                resp.failure(f"Create order failed: {resp.status_code} - {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def confirm_order(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/confirm",
            json={"actor": "loadtest"},
            headers={"If-Match": str(self.state.revision)},
            catch_response=True,
            name="PUT /orders/{id}/confirm",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = resp.json()["status"]
                self.state.revision = resp.json()["revision"]
            else:
                resp.failure(f"Confirm failed: {resp.status_code} - {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def ship_in_two_parts(self):
        halves = [quantity // 2 for quantity in self.state.quantities]
        for split in (halves, [q - h for q, h in zip(self.state.quantities, halves)]):
            lines = [
                {"line_item_id": item_id, "quantity": quantity}
                for item_id, quantity in zip(self.state.line_item_ids, split)
                if quantity > 0
            ]
            shipment = ShipmentState(tracking_number=tracking_number())
            with self.client.post(
                f"/orders/{self.state.order_id}/shipments",
                json={
                    "carrier": random.choice(["ColdFreight", "PolarExpress", "FrostLine"]),
                    "lines": lines,
                    "tracking_number": shipment.tracking_number,
                    "pickup_address": address_data(),
                    "delivery_address": address_data(),
                },
                catch_response=True,
                name="POST /orders/{id}/shipments",
            ) as resp:
                if resp.status_code == 201:
                    shipment.shipment_id = resp.json()["shipment_id"]
                    self.shipments.append(shipment)
                else:
                    resp.failure(f"Create shipment failed: {resp.status_code} - {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def track_and_monitor(self):
        for step in _TRACKING_STEPS:
            for shipment in self.shipments:
                self._send_reading(shipment)
                with self.client.post(
                    f"/shipments/{shipment.shipment_id}/tracking-events",
                    json={"status": step, "order_id": self.state.order_id},
                    catch_response=True,
                    name="POST /shipments/{id}/tracking-events",
                ) as resp:
                    if resp.status_code != 200:
                        resp.failure(f"Tracking event failed: {resp.status_code} - {extract_error_detail(resp)}")
                        self.interrupt()

    def _send_reading(self, shipment: ShipmentState):
        with self.client.post(
            f"/shipments/{shipment.shipment_id}/temperature-readings",
            json={
                "value": reading_value(shipment.zone),
                "unit": "C",
                "zone": shipment.zone,
                "order_id": self.state.order_id,
            },
            catch_response=True,
            name="POST /shipments/{id}/temperature-readings",
        ) as resp:
            if resp.status_code == 200:
                shipment.readings_sent += 1
                if resp.json()["alert"]:
                    shipment.alerts_raised += 1
            else:
                resp.failure(f"Reading failed: {resp.status_code} - {extract_error_detail(resp)}")

    @task
    def complete_order(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/complete",
            json={"actor": "loadtest"},
            catch_response=True,
            name="PUT /orders/{id}/complete",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "completed"
            else:
                resp.failure(f"Complete failed: {resp.status_code} - {extract_error_detail(resp)}")

    @task
    def stop(self):
        self.interrupt()


class ReadingFloodTasks(SequentialTaskSet):
    """One shipment, then a burst of readings against the same order."""

    def on_start(self):
        self.state = OrderState()
        self.shipment = ShipmentState(zone=random.choice(["refrigerated", "frozen"]))

    @task
    def create_order_and_shipment(self):
        resp = self.client.post("/orders", json=order_data(zone=self.shipment.zone, items=1), name="POST /orders")
        if resp.status_code != 201:
            self.interrupt()
            return
        body = resp.json()
        self.state.order_id = body["order_id"]
        item = body["line_items"][0]
        resp = self.client.post(
            f"/orders/{self.state.order_id}/shipments",
            json={"carrier": "ColdFreight", "lines": [{"line_item_id": item["line_item_id"], "quantity": item["quantity"]}]},
            name="POST /orders/{id}/shipments",
        )
        if resp.status_code != 201:
            self.interrupt()
            return
        self.shipment.shipment_id = resp.json()["shipment_id"]

    @task(10)
    def send_reading(self):
        with self.client.post(
            f"/shipments/{self.shipment.shipment_id}/temperature-readings",
            json={
                "value": reading_value(self.shipment.zone, excursion_rate=0.3),
                "unit": "C",
                "zone": self.shipment.zone,
                "order_id": self.state.order_id,
            },
            catch_response=True,
            name="POST /shipments/{id}/temperature-readings [flood]",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Reading failed: {resp.status_code} - {extract_error_detail(resp)}")

    @task
    def alert_history(self):
        self.client.get(
            f"/shipments/{self.shipment.shipment_id}/alerts",
            params={"order_id": self.state.order_id},
            name="GET /shipments/{id}/alerts",
        )


class ColdChainUser(HttpUser):
    """Full order journeys with shipments and readings."""

    tasks = [ColdChainOrderJourney]
    wait_time = between(0.5, 2.0)


class ReadingFloodUser(HttpUser):
    """Sensor-style traffic concentrated on a few orders."""

    tasks = [ReadingFloodTasks]
    wait_time = between(0.05, 0.2)
