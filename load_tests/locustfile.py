"""
Locust load tests for the webhook engine.

Run against a local server sharing the signing secret:
    STRIPE_WEBHOOK_SECRET=whsec_load uv run uvicorn webhook_engine.app:create_app --factory --port 8000

Headless benchmark (60 s, 50 users, ramp 10/s):
    STRIPE_WEBHOOK_SECRET=whsec_load uv run locust -f load_tests/locustfile.py --headless \
        -u 50 -r 10 --run-time 60s --host http://localhost:8000
"""

import json
import os
import time
import uuid

from locust import HttpUser, between, task

from webhook_engine.signing import compute_signature

SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "whsec_load")


def _invoice_paid(invoice_id: str) -> bytes:
    return json.dumps(
        {
            "id": f"evt_{uuid.uuid4().hex}",
            "type": "invoice.paid",
            "data": {"object": {"id": invoice_id, "customer": "cus_load", "amount": 99, "currency": "usd"}},
        }
    ).encode()


def _signed_post(user: HttpUser, body: bytes) -> None:
    timestamp = int(time.time())
    header = f"t={timestamp},v1={compute_signature(SECRET, timestamp, body)}"
    user.client.post(
        "/webhooks/stripe",
        data=body,
        headers={"Content-Type": "application/json", "Stripe-Signature": header},
        name="/webhooks/stripe",
    )


class ProviderDeliveryUser(HttpUser):
    """A provider sending new invoices."""

    wait_time = between(0.05, 0.2)
    weight = 3

    @task
    def deliver_new_invoice(self) -> None:
        _signed_post(self, _invoice_paid(f"in_{uuid.uuid4().hex}"))


class ProviderRedeliveryUser(HttpUser):
    """A provider redelivering the same invoice (idempotency path)."""

    wait_time = between(0.1, 0.5)
    weight = 1

    def on_start(self) -> None:
        self._invoice_id = f"in_{uuid.uuid4().hex}"

    @task
    def redeliver_invoice(self) -> None:
        _signed_post(self, _invoice_paid(self._invoice_id))


class UnhandledTypeUser(HttpUser):
    """A provider sending event types nothing is registered for."""

    wait_time = between(0.2, 0.5)
    weight = 1

    @task
    def deliver_unhandled(self) -> None:
        body = json.dumps({"id": f"evt_{uuid.uuid4().hex}", "type": "ping.unused", "data": {}}).encode()
        _signed_post(self, body)

    @task
    def get_health(self) -> None:
        self.client.get("/health")
