import json

from httpx import ASGITransport, AsyncClient

from webhook_engine.app import create_app
from webhook_engine.config import Settings
from webhook_engine.dependencies import get_db
from webhook_engine.store import PaymentRepository

from helpers import event_body, invoice, stripe_header


async def _post(client: AsyncClient, body: bytes, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = stripe_header(body) if signature is None else signature
    return await client.post("/webhooks/stripe", content=body, headers=headers)


async def test_invoice_paid_is_processed(client: AsyncClient, db) -> None:
    body = event_body("invoice.paid", invoice("in_A"))
    response = await _post(client, body)
    assert response.status_code == 200
    assert response.json() == {"data": {"received": True, "eventId": "evt_001", "processed": True}}
    payment = await PaymentRepository(db).find_by_external_id("in_A")
    assert payment is not None
    assert payment.amount == 2500
    assert await PaymentRepository(db).count() == 1


async def test_redelivery_is_skipped(client: AsyncClient, db) -> None:
    body = event_body("invoice.paid", invoice("in_B"))
    signature = stripe_header(body)
    first = await _post(client, body, signature)
    second = await _post(client, body, signature)
    assert first.json()["data"]["processed"] is True
    assert second.status_code == 200
    assert second.json()["data"]["processed"] is False
    assert await PaymentRepository(db).count("in_B") == 1


async def test_tampered_body_is_rejected(client: AsyncClient, db) -> None:
    body = event_body("invoice.paid", invoice("in_C"))
    signature = stripe_header(body)
    tampered = body.replace(b"2500", b"9999")
    response = await _post(client, tampered, signature)
    assert response.status_code == 401
    payload = response.json()
    assert payload["code"] == "WEBHOOK_VERIFICATION_FAILED"
    assert payload["requestId"] == response.headers["X-Request-Id"]
    assert await PaymentRepository(db).count() == 0


async def test_missing_signature_is_rejected(client: AsyncClient) -> None:
    body = event_body("invoice.paid", invoice())
    response = await client.post("/webhooks/stripe", content=body)
    assert response.status_code == 401


async def test_missing_amount_is_payload_invalid(client: AsyncClient, db) -> None:
    obj = invoice("in_D")
    del obj["amount"]
    response = await _post(client, event_body("invoice.paid", obj))
    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "WEBHOOK_PAYLOAD_INVALID"
    assert payload["requestId"]
    assert any(detail["loc"][-1] == "amount" for detail in payload["details"])
    assert await PaymentRepository(db).count() == 0


async def test_unregistered_type_is_acknowledged(client: AsyncClient) -> None:
    response = await _post(client, event_body("ping.unused", {"id": "x"}))
    assert response.status_code == 200
    assert response.json()["data"] == {"received": True, "eventId": "evt_001", "processed": False}


async def test_malformed_envelope_is_payload_invalid(client: AsyncClient) -> None:
    body = json.dumps({"id": "", "data": {}}).encode()
    response = await _post(client, body)
    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_PAYLOAD_INVALID"


async def test_non_json_body_is_payload_invalid(client: AsyncClient) -> None:
    response = await _post(client, b"not json")
    assert response.status_code == 400
    assert "details" not in response.json()


async def test_unknown_provider_returns_404(client: AsyncClient) -> None:
    response = await client.post("/webhooks/nope", content=b"{}")
    assert response.status_code == 404
    assert response.json()["code"] == "WEBHOOK_PROVIDER_UNKNOWN"


async def test_customer_created_provisions_account(client: AsyncClient) -> None:
    obj = {"id": "cus_9", "email": "ada@example.com", "name": "Ada"}
    response = await _post(client, event_body("customer.created", obj, event_id="evt_9"))
    assert response.status_code == 200
    assert response.json()["data"]["processed"] is True


async def test_handled_event_types(client: AsyncClient) -> None:
    response = await client.get("/webhooks/stripe/events")
    assert response.status_code == 200
    assert response.json()["eventTypes"] == ["charge.refunded", "customer.created", "invoice.paid"]


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200


async def test_ready(client: AsyncClient) -> None:
    response = await client.get("/ready")
    assert response.status_code == 200


async def test_ready_returns_503_when_not_ready(settings: Settings, db) -> None:
    app = create_app(settings)
    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        response = await c.get("/ready")
    assert response.status_code == 503
