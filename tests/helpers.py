import json
import time

from webhook_engine.signing import compute_signature

SECRET = "whsec_test_secret"


def stripe_header(body: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"


def event_body(event_type: str, obj: dict, event_id: str = "evt_001", created: int | None = None) -> bytes:
    document = {"id": event_id, "type": event_type, "data": {"object": obj}}
    if created is not None:
        document["created"] = created
    return json.dumps(document).encode()


def invoice(invoice_id: str = "in_001", **overrides) -> dict:
    return {"id": invoice_id, "customer": "cus_001", "amount": 2500, "currency": "usd", **overrides}
