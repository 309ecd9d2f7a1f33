"""Signed delivery of locally produced events to subscriber endpoints.

Deliveries are best-effort and isolated per subscription: one failing
endpoint never cancels or fails the others, and nothing here raises into
the business action that produced the event.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, Field

from webhook_engine.config import Settings
from webhook_engine.errors import DeliveryError
from webhook_engine.metrics import OUTBOUND_DELIVERIES_TOTAL
from webhook_engine.signing import compute_signature
from webhook_engine.store import SubscriptionStore, WebhookSubscription

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
USER_AGENT = "webhook-engine/0.1"


class OutboundPayload(BaseModel):
    event: str = Field(min_length=1)
    data: dict[str, Any]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode()


@dataclass
class DeliveryResult:
    subscription_id: str
    ok: bool
    status_code: int | None = None
    error: DeliveryError | None = None


def redact_url(url: str) -> str:
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


def signed_headers(secret: str, body: bytes, event: str, timestamp: int | None = None) -> dict[str, str]:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        SIGNATURE_HEADER: f"sha256={compute_signature(secret, timestamp, body)}",
        TIMESTAMP_HEADER: str(timestamp),
        EVENT_HEADER: event,
    }


class OutboundDispatcher:
    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._timeout = settings.outbound_timeout_seconds
        self._max_concurrency = settings.outbound_max_concurrency

    async def send(self, subscription: WebhookSubscription, payload: OutboundPayload) -> DeliveryResult:
        body = payload.to_bytes()
        headers = signed_headers(subscription.secret, body, payload.event)
        try:
            response = await self._client.post(subscription.url, content=body, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException:
            return self._failed(subscription, payload, DeliveryError("delivery timed out"))
        except httpx.HTTPError as exc:
            return self._failed(subscription, payload, DeliveryError(f"transport error: {type(exc).__name__}"))
        if not response.is_success:
            error = DeliveryError(f"subscriber responded {response.status_code}", status_code=response.status_code)
            return self._failed(subscription, payload, error)
        OUTBOUND_DELIVERIES_TOTAL.labels(result="delivered").inc()
        logger.debug("Delivered %s to subscription %s", payload.event, subscription.id)
        return DeliveryResult(subscription_id=subscription.id, ok=True, status_code=response.status_code)

    def _failed(
        self,
        subscription: WebhookSubscription,
        payload: OutboundPayload,
        error: DeliveryError,
    ) -> DeliveryResult:
        OUTBOUND_DELIVERIES_TOTAL.labels(result="failed").inc()
        logger.warning(
            "Outbound delivery failed subscription=%s url=%s status=%s event=%s error=%s",
            subscription.id,
            redact_url(subscription.url),
            error.status_code,
            payload.event,
            error,
        )
        return DeliveryResult(subscription_id=subscription.id, ok=False, status_code=error.status_code, error=error)

    async def dispatch(
        self,
        subscriptions: list[WebhookSubscription],
        payload: OutboundPayload,
    ) -> list[DeliveryResult]:
        targets = [subscription for subscription in subscriptions if subscription.accepts(payload.event)]
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(subscription: WebhookSubscription) -> DeliveryResult:
            async with semaphore:
                return await self.send(subscription, payload)

        # gather rather than TaskGroup: a failed sibling must not cancel the rest
        outcomes = await asyncio.gather(*(bounded(s) for s in targets), return_exceptions=True)
        results = []
        for subscription, outcome in zip(targets, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Outbound delivery crashed subscription=%s event=%s",
                    subscription.id,
                    payload.event,
                    exc_info=outcome,
                )
                OUTBOUND_DELIVERIES_TOTAL.labels(result="failed").inc()
                outcome = DeliveryResult(
                    subscription_id=subscription.id, ok=False, error=DeliveryError("unexpected delivery failure")
                )
            results.append(outcome)
        return results


class OutboundPublisher:
    """Schedules dispatch of a committed domain event without blocking the caller."""

    def __init__(self, dispatcher: OutboundDispatcher, subscriptions: SubscriptionStore) -> None:
        self._dispatcher = dispatcher
        self._subscriptions = subscriptions
        self._tasks: set[asyncio.Task] = set()

    def publish(self, event: str, data: dict[str, Any]) -> asyncio.Task:
        payload = OutboundPayload(event=event, data=data)
        task = asyncio.create_task(self._deliver(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, payload: OutboundPayload) -> list[DeliveryResult]:
        try:
            subscriptions = await self._subscriptions.list_for_event(payload.event)
        except Exception:
            logger.exception("Could not load subscriptions for %s", payload.event)
            return []
        if not subscriptions:
            return []
        results = await self._dispatcher.dispatch(subscriptions, payload)
        delivered = sum(1 for result in results if result.ok)
        logger.info("Published %s delivered=%d failed=%d", payload.event, delivered, len(results) - delivered)
        return results

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
