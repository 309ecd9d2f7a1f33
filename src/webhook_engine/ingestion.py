"""Top-level flow for one inbound delivery.

received -> verified -> parsed -> {unhandled_type | handler_invoked}
-> {skipped | processed} -> responded, with exits to verification_failed,
payload_invalid, timed_out or internal_error that also end in responded.
``ingest`` never raises; every exit becomes an ``IngestionResult`` carrying
the response and the outcome state reached before responding.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from webhook_engine.config import Settings
from webhook_engine.envelope import BaseEvent, parse
from webhook_engine.errors import (
    HandlerNotFoundError,
    HandlerTimeoutError,
    InternalError,
    PayloadError,
    VerificationError,
    WebhookError,
)
from webhook_engine.metrics import EVENTS_TOTAL, PROCESSING_DURATION, PROCESSING_ERRORS_TOTAL
from webhook_engine.models import ErrorResponse, ReceivedData, WebhookReceivedResponse
from webhook_engine.providers import Provider
from webhook_engine.verification import RawDelivery, verify

logger = logging.getLogger(__name__)


class IngestionState(StrEnum):
    RECEIVED = "received"
    VERIFIED = "verified"
    PARSED = "parsed"
    UNHANDLED_TYPE = "unhandled_type"
    HANDLER_INVOKED = "handler_invoked"
    SKIPPED = "skipped"
    PROCESSED = "processed"
    VERIFICATION_FAILED = "verification_failed"
    PAYLOAD_INVALID = "payload_invalid"
    TIMED_OUT = "timed_out"
    INTERNAL_ERROR = "internal_error"
    RESPONDED = "responded"


@dataclass
class IngestionResult:
    status_code: int
    body: dict[str, Any]
    state: IngestionState


class EventLogAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: Any) -> tuple[str, Any]:
        return f"event={self.extra['event_id']} type={self.extra['event_type']} {msg}", kwargs


class IngestionOrchestrator:
    def __init__(self, provider: Provider, settings: Settings) -> None:
        self._provider = provider
        self._timeout = settings.processing_timeout_seconds

    async def ingest(self, delivery: RawDelivery, request_id: str) -> IngestionResult:
        start = time.monotonic()
        progress = {"state": IngestionState.RECEIVED, "event": None}
        try:
            async with asyncio.timeout(self._timeout):
                result = await self._run(delivery, request_id, progress)
        except VerificationError as exc:
            logger.warning("webhook.verification_failed provider=%s", self._provider.name)
            result = self._error(exc, request_id, IngestionState.VERIFICATION_FAILED)
        except PayloadError as exc:
            logger.warning(
                "webhook.payload_invalid provider=%s event_type=%s message=%s details=%s",
                self._provider.name,
                exc.event_type,
                exc.message,
                exc.details,
            )
            result = self._error(exc, request_id, IngestionState.PAYLOAD_INVALID, details=exc.details or None)
        except (HandlerTimeoutError, TimeoutError):
            logger.warning(
                "webhook.timeout provider=%s state=%s event_id=%s",
                self._provider.name,
                progress["state"],
                progress["event"],
            )
            result = self._error(HandlerTimeoutError(), request_id, IngestionState.TIMED_OUT)
        except Exception as exc:
            PROCESSING_ERRORS_TOTAL.inc()
            logger.exception(
                "webhook.internal_error provider=%s state=%s event_id=%s",
                self._provider.name,
                progress["state"],
                progress["event"],
            )
            error = exc if isinstance(exc, HandlerNotFoundError) else InternalError()
            result = self._error(error, request_id, IngestionState.INTERNAL_ERROR)
        finally:
            PROCESSING_DURATION.observe(time.monotonic() - start)
        EVENTS_TOTAL.labels(provider=self._provider.name, result=result.state.value).inc()
        logger.debug(
            "webhook.%s provider=%s status=%s outcome=%s",
            IngestionState.RESPONDED,
            self._provider.name,
            result.status_code,
            result.state,
        )
        return result

    async def _run(self, delivery: RawDelivery, request_id: str, progress: dict[str, Any]) -> IngestionResult:
        verified = verify(delivery, self._provider.verify_scheme, self._provider.secret)
        progress["state"] = IngestionState.VERIFIED

        event = parse(verified, self._provider.envelope_model)
        progress["state"] = IngestionState.PARSED
        progress["event"] = event.id
        log = EventLogAdapter(logger, {"event_id": event.id, "event_type": event.type})

        registry = self._provider.registry
        if not registry.is_handled(event.type):
            log.info("webhook.unhandled_type provider=%s", self._provider.name)
            return self._received(event, processed=False, state=IngestionState.UNHANDLED_TYPE)
        factory = registry.lookup(event.type)
        if factory is None:
            raise HandlerNotFoundError(event.type)

        progress["state"] = IngestionState.HANDLER_INVOKED
        outcome = await factory().handle(event, log)
        if outcome.skipped:
            log.info("webhook.skipped reason=%s", outcome.reason)
            return self._received(event, processed=False, state=IngestionState.SKIPPED)
        log.info("webhook.processed")
        return self._received(event, processed=True, state=IngestionState.PROCESSED)

    @staticmethod
    def _received(event: BaseEvent, processed: bool, state: IngestionState) -> IngestionResult:
        response = WebhookReceivedResponse(data=ReceivedData(event_id=event.id, processed=processed))
        return IngestionResult(status_code=200, body=response.model_dump(by_alias=True), state=state)

    @staticmethod
    def _error(
        error: WebhookError,
        request_id: str,
        state: IngestionState,
        details: list[dict[str, Any]] | None = None,
    ) -> IngestionResult:
        response = ErrorResponse(code=error.code, message=error.message, request_id=request_id, details=details)
        return IngestionResult(status_code=error.status_code, body=response.to_body(), state=state)
