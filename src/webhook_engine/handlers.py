"""Per-event-type handlers.

Every handler runs the same sequence: validate the type-specific payload,
look the external id up in the owning repository, and only then call the
use case. Validation comes first so a malformed duplicate still surfaces as
a payload error; the lookup comes before any side effect. A uniqueness
violation raised by a concurrent insert is treated as the same skip.

Handlers whose entity holds cumulative provider state override
``supersedes`` so a newer event for an existing entity still reaches the use
case, which repeats the ordering check inside its update.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pydantic import ValidationError

from webhook_engine.envelope import BaseEvent, validation_details
from webhook_engine.errors import DuplicateExternalIdError, HandlerTimeoutError, PayloadError
from webhook_engine.events import ChargeRefundedEvent, CustomerCreatedEvent, InvoicePaidEvent
from webhook_engine.store import Refund
from webhook_engine.usecases import ProvisionAccountInput, RecordPaymentInput, RecordRefundInput

ALREADY_PROCESSED = "already processed"

E = TypeVar("E", bound=BaseEvent)
I = TypeVar("I")  # noqa: E741


@dataclass(frozen=True)
class HandlerOutcome:
    skipped: bool
    reason: str | None = None

    @classmethod
    def processed(cls) -> "HandlerOutcome":
        return cls(skipped=False)

    @classmethod
    def skip(cls, reason: str) -> "HandlerOutcome":
        return cls(skipped=True, reason=reason)


class EventHandler(Protocol):
    async def handle(self, event: BaseEvent, log: logging.LoggerAdapter) -> HandlerOutcome: ...


class ExternalIdLookup(Protocol):
    async def find_by_external_id(self, external_id: str) -> Any | None: ...


class UseCase(Protocol):
    async def execute(self, data: Any) -> Any: ...


class IdempotentHandler(Generic[E, I]):
    schema: type[E]

    def __init__(self, repository: ExternalIdLookup, use_case: UseCase, timeout: float) -> None:
        self._repository = repository
        self._use_case = use_case
        self._timeout = timeout

    def external_id(self, event: E) -> str:
        raise NotImplementedError

    def to_input(self, event: E) -> I:
        raise NotImplementedError

    def supersedes(self, event: E, existing: Any) -> bool:
        return False

    def validate(self, event: BaseEvent) -> E:
        try:
            return self.schema.model_validate(event.model_dump())
        except ValidationError as exc:
            raise PayloadError(
                f"Invalid payload for event type {event.type}",
                event_type=event.type,
                details=validation_details(exc),
            ) from None

    async def handle(self, event: BaseEvent, log: logging.LoggerAdapter) -> HandlerOutcome:
        typed = self.validate(event)
        external_id = self.external_id(typed)
        try:
            async with asyncio.timeout(self._timeout):
                existing = await self._repository.find_by_external_id(external_id)
                if existing is not None and not self.supersedes(typed, existing):
                    log.info("External id %s already processed", external_id)
                    return HandlerOutcome.skip(ALREADY_PROCESSED)
                await self._use_case.execute(self.to_input(typed))
        except DuplicateExternalIdError:
            log.info("External id %s inserted concurrently", external_id)
            return HandlerOutcome.skip(ALREADY_PROCESSED)
        except TimeoutError:
            raise HandlerTimeoutError() from None
        return HandlerOutcome.processed()


class InvoicePaidHandler(IdempotentHandler[InvoicePaidEvent, RecordPaymentInput]):
    schema = InvoicePaidEvent

    def external_id(self, event: InvoicePaidEvent) -> str:
        return event.data.object.id

    def to_input(self, event: InvoicePaidEvent) -> RecordPaymentInput:
        invoice = event.data.object
        return RecordPaymentInput(
            external_id=invoice.id,
            customer_external_id=invoice.customer,
            amount=invoice.amount,
            currency=invoice.currency,
        )


class CustomerCreatedHandler(IdempotentHandler[CustomerCreatedEvent, ProvisionAccountInput]):
    schema = CustomerCreatedEvent

    def external_id(self, event: CustomerCreatedEvent) -> str:
        return event.data.object.id

    def to_input(self, event: CustomerCreatedEvent) -> ProvisionAccountInput:
        customer = event.data.object
        return ProvisionAccountInput(external_id=customer.id, email=customer.email, name=customer.name)


class ChargeRefundedHandler(IdempotentHandler[ChargeRefundedEvent, RecordRefundInput]):
    schema = ChargeRefundedEvent

    def external_id(self, event: ChargeRefundedEvent) -> str:
        return event.data.object.id

    def supersedes(self, event: ChargeRefundedEvent, existing: Refund) -> bool:
        # each partial refund re-sends the charge with a larger amount_refunded
        return (event.created, event.data.object.amount_refunded) > (existing.event_created, existing.amount)

    def to_input(self, event: ChargeRefundedEvent) -> RecordRefundInput:
        charge = event.data.object
        return RecordRefundInput(
            external_id=charge.id,
            payment_intent=charge.payment_intent,
            amount=charge.amount_refunded,
            currency=charge.currency,
            event_created=event.created,
        )
