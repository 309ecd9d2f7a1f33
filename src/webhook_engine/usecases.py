import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from webhook_engine.errors import DuplicateExternalIdError
from webhook_engine.store import (
    Account,
    AccountRepository,
    Payment,
    PaymentRepository,
    Refund,
    RefundRepository,
)

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    def publish(self, event: str, data: dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class RecordPaymentInput:
    external_id: str
    customer_external_id: str
    amount: int
    currency: str


@dataclass(frozen=True)
class ProvisionAccountInput:
    external_id: str
    email: str
    name: str | None


@dataclass(frozen=True)
class RecordRefundInput:
    external_id: str
    payment_intent: str | None
    amount: int
    currency: str
    event_created: int


class RecordPayment:
    def __init__(self, payments: PaymentRepository, publisher: EventPublisher | None = None) -> None:
        self._payments = payments
        self._publisher = publisher

    async def execute(self, data: RecordPaymentInput) -> Payment:
        payment = await self._payments.insert(
            external_id=data.external_id,
            customer_external_id=data.customer_external_id,
            amount=data.amount,
            currency=data.currency,
        )
        logger.info("Recorded payment %s for invoice %s", payment.id, payment.external_id)
        if self._publisher is not None:
            self._publisher.publish("payment.recorded", asdict(payment))
        return payment


class ProvisionAccount:
    def __init__(self, accounts: AccountRepository, publisher: EventPublisher | None = None) -> None:
        self._accounts = accounts
        self._publisher = publisher

    async def execute(self, data: ProvisionAccountInput) -> Account:
        account = await self._accounts.insert(external_id=data.external_id, email=data.email, name=data.name)
        logger.info("Provisioned account %s for customer %s", account.id, account.external_id)
        if self._publisher is not None:
            self._publisher.publish("account.provisioned", asdict(account))
        return account


class RecordRefund:
    def __init__(self, refunds: RefundRepository, publisher: EventPublisher | None = None) -> None:
        self._refunds = refunds
        self._publisher = publisher

    async def execute(self, data: RecordRefundInput) -> Refund:
        try:
            refund = await self._refunds.insert(
                external_id=data.external_id,
                payment_intent=data.payment_intent,
                amount=data.amount,
                currency=data.currency,
                event_created=data.event_created,
            )
            logger.info("Recorded refund %s for charge %s", refund.id, refund.external_id)
        except DuplicateExternalIdError:
            refund = await self._refunds.supersede(data.external_id, data.amount, data.event_created)
            if refund is None:
                raise
            logger.info("Updated refund %s for charge %s to %s", refund.id, refund.external_id, refund.amount)
        if self._publisher is not None:
            self._publisher.publish("refund.recorded", asdict(refund))
        return refund
