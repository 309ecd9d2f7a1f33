"""Provider wiring.

A provider is a signature scheme, an envelope schema and a registry of
handlers. Adding one means adding its schemas and handlers and a builder
here; nothing else changes.
"""

from dataclasses import dataclass

import aiosqlite

from webhook_engine.config import Settings
from webhook_engine.envelope import BaseEvent
from webhook_engine.events import StripeEventType
from webhook_engine.handlers import ChargeRefundedHandler, CustomerCreatedHandler, InvoicePaidHandler
from webhook_engine.registry import HandlerRegistry
from webhook_engine.store import AccountRepository, PaymentRepository, RefundRepository
from webhook_engine.usecases import EventPublisher, ProvisionAccount, RecordPayment, RecordRefund
from webhook_engine.verification import VerifyScheme, stripe_scheme


@dataclass(frozen=True)
class Provider:
    name: str
    secret: str
    verify_scheme: VerifyScheme
    registry: HandlerRegistry
    envelope_model: type[BaseEvent] = BaseEvent


def build_stripe_provider(
    settings: Settings,
    db: aiosqlite.Connection,
    publisher: EventPublisher | None = None,
) -> Provider:
    timeout = settings.handler_timeout_seconds

    def invoice_paid() -> InvoicePaidHandler:
        payments = PaymentRepository(db)
        return InvoicePaidHandler(payments, RecordPayment(payments, publisher), timeout)

    def customer_created() -> CustomerCreatedHandler:
        accounts = AccountRepository(db)
        return CustomerCreatedHandler(accounts, ProvisionAccount(accounts, publisher), timeout)

    def charge_refunded() -> ChargeRefundedHandler:
        refunds = RefundRepository(db)
        return ChargeRefundedHandler(refunds, RecordRefund(refunds, publisher), timeout)

    registry = HandlerRegistry(
        [
            (StripeEventType.INVOICE_PAID, invoice_paid),
            (StripeEventType.CUSTOMER_CREATED, customer_created),
            (StripeEventType.CHARGE_REFUNDED, charge_refunded),
        ]
    )
    return Provider(
        name="stripe",
        secret=settings.stripe_webhook_secret,
        verify_scheme=stripe_scheme(settings.signature_tolerance_seconds),
        registry=registry,
    )


def build_providers(
    settings: Settings,
    db: aiosqlite.Connection,
    publisher: EventPublisher | None = None,
) -> dict[str, Provider]:
    providers = [build_stripe_provider(settings, db, publisher)]
    return {provider.name: provider for provider in providers}
