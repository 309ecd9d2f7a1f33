import asyncio
import logging
from unittest.mock import AsyncMock

import aiosqlite
import pytest

from helpers import invoice
from webhook_engine.envelope import BaseEvent
from webhook_engine.errors import DuplicateExternalIdError, HandlerTimeoutError, PayloadError
from webhook_engine.handlers import (
    ALREADY_PROCESSED,
    ChargeRefundedHandler,
    CustomerCreatedHandler,
    HandlerOutcome,
    InvoicePaidHandler,
)
from webhook_engine.store import AccountRepository, PaymentRepository, RefundRepository
from webhook_engine.usecases import ProvisionAccount, RecordPayment, RecordPaymentInput, RecordRefund

LOG = logging.LoggerAdapter(logging.getLogger("test"), {})


def _event(event_type: str, obj: dict, event_id: str = "evt_1", created: int | None = None) -> BaseEvent:
    return BaseEvent(id=event_id, type=event_type, created=created, data={"object": obj})


def _charge(amount_refunded: int, charge_id: str = "ch_1") -> dict:
    return {"id": charge_id, "payment_intent": "pi_1", "amount_refunded": amount_refunded, "currency": "gbp"}


def _refund_handler(db: aiosqlite.Connection) -> ChargeRefundedHandler:
    refunds = RefundRepository(db)
    return ChargeRefundedHandler(refunds, RecordRefund(refunds), 5.0)


def _invoice_handler(db: aiosqlite.Connection, timeout: float = 5.0) -> InvoicePaidHandler:
    payments = PaymentRepository(db)
    return InvoicePaidHandler(payments, RecordPayment(payments), timeout)


async def test_first_delivery_is_processed(db: aiosqlite.Connection) -> None:
    outcome = await _invoice_handler(db).handle(_event("invoice.paid", invoice("in_1")), LOG)
    assert outcome == HandlerOutcome.processed()
    payment = await PaymentRepository(db).find_by_external_id("in_1")
    assert payment.customer_external_id == "cus_001"
    assert payment.currency == "usd"


async def test_handling_twice_creates_one_entity(db: aiosqlite.Connection) -> None:
    event = _event("invoice.paid", invoice("in_2"))
    first = await _invoice_handler(db).handle(event, LOG)
    second = await _invoice_handler(db).handle(event, LOG)
    assert first.skipped is False
    assert second == HandlerOutcome(skipped=True, reason=ALREADY_PROCESSED)
    assert await PaymentRepository(db).count("in_2") == 1


async def test_concurrent_deliveries_create_one_entity(db: aiosqlite.Connection) -> None:
    event = _event("invoice.paid", invoice("in_3"))
    outcomes = await asyncio.gather(*(_invoice_handler(db).handle(event, LOG) for _ in range(5)))
    assert sum(not outcome.skipped for outcome in outcomes) == 1
    assert await PaymentRepository(db).count("in_3") == 1


async def test_malformed_payload_raises_before_lookup() -> None:
    repository = AsyncMock()
    use_case = AsyncMock()
    handler = InvoicePaidHandler(repository, use_case, 5.0)
    obj = invoice()
    del obj["amount"]
    with pytest.raises(PayloadError) as exc_info:
        await handler.handle(_event("invoice.paid", obj), LOG)
    assert exc_info.value.event_type == "invoice.paid"
    assert exc_info.value.details
    repository.find_by_external_id.assert_not_called()
    use_case.execute.assert_not_called()


async def test_existing_entity_skips_use_case() -> None:
    repository = AsyncMock()
    repository.find_by_external_id.return_value = object()
    use_case = AsyncMock()
    outcome = await InvoicePaidHandler(repository, use_case, 5.0).handle(_event("invoice.paid", invoice()), LOG)
    assert outcome.skipped is True
    use_case.execute.assert_not_called()


async def test_uniqueness_violation_is_a_skip() -> None:
    repository = AsyncMock()
    repository.find_by_external_id.return_value = None
    use_case = AsyncMock()
    use_case.execute.side_effect = DuplicateExternalIdError("payments", "in_001")
    outcome = await InvoicePaidHandler(repository, use_case, 5.0).handle(_event("invoice.paid", invoice()), LOG)
    assert outcome == HandlerOutcome.skip(ALREADY_PROCESSED)


async def test_use_case_receives_normalized_input() -> None:
    repository = AsyncMock()
    repository.find_by_external_id.return_value = None
    use_case = AsyncMock()
    await InvoicePaidHandler(repository, use_case, 5.0).handle(_event("invoice.paid", invoice("in_9")), LOG)
    use_case.execute.assert_awaited_once_with(
        RecordPaymentInput(external_id="in_9", customer_external_id="cus_001", amount=2500, currency="usd")
    )


async def test_slow_use_case_times_out() -> None:
    repository = AsyncMock()
    repository.find_by_external_id.return_value = None

    async def slow(_data):
        await asyncio.sleep(1)

    use_case = AsyncMock()
    use_case.execute.side_effect = slow
    handler = InvoicePaidHandler(repository, use_case, 0.01)
    with pytest.raises(HandlerTimeoutError):
        await handler.handle(_event("invoice.paid", invoice()), LOG)


async def test_customer_created_provisions_account(db: aiosqlite.Connection) -> None:
    accounts = AccountRepository(db)
    handler = CustomerCreatedHandler(accounts, ProvisionAccount(accounts), 5.0)
    event = _event("customer.created", {"id": "cus_5", "email": "ada@example.com"})
    assert (await handler.handle(event, LOG)).skipped is False
    assert (await handler.handle(event, LOG)).skipped is True
    account = await accounts.find_by_external_id("cus_5")
    assert account.email == "ada@example.com"
    assert account.name is None


async def test_charge_refunded_records_refund(db: aiosqlite.Connection) -> None:
    event = _event("charge.refunded", _charge(700), created=1700000000)
    assert (await _refund_handler(db).handle(event, LOG)).skipped is False
    assert (await _refund_handler(db).handle(event, LOG)) == HandlerOutcome.skip(ALREADY_PROCESSED)
    refund = await RefundRepository(db).find_by_external_id("ch_1")
    assert refund.amount == 700
    assert refund.payment_intent == "pi_1"
    assert refund.event_created == 1700000000


async def test_charge_refunded_without_created_is_invalid(db: aiosqlite.Connection) -> None:
    with pytest.raises(PayloadError) as exc_info:
        await _refund_handler(db).handle(_event("charge.refunded", _charge(700)), LOG)
    assert exc_info.value.event_type == "charge.refunded"


async def test_second_partial_refund_updates_total(db: aiosqlite.Connection) -> None:
    first = _event("charge.refunded", _charge(500), event_id="evt_a", created=1700000000)
    second = _event("charge.refunded", _charge(1000), event_id="evt_b", created=1700000100)
    assert await _refund_handler(db).handle(first, LOG) == HandlerOutcome.processed()
    assert await _refund_handler(db).handle(second, LOG) == HandlerOutcome.processed()
    refunds = RefundRepository(db)
    assert (await refunds.find_by_external_id("ch_1")).amount == 1000
    assert await refunds.count("ch_1") == 1


async def test_partial_refunds_in_the_same_second_use_the_larger_total(db: aiosqlite.Connection) -> None:
    first = _event("charge.refunded", _charge(500), event_id="evt_a", created=1700000000)
    second = _event("charge.refunded", _charge(800), event_id="evt_b", created=1700000000)
    assert (await _refund_handler(db).handle(first, LOG)).skipped is False
    assert (await _refund_handler(db).handle(second, LOG)).skipped is False
    assert (await RefundRepository(db).find_by_external_id("ch_1")).amount == 800


async def test_older_refund_state_arriving_late_is_skipped(db: aiosqlite.Connection) -> None:
    older = _event("charge.refunded", _charge(500), event_id="evt_a", created=1700000000)
    newer = _event("charge.refunded", _charge(1000), event_id="evt_b", created=1700000100)
    assert (await _refund_handler(db).handle(newer, LOG)).skipped is False
    assert await _refund_handler(db).handle(older, LOG) == HandlerOutcome.skip(ALREADY_PROCESSED)
    assert await _refund_handler(db).handle(newer, LOG) == HandlerOutcome.skip(ALREADY_PROCESSED)
    assert (await RefundRepository(db).find_by_external_id("ch_1")).amount == 1000


async def test_refund_superseded_concurrently_is_a_skip(db: aiosqlite.Connection) -> None:
    refunds = RefundRepository(db)
    await refunds.insert("ch_1", "pi_1", 1000, "gbp", 1700000100)
    # the handler saw an older row, but a newer total landed before the update
    stale = AsyncMock()
    stale.find_by_external_id.return_value = await refunds.find_by_external_id("ch_1")
    stale.find_by_external_id.return_value.event_created = 1699999999
    handler = ChargeRefundedHandler(stale, RecordRefund(refunds), 5.0)
    event = _event("charge.refunded", _charge(800), created=1700000050)
    assert await handler.handle(event, LOG) == HandlerOutcome.skip(ALREADY_PROCESSED)
    assert (await refunds.find_by_external_id("ch_1")).amount == 1000
