import json
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar

import aiosqlite

from webhook_engine.errors import DuplicateExternalIdError


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Payment:
    id: str
    external_id: str
    customer_external_id: str
    amount: int
    currency: str
    created_at: str


@dataclass
class Account:
    id: str
    external_id: str
    email: str
    name: str | None
    created_at: str


@dataclass
class Refund:
    id: str
    external_id: str
    payment_intent: str | None
    amount: int
    currency: str
    event_created: int
    created_at: str


@dataclass
class WebhookSubscription:
    id: str
    owner_scope_id: str
    url: str
    secret: str
    events: list[str]
    is_active: bool = True

    def accepts(self, event: str) -> bool:
        return self.is_active and (event in self.events or "*" in self.events)


T = TypeVar("T")


class _ExternalIdRepository(Generic[T]):
    """Rows keyed by a provider's external id, unique at the storage layer."""

    table: str
    columns: tuple[str, ...]
    entity: type

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    def _to_entity(self, row: aiosqlite.Row) -> T:
        return self.entity(**{column: row[column] for column in self.columns})

    async def find_by_external_id(self, external_id: str) -> T | None:
        async with self._conn.execute(
            f"SELECT {','.join(self.columns)} FROM {self.table} WHERE external_id=?",
            (external_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._to_entity(row) if row else None

    async def _insert(self, values: dict) -> T:
        values = {"id": str(uuid.uuid4()), "created_at": _now(), **values}
        placeholders = ",".join("?" for _ in self.columns)
        try:
            await self._conn.execute(
                f"INSERT INTO {self.table}({','.join(self.columns)}) VALUES({placeholders})",
                tuple(values[column] for column in self.columns),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError:
            raise DuplicateExternalIdError(self.table, values["external_id"]) from None
        return self.entity(**values)

    async def count(self, external_id: str | None = None) -> int:
        if external_id is None:
            query, params = f"SELECT COUNT(*) FROM {self.table}", ()
        else:
            query, params = f"SELECT COUNT(*) FROM {self.table} WHERE external_id=?", (external_id,)
        async with self._conn.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return row[0]


class PaymentRepository(_ExternalIdRepository[Payment]):
    table = "payments"
    columns = ("id", "external_id", "customer_external_id", "amount", "currency", "created_at")
    entity = Payment

    async def insert(self, external_id: str, customer_external_id: str, amount: int, currency: str) -> Payment:
        return await self._insert(
            {
                "external_id": external_id,
                "customer_external_id": customer_external_id,
                "amount": amount,
                "currency": currency,
            }
        )


class AccountRepository(_ExternalIdRepository[Account]):
    table = "accounts"
    columns = ("id", "external_id", "email", "name", "created_at")
    entity = Account

    async def insert(self, external_id: str, email: str, name: str | None) -> Account:
        return await self._insert({"external_id": external_id, "email": email, "name": name})


class RefundRepository(_ExternalIdRepository[Refund]):
    table = "refunds"
    columns = ("id", "external_id", "payment_intent", "amount", "currency", "event_created", "created_at")
    entity = Refund

    async def insert(
        self,
        external_id: str,
        payment_intent: str | None,
        amount: int,
        currency: str,
        event_created: int,
    ) -> Refund:
        return await self._insert(
            {
                "external_id": external_id,
                "payment_intent": payment_intent,
                "amount": amount,
                "currency": currency,
                "event_created": event_created,
            }
        )

    async def supersede(self, external_id: str, amount: int, event_created: int) -> Refund | None:
        """Replace the stored refund total only if this state is newer.

        Newer means a later ``event_created``, or the same second with a larger
        cumulative amount. Returns ``None`` when the stored row is as new or newer.
        """
        cursor = await self._conn.execute(
            "UPDATE refunds SET amount=?, event_created=? WHERE external_id=?"
            " AND (event_created<? OR (event_created=? AND amount<?))",
            (amount, event_created, external_id, event_created, event_created, amount),
        )
        await self._conn.commit()
        if cursor.rowcount == 0:
            return None
        return await self.find_by_external_id(external_id)


class SubscriptionStore:
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add(
        self,
        owner_scope_id: str,
        url: str,
        secret: str,
        events: list[str],
        is_active: bool = True,
    ) -> WebhookSubscription:
        subscription = WebhookSubscription(
            id=str(uuid.uuid4()),
            owner_scope_id=owner_scope_id,
            url=url,
            secret=secret,
            events=list(events),
            is_active=is_active,
        )
        await self._conn.execute(
            "INSERT INTO webhook_subscriptions(id,owner_scope_id,url,secret,events,is_active,created_at) "
            "VALUES(?,?,?,?,?,?,?)",
            (
                subscription.id,
                owner_scope_id,
                url,
                secret,
                json.dumps(subscription.events),
                int(is_active),
                _now(),
            ),
        )
        await self._conn.commit()
        return subscription

    async def list_for_event(self, event: str) -> list[WebhookSubscription]:
        async with self._conn.execute(
            "SELECT id,owner_scope_id,url,secret,events,is_active FROM webhook_subscriptions"
            " WHERE is_active=1 ORDER BY created_at, rowid",
        ) as cursor:
            rows = await cursor.fetchall()
        subscriptions = [
            WebhookSubscription(
                id=row["id"],
                owner_scope_id=row["owner_scope_id"],
                url=row["url"],
                secret=row["secret"],
                events=json.loads(row["events"]),
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]
        return [subscription for subscription in subscriptions if subscription.accepts(event)]
