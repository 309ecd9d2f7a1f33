import pytest

from webhook_engine.database import open_db


@pytest.mark.parametrize("table", ["payments", "accounts", "refunds", "webhook_subscriptions"])
async def test_tables_created(tmp_path: pytest.TempPathFactory, table: str) -> None:
    conn = await open_db(str(tmp_path / "test.db"))
    async with conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)) as cursor:
        row = await cursor.fetchone()
    await conn.close()
    assert row is not None


async def test_wal_mode_enabled(tmp_path: pytest.TempPathFactory) -> None:
    conn = await open_db(str(tmp_path / "test.db"))
    async with conn.execute("PRAGMA journal_mode") as cursor:
        row = await cursor.fetchone()
    await conn.close()
    assert row[0] == "wal"


async def test_open_is_idempotent(tmp_path: pytest.TempPathFactory) -> None:
    path = str(tmp_path / "test.db")
    await (await open_db(path)).close()
    conn = await open_db(path)
    await conn.close()
