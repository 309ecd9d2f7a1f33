import pytest
from httpx import ASGITransport, AsyncClient

from webhook_engine.app import create_app
from webhook_engine.config import Settings
from webhook_engine.database import open_db
from webhook_engine.dependencies import get_db, get_publisher
from helpers import SECRET


@pytest.fixture
def settings(tmp_path: pytest.TempPathFactory) -> Settings:
    return Settings(db_path=str(tmp_path / "test.db"), stripe_webhook_secret=SECRET)


@pytest.fixture
async def db(tmp_path: pytest.TempPathFactory):
    conn = await open_db(str(tmp_path / "test.db"))
    yield conn
    await conn.close()


@pytest.fixture
async def client(settings: Settings, db) -> AsyncClient:
    app = create_app(settings)
    app.state.ready = True
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_publisher] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
