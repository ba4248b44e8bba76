# tests/conftest.py
import os

# Must be set before any application module is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OTEL_TRACING_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BLOB_BACKEND", "local")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.config.database import Base, get_db
from shared.errors import StoreError
from shared.realtime import ChangeFeed
from shared.security import create_access_token
from shared.storage import BlobStore

# Register tables with Base
from services.order_service import models as order_models  # noqa: F401
from services.chat_service import models as chat_models  # noqa: F401
from services.order_service.schemas import OrderCreate
from services.order_service.service import OrderService
from services.payment_service.workflow import PaymentProofWorkflow

BUYER = "buyer-1"
TRAVELER = "traveler-1"
STRANGER = "stranger-1"
FIXED_NOW = 1700000000.0


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.put_calls = 0
        self.fail_next_put = False

    async def put(self, bucket, key, data, content_type):
        self.put_calls += 1
        if self.fail_next_put:
            self.fail_next_put = False
            raise StoreError("bucket unavailable")
        self.objects[(bucket, key)] = (data, content_type)

    async def exists(self, bucket, key):
        return (bucket, key) in self.objects

    def public_url(self, bucket, key):
        return f"https://blobs.test/{bucket}/{key}"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def workflow(blob_store):
    return PaymentProofWorkflow(blob_store, bucket="receipts", clock=lambda: FIXED_NOW)


@pytest.fixture
def make_order(db):
    async def _make(item_name="Nike Air Jordan 42", item_price=1500000, buyer=BUYER, traveler=TRAVELER):
        data = OrderCreate(trip_id="trip-1", traveler_id=traveler, item_name=item_name, item_price=item_price)
        return await OrderService.create_order(db, buyer, data)
    return _make


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest_asyncio.fixture
async def client(session_factory, workflow):
    from main import app
    from services.payment_service.router import get_proof_workflow

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_proof_workflow] = lambda: workflow
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
