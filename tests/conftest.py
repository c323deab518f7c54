"""Shared test fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from paylink.api.dependencies import get_broker, get_registry, get_session, get_settings
from paylink.config import Settings
from paylink.main import app
from paylink.models.transaction import Base, Transaction
from paylink.providers.midtrans import compute_signature
from paylink.providers.registry import ProviderRegistry
from paylink.queue.broker import InMemoryBroker

SERVER_KEY = "SB-Mid-server-test-key"
XENDIT_TOKEN = "xnd-callback-token"


def midtrans_payload(
    order_id: str = "order-456",
    status_code: str = "200",
    gross_amount: str = "50000.00",
    transaction_status: str = "settlement",
    transaction_id: str = "txn-0001",
    signature_key: str | None = None,
) -> dict:
    """Build a Midtrans notification, signed with SERVER_KEY unless a signature is given."""
    return {
        "order_id": order_id,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "transaction_status": transaction_status,
        "transaction_id": transaction_id,
        "signature_key": signature_key
        if signature_key is not None
        else compute_signature(order_id, status_code, gross_amount, SERVER_KEY),
    }


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        midtrans_server_key=SERVER_KEY,
        xendit_api_key="xnd_development_key",
        xendit_webhook_token=XENDIT_TOKEN,
        run_worker=False,
    )


@pytest.fixture
def registry(test_settings: Settings) -> ProviderRegistry:
    return ProviderRegistry(test_settings)


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test, shared by every session it hands out."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def pending_tx(db_session: AsyncSession) -> Transaction:
    """A PENDING Midtrans transaction for order-456."""
    tx = Transaction(
        merchant_id="m1",
        provider="midtrans",
        provider_tx_id="order-456",
        amount=50000,
        currency="IDR",
        status="PENDING",
        metadata_={},
    )
    db_session.add(tx)
    await db_session.commit()
    return tx


@pytest_asyncio.fixture
async def client(session_factory, registry, broker, test_settings):
    """HTTP client against the app with database, broker and providers overridden."""

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_broker] = lambda: broker
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
