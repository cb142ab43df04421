"""Pytest configuration and fixtures for async testing."""
import os

# Point the application at an in-memory database before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

from typing import AsyncGenerator  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from invoicing.database import Base  # noqa: E402
from invoicing.main import app  # noqa: E402
from invoicing.models import Buyer, Product, Supplier  # noqa: E402
from invoicing.services.event_service import EventPublisher, InvoicingEvent  # noqa: E402
from tests.utils.factories import BuyerFactory, ProductFactory, SupplierFactory  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_USER_ID = UUID("00000000-0000-4000-8000-000000000001")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """One in-memory database per test, shared by every session of that test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


class RecordingPublisher(EventPublisher):
    """Publisher that keeps every published event for assertions."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[InvoicingEvent] = []

    async def publish(self, event: InvoicingEvent) -> None:
        self.events.append(event)
        await super().publish(event)

    def of_type(self, event_type: str) -> list[InvoicingEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture(scope="function")
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


async def _mock_current_user() -> dict:
    """Authenticated user for API tests; bypasses JWT verification."""
    return {"sub": str(TEST_USER_ID), "email": "tester@example.com"}


@pytest_asyncio.fixture(scope="function")
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with database dependency override.

    Every request gets its own session on the test database, as in production.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from invoicing.api.deps import get_current_user, get_db

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = _mock_current_user

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_buyer(db_session: AsyncSession) -> Buyer:
    """
    Create a buyer for invoices.

    Returns:
        Buyer: Persisted buyer
    """
    buyer = Buyer(**BuyerFactory.create())
    db_session.add(buyer)
    await db_session.commit()
    return buyer


@pytest_asyncio.fixture(scope="function")
async def test_supplier(db_session: AsyncSession) -> Supplier:
    supplier = Supplier(**SupplierFactory.create())
    db_session.add(supplier)
    await db_session.commit()
    return supplier


@pytest_asyncio.fixture(scope="function")
async def test_product(db_session: AsyncSession, test_supplier: Supplier) -> Product:
    """
    Create a catalogue product belonging to ``test_supplier``.

    Returns:
        Product: Persisted product priced at 100.00 with 18% GST
    """
    product = Product(**ProductFactory.create({"supplier_id": test_supplier.id, "price": 100, "gst": 18}))
    db_session.add(product)
    await db_session.commit()
    return product


@pytest.fixture(scope="function")
def actor_id() -> UUID:
    return uuid4()
