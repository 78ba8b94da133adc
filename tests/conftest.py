"""
Shared test fixtures for the ordering core.

Every test gets its own in-memory SQLite database (aiosqlite, single
shared connection) and a frozen clock it can advance.
"""

import os

# Must be set before tableorder modules build the default engine
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENV_MODE"] = "development"

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from tableorder.core.config import Settings, get_settings
from tableorder.database import create_session_maker, init_db
from tableorder.models import MenuItem, Order, OrderItem
from tableorder.services.orders import CustomerInfo, OrderService

get_settings.cache_clear()


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings():
    return Settings(_env_file=None, database_url="sqlite+aiosqlite://")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def menu(session_maker):
    """
    Catalog used across tests.

    A=20000, B=15000, FREE=0, RETIRED is inactive.
    """
    entries = {
        "A": MenuItem(name="Nasi Goreng", price=20000),
        "B": MenuItem(name="Es Teh Manis", price=15000),
        "FREE": MenuItem(name="Air Putih", price=0),
        "RETIRED": MenuItem(name="Sate Kambing", price=35000, is_active=False),
    }
    async with session_maker() as session:
        session.add_all(entries.values())
        await session.commit()
    return {key: item.id for key, item in entries.items()}


@pytest.fixture
def customer():
    return CustomerInfo(name="Budi", phone="081234567890", email="budi@example.com")


@pytest.fixture
def service(db, settings, clock):
    return OrderService(db, settings=settings, clock=clock)


@pytest.fixture
async def client(session_maker, settings, clock):
    """HTTP client against the app, wired to the test database and clock."""
    from tableorder.main import app, get_order_service

    async def override_order_service():
        async with session_maker() as session:
            yield OrderService(session, settings=settings, clock=clock)

    app.dependency_overrides[get_order_service] = override_order_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def count_rows(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def count_orders(session) -> int:
    return await count_rows(session, Order)


async def count_items(session) -> int:
    return await count_rows(session, OrderItem)
