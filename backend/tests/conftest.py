"""Pytest configuration and fixtures for FreightDesk tests.

Provides an in-memory database per test, an HTTP client bound to it, and
seed data for labour persons and shipments.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from freightdesk.main import app
from freightdesk.database import Base, get_db
from freightdesk.models import LabourPerson, Shipment


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and inspecting data outside the API."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def labour_person(db_session: AsyncSession) -> LabourPerson:
    """Create a labour person."""
    person = LabourPerson(name="Akram Porter", contact_info="0300-1234567")
    db_session.add(person)
    await db_session.commit()
    return person


@pytest_asyncio.fixture
async def shipment(db_session: AsyncSession) -> Shipment:
    """Create an undelivered shipment charged at 1000.00."""
    shipment = Shipment(
        register_number="REG-1001",
        bility_number="BL-5001",
        total_charges=1000.0,
    )
    db_session.add(shipment)
    await db_session.commit()
    return shipment


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
