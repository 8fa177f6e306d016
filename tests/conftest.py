"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The pool holds a single connection, so
concurrent engine calls are serialised the way row locks would serialise
them on PostgreSQL.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from slidebid.domain.entities import Location
from slidebid.domain.enums import ApprovalStatus
from slidebid.infrastructure.database import Base
from slidebid.infrastructure.models import CustomerModel, DriverModel
from slidebid.services.negotiation import NegotiationEngine

# Democracy Monument -> Siam Paragon (~3.7 km)
PICKUP = Location(13.7563, 100.5018, "Democracy Monument, Bangkok")
DROPOFF = Location(13.7469, 100.5349, "Siam Paragon, Bangkok")


class RecordingNotifier:
    """Collects notifications instead of delivering them."""

    def __init__(self):
        self.events: list[tuple[int, str, dict]] = []

    async def notify(self, user_id, event_type, payload):
        self.events.append((user_id, event_type, payload))

    def of_type(self, event_type: str) -> list[tuple[int, str, dict]]:
        return [e for e in self.events if e[1] == event_type]


class FailingNotifier:
    async def notify(self, user_id, event_type, payload):
        raise RuntimeError("push gateway unavailable")


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables and seed customers / drivers; dispose afterwards."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'slidebid.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
        pool_timeout=10,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with factory() as session:
        session.add_all(
            [
                CustomerModel(id=1, name="Somchai", email="somchai@example.com"),
                CustomerModel(id=2, name="Malee", email="malee@example.com"),
                DriverModel(
                    id=5, name="Prasert", vehicle_type=1,
                    approval_status=ApprovalStatus.APPROVED,
                    current_lat=13.7460, current_lon=100.5340,
                ),
                DriverModel(
                    id=6, name="Kittisak", vehicle_type=1,
                    approval_status=ApprovalStatus.APPROVED,
                ),
                DriverModel(
                    id=7, name="Decha", vehicle_type=1,
                    approval_status=ApprovalStatus.PENDING,
                ),
                DriverModel(
                    id=8, name="Wichai", vehicle_type=2,
                    approval_status=ApprovalStatus.APPROVED,
                ),
            ]
        )
        await session.commit()

    yield factory

    await test_engine.dispose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def negotiation(session_factory, notifier) -> AsyncGenerator[NegotiationEngine, None]:
    engine = NegotiationEngine(session_factory, notifier=notifier)
    yield engine
    await engine.wait_for_notifications()


@pytest_asyncio.fixture
async def pending_request(negotiation):
    """A pending standard-vehicle request owned by customer 1."""
    return await negotiation.create_request(1, PICKUP, DROPOFF, 1)
