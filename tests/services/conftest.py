"""Service test fixtures — async DB, pinned clock, seed rows, FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use the test DB session
    - db_manager patched for code paths that bypass get_db (readiness, scheduler tick)
    - Services receive a FrozenClock, so cooldowns and bans are tested by moving time

Design Decisions:
    - SQLite in-memory: fast, no external dependency; partial unique index is
      declared for both dialects so the donor-busy constraint is exercised here too
    - Seed factories return ids, not ORM objects: a rolled-back transaction expires
      loaded instances, so tests re-read rows by id
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from bloodmatch.config import Settings
from bloodmatch.core.domain_types import Actor, ActorRole, BloodGroup
from bloodmatch.db.base import Base
from bloodmatch.infrastructure.database import get_db, DatabaseSessionManager
from bloodmatch.models import Donor, Requester, StockEntry
from bloodmatch.services.request_lifecycle import RequestLifecycleEngine
from bloodmatch.services.matching import MatchingService
import bloodmatch.infrastructure.database as db_module
from bloodmatch.main import app

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(
        donor_cooldown_days=56,
        strike_threshold=3,
        ban_duration_days=90,
        ban_blocks_cancellation=True,
        sweeper_enabled=False,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def engine(test_db, settings, clock):
    return RequestLifecycleEngine(test_db, settings, clock)


@pytest.fixture
def matching(test_db, clock):
    return MatchingService(test_db, clock)


# ─── Seed factories ──────────────────────────────────────────────

@pytest.fixture
def make_requester(test_db):
    async def _make(name="Asha", phone="9800000001", city="Kathmandu", **fields):
        requester = Requester(name=name, phone=phone, city=city, **fields)
        test_db.add(requester)
        await test_db.commit()
        return Actor(id=requester.id, role=ActorRole.REQUESTER)
    return _make


@pytest.fixture
def make_donor(test_db):
    async def _make(
        blood_group=BloodGroup.O_NEG, name="Bikash", city="Kathmandu",
        phone="9811111111", **fields,
    ):
        donor = Donor(
            name=name, phone=phone, blood_group=blood_group, city=city, **fields,
        )
        test_db.add(donor)
        await test_db.commit()
        return Actor(id=donor.id, role=ActorRole.DONOR)
    return _make


@pytest.fixture
def make_stock(test_db):
    async def _make(blood_group=BloodGroup.O_NEG, units=5):
        entry = StockEntry(blood_group=blood_group, units=units, last_updated=T0)
        test_db.add(entry)
        await test_db.commit()
        return entry.id
    return _make


@pytest.fixture
def admin():
    return Actor(id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def make_main(engine, clock):
    """Create a Main request for `actor` due three days from the pinned clock."""
    async def _make(actor, blood_group="O-", units=3, city="Kathmandu", **fields):
        main = await engine.create_main_request(
            actor,
            blood_group=blood_group,
            units=units,
            city=city,
            required_date=clock() + timedelta(days=3),
            **fields,
        )
        return main.id
    return _make


# ─── HTTP client ─────────────────────────────────────────────────

@pytest.fixture
async def client(test_engine, test_session_factory):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


def _headers(actor: Actor) -> dict[str, str]:
    return {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role.value}


@pytest.fixture
def as_headers():
    return _headers
