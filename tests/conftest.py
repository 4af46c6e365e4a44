"""
Shared fixtures for the queue service test suite.

Every test gets its own SQLite database file, so tests never share state and
concurrency tests exercise real cross-connection locking.
"""
import os
import tempfile
import uuid

# Settings are read at import time; point them at throwaway resources first.
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='queue_service_')}/default.db"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("REDIS_URL", None)

import httpx
import pytest
from sqlalchemy import update

from queue_service.database import build_engine, build_session_factory, get_db, init_db
from queue_service.models.branch import Branch
from queue_service.schemas.queue_ticket import TicketCreate, TicketStatusUpdate
from queue_service.services.event_publisher import EventPublisher, InMemoryEventBackend
from queue_service.services.queue_engine import QueueEngine


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def event_backend():
    return InMemoryEventBackend(max_size=100)


@pytest.fixture
def publisher(event_backend):
    return EventPublisher(event_backend, channel="test.events", timeout=1.0)


@pytest.fixture
def queue_engine(db, publisher):
    return QueueEngine(db, publisher=publisher)


@pytest.fixture
async def make_engine(session_factory, publisher):
    """Build QueueEngines on their own sessions (one connection each)."""
    sessions = []

    def _make() -> QueueEngine:
        session = session_factory()
        sessions.append(session)
        return QueueEngine(session, publisher=publisher)

    yield _make

    for session in sessions:
        await session.close()


@pytest.fixture
def make_branch(session_factory):
    async def _make(
        max_capacity: int = 5,
        is_operational: bool = True,
        occupied: int = 0,
        code: str = None,
    ) -> Branch:
        async with session_factory() as session:
            branch = Branch(
                code=code or f"BR-{uuid.uuid4().hex[:8].upper()}",
                name="Test Branch",
                max_capacity=max_capacity,
                occupied=occupied,
                is_operational=is_operational,
            )
            session.add(branch)
            await session.commit()
            return branch

    return _make


@pytest.fixture
def get_branch(session_factory):
    async def _get(branch_id: uuid.UUID) -> Branch:
        async with session_factory() as session:
            return await session.get(Branch, branch_id)

    return _get


@pytest.fixture
def set_occupied(db_engine):
    """Overwrite a branch's occupancy counter behind the engine's back."""

    async def _set(branch_id: uuid.UUID, occupied: int) -> None:
        async with db_engine.begin() as conn:
            await conn.execute(
                update(Branch).where(Branch.id == branch_id).values(occupied=occupied)
            )

    return _set


@pytest.fixture
def issue(queue_engine):
    """Issue a ticket through the engine and return it, failing the test on error."""

    async def _issue(branch_id: uuid.UUID, service_type: str = "DEPOSIT", **fields):
        outcome = await queue_engine.issue_ticket(
            TicketCreate(branch_id=branch_id, service_type=service_type, **fields)
        )
        assert outcome.ok, outcome.error
        return outcome.value

    return _issue


@pytest.fixture
def move(queue_engine):
    """Apply a sequence of status changes to one ticket."""

    async def _move(ticket_id: uuid.UUID, *statuses: str):
        ticket = None
        for status in statuses:
            outcome = await queue_engine.transition(ticket_id, TicketStatusUpdate(status=status))
            assert outcome.ok, outcome.error
            ticket = outcome.value
        return ticket

    return _move


@pytest.fixture
async def client(session_factory):
    from queue_service.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
