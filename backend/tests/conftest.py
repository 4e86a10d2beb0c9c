"""
Centralized Test Configuration.

Each test gets its own file-backed SQLite database so concurrent sessions
really contend for the write lock.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./ledger_test_import.db")

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from backend.app.main import app
from backend.app.core.jwt import create_access_token
from backend.app.core.reliability import RetryPolicy
from backend.app.db.session import Base, build_engine, build_session_factory, get_db, get_session_factory
from backend.app.domain.ledger.consistency_guard import ConsistencyGuard
from backend.app.models.ledger_enums import TransactionKind
from backend.app.schemas.ledger import ClientCreate


@pytest.fixture
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    """Read-side session for assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0.001, max_delay=0.01)


@pytest.fixture
def guard(session_factory, retry_policy):
    return ConsistencyGuard(session_factory, retry_policy=retry_policy, write_timeout=10.0, verify_writes=True)


@pytest.fixture
async def ledger_client(guard):
    """An ACTIVE client with an empty ledger."""
    return await guard.create_client(ClientCreate(name="Acme Traders", city="Mumbai"), actor_id="tester")


@pytest.fixture
def charge():
    def build(amount, day=date(2024, 1, 1), paid="0", **extra):
        return {
            "kind": TransactionKind.CHARGE,
            "amount": Decimal(str(amount)),
            "paid": Decimal(str(paid)),
            "transaction_date": day,
            **extra,
        }
    return build


@pytest.fixture
def payment():
    def build(amount, day=date(2024, 1, 1), **extra):
        return {
            "kind": TransactionKind.PAYMENT,
            "amount": Decimal(str(amount)),
            "transaction_date": day,
            **extra,
        }
    return build


@pytest.fixture
def apply_overrides(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client(apply_overrides):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    token = create_access_token(data={"sub": "clerk", "user_id": 7})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reload_client(session_factory):
    """Read a client in a short-lived session so no read transaction is left open."""
    from backend.app.models.client import Client

    async def load(client_id):
        async with session_factory() as session:
            return await session.get(Client, client_id)
    return load
