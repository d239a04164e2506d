# This project was developed with assistance from AI tools.
"""Integration test fixtures -- real PostgreSQL, no mocks.

A session-scoped container (started once per test run) provides a real
PostgreSQL instance migrated with Alembic. Function-scoped fixtures give
each test an isolated DB session with savepoint rollback so tests don't
leak state; services that commit only release a savepoint.
"""

import os
from collections import namedtuple
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

# ---------------------------------------------------------------------------
# Mark all tests in this directory as integration
# ---------------------------------------------------------------------------
pytestmark = pytest.mark.integration


# ---------------------------------------------------------------------------
# Session-scoped: container + engine + migrations
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container():
    """Start postgres:16 via testcontainers."""
    with PostgresContainer(
        image="postgres:16",
        username="test",
        password="test",
        dbname="test",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def db_url(pg_container):
    """Async DB URL for asyncpg."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://test:test@{host}:{port}/test"


@pytest.fixture(scope="session")
def sync_db_url(pg_container):
    """Sync DB URL for Alembic (psycopg2)."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql://test:test@{host}:{port}/test"


@pytest.fixture(scope="session", autouse=True)
def _run_migrations(sync_db_url):
    """Run alembic upgrade head against the container."""
    os.environ["DATABASE_URL"] = sync_db_url
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(
        os.path.join(os.path.dirname(__file__), "..", "..", "..", "db", "alembic.ini")
    )
    alembic_cfg.set_main_option(
        "script_location",
        os.path.join(os.path.dirname(__file__), "..", "..", "..", "db", "alembic"),
    )
    alembic_cfg.set_main_option("sqlalchemy.url", sync_db_url)
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session")
def async_engine(db_url, _run_migrations):
    """Create an async engine pointing at the test container."""
    engine = create_async_engine(db_url, echo=False, poolclass=NullPool)
    yield engine


@pytest.fixture(scope="session")
def session_factory(async_engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture(scope="session", autouse=True)
def _patch_db_module(async_engine, session_factory):
    """Point db.database globals at the test database.

    ``tests/conftest.py`` imports the app during collection, so the module
    globals were bound to the configured DATABASE_URL before any fixture
    ran. Nothing in the app imports ``SessionLocal`` by name, so patching
    the module is enough.
    """
    import db.database as db_mod

    db_mod.engine = async_engine
    db_mod.SessionLocal = session_factory
    db_mod.db_service = db_mod.DatabaseService(engine=async_engine)


# ---------------------------------------------------------------------------
# Function-scoped: per-test session with savepoint rollback
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_session(async_engine):
    """Per-test DB session with savepoint rollback."""
    conn = await async_engine.connect()
    txn = await conn.begin()
    session = AsyncSession(
        bind=conn,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield session
    await session.close()
    await txn.rollback()
    await conn.close()


@pytest.fixture
def client_factory(db_session):
    """Factory returning an async httpx client with dependency overrides."""
    import db.database as db_mod
    from db.database import get_db, get_db_service

    from src.main import app
    from src.middleware.auth import get_current_user

    async def _make(user):
        async def _get_db():
            yield db_session

        async def _get_current_user(request=None):
            return user

        async def _get_db_service():
            return db_mod.db_service

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_current_user] = _get_current_user
        app.dependency_overrides[get_db_service] = _get_db_service
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        return httpx.AsyncClient(transport=transport, base_url="http://test")

    yield _make

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed data helper
# ---------------------------------------------------------------------------


class _Ref:
    """Lightweight reference holding an ID and any extra scalar attrs."""

    def __init__(self, id: int, **kwargs):
        self.id = id
        for k, v in kwargs.items():
            setattr(self, k, v)


SeedData = namedtuple(
    "SeedData",
    [
        "ada",
        "bola",
        "ada_savings",
        "ada_plan",
        "bola_savings",
    ],
)


@pytest_asyncio.fixture
async def seed_data(db_session):
    """Two approved members with funded accounts.

    Opening balances are posted as ledger credits so that every cached
    balance equals the fold of its entries.
    """
    from db.enums import AccountKind, EntryType
    from db.models import Account, Member

    from src.services.ledger import apply_entry
    from tests.functional.personas import ADA_USER_ID, BOLA_USER_ID

    ada = Member(
        user_id=ADA_USER_ID,
        full_name="Ada Okafor",
        email="ada@coop.example.com",
        department="Radiology",
        is_approved=True,
    )
    bola = Member(
        user_id=BOLA_USER_ID,
        full_name="Bola Ade",
        email="bola@coop.example.com",
        is_approved=True,
    )
    db_session.add_all([ada, bola])
    await db_session.flush()

    ada_savings = Account(member_id=ada.id, kind=AccountKind.SAVINGS, balance=Decimal("0"))
    ada_plan = Account(
        member_id=ada.id,
        kind=AccountKind.PERSONAL_PLAN,
        name="School fees",
        balance=Decimal("0"),
    )
    bola_savings = Account(member_id=bola.id, kind=AccountKind.SAVINGS, balance=Decimal("0"))
    db_session.add_all([ada_savings, ada_plan, bola_savings])
    await db_session.flush()

    for account, amount in ((ada_savings, "50000.00"), (ada_plan, "5000.00"), (bola_savings, "1200.00")):
        await apply_entry(
            db_session,
            account.id,
            EntryType.CREDIT,
            Decimal(amount),
            description="Opening balance",
            created_by="seed",
        )
    await db_session.commit()

    return SeedData(
        ada=_Ref(ada.id),
        bola=_Ref(bola.id),
        ada_savings=_Ref(ada_savings.id),
        ada_plan=_Ref(ada_plan.id),
        bola_savings=_Ref(bola_savings.id),
    )


# ---------------------------------------------------------------------------
# Truncate fixture for tests that commit through their own sessions
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def truncate_all(async_engine):
    """Yield-based: truncates all tables after the test completes."""
    yield
    async with async_engine.begin() as conn:
        await conn.execute(
            text(
                "TRUNCATE TABLE loan_status_history, loan_repayments, payment_schedules, loans, "
                "ledger_transactions, approval_steps, requests, accounts, members CASCADE"
            )
        )
