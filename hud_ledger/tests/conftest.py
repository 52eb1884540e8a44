"""
Centralized Test Configuration.
"""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from hud_ledger.app.main import app
from hud_ledger.app.db.session import get_db, create_tables
from hud_ledger.app.core.jwt import create_access_token
from hud_ledger.app.models.enums import MemberRole
from hud_ledger.app.models.ledger_enums import TransactionType
from hud_ledger.app.models.organization_member import OrganizationMember
from hud_ledger.app.schemas.ledger import LedgerEntryCreate

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
async def session_factory():
    """Fresh in-memory database per test, wired into the app's get_db."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)

    TestingSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestingSessionLocal

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def org_id():
    return str(uuid.uuid4())


@pytest.fixture
def entry_factory(org_id):
    """Build append payloads for `org_id`; keyword overrides win."""
    property_id = str(uuid.uuid4())
    unit_id = str(uuid.uuid4())

    def _make(**overrides) -> LedgerEntryCreate:
        data = {
            "organization_id": org_id,
            "property_id": property_id,
            "unit_id": unit_id,
            "tenant_id": None,
            "transaction_type": TransactionType.CHARGE,
            "amount": Decimal("1250.00"),
            "description": "Monthly rent charge",
            "accounting_period": "2026-02",
        }
        data.update(overrides)
        return LedgerEntryCreate(**data)

    return _make


@pytest.fixture
def member_factory(db_session):
    """Create an organization member and return (user_id, auth headers)."""

    async def _make(organization_id: str, role: MemberRole = MemberRole.PROPERTY_MANAGER):
        user_id = str(uuid.uuid4())
        db_session.add(OrganizationMember(organization_id=organization_id, user_id=user_id, role=role))
        await db_session.commit()

        token = create_access_token(data={"sub": f"{role.value.lower()}@test", "user_id": user_id})
        return user_id, {"Authorization": f"Bearer {token}"}

    return _make
