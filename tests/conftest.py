"""
ShipLedger - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.database import Base, get_async_session
from app.dependencies import get_notifier
from app.models.party import Company, Courier, Governorate
from app.models.payment import LedgerPayment, PartyRole
from app.models.shipment import Shipment
from app.models.shipment_status import StatusConfig
from app.utils.permissions import Actor, ActorRole
from main import app


# In-memory database shared by every connection of the test engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Noon UTC keeps the business day the same in the configured timezone
BUSINESS_DAY = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)
PREVIOUS_DAY = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Stands in for the push dispatcher and remembers what was sent."""

    def __init__(self):
        self.sent = []

    def dispatch(self, recipient_id, title, body, url=None):
        self.sent.append({"recipient_id": recipient_id, "title": title, "body": body, "url": url})
        return None

    async def drain(self):
        return None


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# REFERENCE DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def statuses(db_session: AsyncSession) -> dict:
    """A status set covering every transition rule."""
    configs = [
        StatusConfig(id="Pending", label="Pending", sort_order=0),
        StatusConfig(
            id="Delivered", label="Delivered", sort_order=1,
            requires_full_collection=True,
            affects_courier_balance=True,
            affects_company_balance=True,
            is_delivered_status=True,
        ),
        StatusConfig(
            id="Partial", label="Partially delivered", sort_order=2,
            requires_partial_collection=True,
            affects_courier_balance=True,
            affects_company_balance=True,
            is_delivered_status=True,
        ),
        StatusConfig(
            id="Returned", label="Returned", sort_order=3,
            is_returned_status=True,
            affects_courier_balance=True,
        ),
        StatusConfig(
            id="Exchanged", label="Delivered with exchange", sort_order=4,
            requires_full_collection=True,
            is_returned_status=True,
            is_delivered_status=True,
            affects_courier_balance=True,
            affects_company_balance=True,
        ),
        StatusConfig(
            id="Lost", label="Lost", sort_order=5,
            visible_to_courier=False,
        ),
    ]
    db_session.add_all(configs)
    await db_session.commit()
    return {config.id: config for config in configs}


@pytest_asyncio.fixture
async def cairo(db_session: AsyncSession) -> Governorate:
    governorate = Governorate(name="Cairo")
    db_session.add(governorate)
    await db_session.commit()
    await db_session.refresh(governorate)
    return governorate


@pytest_asyncio.fixture
async def test_company(db_session: AsyncSession, cairo: Governorate) -> Company:
    """Create a test company charging 15 per Cairo delivery."""
    company = Company(
        name="Test Shipping Co",
        governorate_commissions={str(cairo.id): 15},
    )
    db_session.add(company)
    await db_session.commit()
    await db_session.refresh(company)
    return company


@pytest_asyncio.fixture
async def other_company(db_session: AsyncSession) -> Company:
    company = Company(name="Other Shipping Co", governorate_commissions={})
    db_session.add(company)
    await db_session.commit()
    await db_session.refresh(company)
    return company


@pytest_asyncio.fixture
async def test_courier(db_session: AsyncSession) -> Courier:
    """Create a test courier earning 20 per shipment."""
    courier = Courier(name="Test Courier", commission_rate=Decimal("20.00"))
    db_session.add(courier)
    await db_session.commit()
    await db_session.refresh(courier)
    return courier


# ===========================================
# ACTOR FIXTURES
# ===========================================

@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def courier_actor(test_courier: Courier) -> Actor:
    return Actor(id=uuid4(), role=ActorRole.COURIER, party_id=test_courier.id)


@pytest.fixture
def company_actor(test_company: Company) -> Actor:
    return Actor(id=uuid4(), role=ActorRole.COMPANY, party_id=test_company.id)


def actor_headers(actor: Actor) -> dict:
    headers = {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role.value}
    if actor.party_id:
        headers["X-Actor-Party"] = str(actor.party_id)
    return headers


# ===========================================
# RECORD FACTORIES
# ===========================================

@pytest.fixture
def make_shipment(db_session: AsyncSession, test_company: Company) -> Callable:
    """Factory that persists a shipment with sensible defaults."""

    async def _make(
        code: str,
        total_amount="100.00",
        created_at: datetime = BUSINESS_DAY,
        company: Optional[Company] = None,
        **fields,
    ) -> Shipment:
        shipment = Shipment(
            shipment_code=code,
            company_id=(company or test_company).id,
            total_amount=Decimal(str(total_amount)),
            created_at=created_at,
            **fields,
        )
        db_session.add(shipment)
        await db_session.commit()
        await db_session.refresh(shipment)
        return shipment

    return _make


@pytest.fixture
def make_payment(db_session: AsyncSession) -> Callable:
    """Factory that persists an active ledger payment."""

    async def _make(entity_id, role: PartyRole, amount, archived: bool = False) -> LedgerPayment:
        payment = LedgerPayment(
            entity_id=entity_id,
            role=role,
            amount=Decimal(str(amount)),
            is_archived=archived,
        )
        db_session.add(payment)
        await db_session.commit()
        await db_session.refresh(payment)
        return payment

    return _make


@pytest.fixture
def headers_for() -> Callable[[Actor], dict]:
    """Request headers carrying an actor's identity."""
    return actor_headers
