"""Shared test fixtures for LeadFlow API tests.

Uses an in-memory SQLite async engine so tests run without PostgreSQL.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import EngineConfig
from app.core.database import Base, get_db
from app.main import app

# Import all models to ensure they're registered with Base.metadata
from app.models.business import Business
from app.models.lead import Lead, LeadScore, LeadSource, LeadStatus
from app.models.lead_interaction import LeadInteraction  # noqa: F401
from app.models.sequence import Sequence, SequenceStep  # noqa: F401
from app.models.enrollment import SequenceEnrollment, SequenceStepExecution  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.schemas.dispatch import DispatchResult
from app.services.dispatcher import ChannelDispatcher


# Use aiosqlite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
TestSession = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

NOW = datetime(2026, 3, 2, 15, 0, 0)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with TestSession() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest_asyncio.fixture
async def client():
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db():
    """Direct DB session for test setup/assertions."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestSession


@pytest.fixture
def engine_config():
    return EngineConfig(content_provider="none")


@pytest.fixture
def dispatcher():
    """Dispatcher double that reports every send as delivered."""
    mock = AsyncMock(spec=ChannelDispatcher)
    mock.send.return_value = DispatchResult(success=True, provider_message_id="SM-test")
    return mock


@pytest_asyncio.fixture
async def business(db):
    business = Business(
        name="Sparkle Detailing",
        owner_name="Dana",
        owner_phone="+15550000000",
        owner_email="owner@sparkle.example",
        sender_name="Dana at Sparkle",
        twilio_phone_number="+15550001111",
        is_active=True,
    )
    db.add(business)
    await db.commit()
    await db.refresh(business)
    return business


@pytest_asyncio.fixture
async def lead(db, business):
    """Fresh phone-only lead created at NOW."""
    lead = Lead(
        business_id=business.id,
        name="Jordan Smith",
        phone="+15551234567",
        source=LeadSource.ONLINE_BOOKING,
        interested_service="Ceramic Coating",
        estimated_value=1200,
        tags=[],
        score=LeadScore.HOT,
        status=LeadStatus.NEW,
        follow_up_count=0,
        created_at=NOW,
        updated_at=NOW,
    )
    db.add(lead)
    await db.commit()
    await db.refresh(lead)
    return lead
