"""Shared pytest fixtures for testing."""

import os
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before the application builds its engine
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from voicedesk.auth.dependencies import UserContext, generate_api_key  # noqa: E402
from voicedesk.config import Settings, get_settings  # noqa: E402
from voicedesk.database.models import (  # noqa: E402
    APIKey,
    Base,
    Bot,
    Call,
    CallStatus,
    CustomerType,
    Organization,
    User,
    UserRole,
)
from voicedesk.database.session import build_engine, get_db  # noqa: E402

RETELL_BASE_URL = "https://api.retell.test"
TEST_PEPPER = "test-pepper"


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fake platform host."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        retell_api_key="key_fallback_0123456789",
        retell_webhook_secret="whsec_test_secret",
        retell_base_url=RETELL_BASE_URL,
        public_app_url="https://voicedesk.test",
        api_key_pepper=TEST_PEPPER,
        enforce_auth=True,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Tenant Fixtures
# =============================================================================


async def _user(db: AsyncSession, organization: Organization, email: str, role, customer_type):
    user = User(
        organization_id=organization.id,
        email=email,
        name=email.split("@")[0].title(),
        role=role,
        customer_type=customer_type,
    )
    db.add(user)
    await db.flush()
    raw_key, key_hash = generate_api_key(TEST_PEPPER)
    db.add(APIKey(user_id=user.id, key_hash=key_hash, name="test"))
    return user, raw_key


@pytest_asyncio.fixture
async def tenant(db_session: AsyncSession) -> SimpleNamespace:
    """One organization with an admin, a restaurant and a hotel customer.

    Only ids and raw keys are exposed so tests never touch expired ORM state.
    """
    organization = Organization(name="Acme", slug="acme")
    db_session.add(organization)
    await db_session.flush()

    admin, admin_key = await _user(
        db_session, organization, "admin@acme.test", UserRole.ADMIN, CustomerType.GENERAL
    )
    restaurant, restaurant_key = await _user(
        db_session, organization, "restaurant@acme.test", UserRole.CUSTOMER, CustomerType.RESTAURANT
    )
    hotel, hotel_key = await _user(
        db_session, organization, "hotel@acme.test", UserRole.CUSTOMER, CustomerType.HOTEL
    )

    bot = Bot(
        organization_id=organization.id,
        created_by_id=admin.id,
        retell_agent_id="agent_acme_1",
        retell_llm_id="llm_acme_1",
        name="Front Desk",
        voice_id="11labs-Adrian",
        model="gpt-4.1",
        general_prompt="You are a receptionist.",
        custom_tools=[],
        boosted_keywords=[],
    )
    db_session.add(bot)
    await db_session.commit()

    return SimpleNamespace(
        organization_id=organization.id,
        admin_id=admin.id,
        restaurant_id=restaurant.id,
        hotel_id=hotel.id,
        bot_id=bot.id,
        agent_id=bot.retell_agent_id,
        admin_key=admin_key,
        restaurant_key=restaurant_key,
        hotel_key=hotel_key,
        admin=UserContext(admin.id, organization.id, UserRole.ADMIN, CustomerType.GENERAL),
        restaurant=UserContext(restaurant.id, organization.id, UserRole.CUSTOMER, CustomerType.RESTAURANT),
        hotel=UserContext(hotel.id, organization.id, UserRole.CUSTOMER, CustomerType.HOTEL),
    )


@pytest_asyncio.fixture
async def make_call(db_session: AsyncSession, tenant: SimpleNamespace):
    """Factory for call records owned by the test tenant."""

    async def factory(
        retell_call_id: str = "call_test_1",
        initiated_by_id=None,
        status: CallStatus = CallStatus.PENDING,
        bot_id=None,
    ) -> Call:
        call = Call(
            organization_id=tenant.organization_id,
            bot_id=bot_id or tenant.bot_id,
            initiated_by_id=initiated_by_id or tenant.admin_id,
            retell_call_id=retell_call_id,
            from_number="+14155550100",
            to_number="+14155550199",
            status=status,
        )
        db_session.add(call)
        await db_session.commit()
        return call

    return factory


# =============================================================================
# API Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(session_factory, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test database and settings."""
    from voicedesk.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
