"""
Test configuration and fixtures
Based on FastAPI + SQLAlchemy async + pytest best practices
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from decimal import Decimal
from uuid import uuid4
import os

# Set test environment before the app reads its settings
os.environ["APP_ENV"] = "testing"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-that-is-at-least-32-chars"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./venuely_test.db"
os.environ["BOOKING_LOCK_BACKEND"] = "local"
os.environ["TOKEN_REVOCATION_ENABLED"] = "false"
os.environ["ESEWA_SECRET_KEY"] = ""
os.environ["KHALTI_SECRET_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from httpx import AsyncClient, ASGITransport

# Import all models BEFORE creating fixtures (critical for create_all to work)
from app.core.database import Base
from app.models.user import User, UserRole
from app.models.venue import Venue
from app.models.booking import Booking, BookingStatus, BookingPaymentStatus, EventType
from app.models.payment import Payment
from app.models.notification import Notification
from tests.helpers import future_date


@pytest_asyncio.fixture(scope="function")
async def test_db(tmp_path):
    """File-backed SQLite engine so separate sessions see each other's commits"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'venuely.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_db):
    return async_sessionmaker(
        test_db,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


@pytest_asyncio.fixture
async def client(session_factory):
    """Create test client; every request gets its own session like in production"""
    from app.main import app
    from app.core.database import get_session

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


async def _make_user(db_session, role: UserRole, name: str) -> User:
    user = User(
        email=f"{name.lower()}_{uuid4().hex[:8]}@example.com",
        full_name=f"{name} User",
        phone="9800000000",
        role=role,
        is_active=True
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# User fixtures
@pytest_asyncio.fixture
async def test_user(db_session):
    return await _make_user(db_session, UserRole.USER, "Customer")


@pytest_asyncio.fixture
async def other_user(db_session):
    return await _make_user(db_session, UserRole.USER, "Other")


@pytest_asyncio.fixture
async def test_owner(db_session):
    return await _make_user(db_session, UserRole.OWNER, "Owner")


@pytest_asyncio.fixture
async def test_admin(db_session):
    return await _make_user(db_session, UserRole.ADMIN, "Admin")


@pytest_asyncio.fixture
async def test_venue(db_session, test_owner):
    """Rs. 5000 per hour, 50 to 500 guests, default cancellation policy"""
    venue = Venue(
        owner_id=test_owner.id,
        name="Test Banquet",
        address="123 Test Street",
        city="Kathmandu",
        min_capacity=50,
        max_capacity=500,
        price_per_hour=Decimal("5000"),
        opening_time="08:00",
        closing_time="22:00",
        is_active=True,
        blocked_dates=[],
    )
    db_session.add(venue)
    await db_session.commit()
    await db_session.refresh(venue)
    return venue


@pytest.fixture
def booking_payload(test_venue):
    """Factory for BookingCreate keyword arguments"""
    venue_id = test_venue.id

    def make(**overrides):
        data = {
            "venue_id": venue_id,
            "event_date": future_date(),
            "start_time": "10:00",
            "end_time": "18:00",
            "event_type": EventType.WEDDING,
            "guest_count": 200,
            "contact_name": "Test Customer",
            "contact_phone": "9800000000",
            "contact_email": "customer@example.com",
        }
        data.update(overrides)
        return data
    return make


@pytest_asyncio.fixture
async def make_booking(db_session, test_venue, test_user):
    """Insert a booking row directly, bypassing the booking service"""
    user_id, venue_id = test_user.id, test_venue.id

    async def make(**overrides):
        total = overrides.pop("total_amount", Decimal("40000"))
        data = {
            "user_id": user_id,
            "venue_id": venue_id,
            "event_date": future_date(),
            "start_time": "10:00",
            "end_time": "18:00",
            "event_type": EventType.WEDDING,
            "guest_count": 200,
            "contact_name": "Test Customer",
            "contact_phone": "9800000000",
            "contact_email": "customer@example.com",
            "total_amount": total,
            "advance_paid": Decimal("0"),
            "balance_amount": total,
            "status": BookingStatus.PENDING,
            "payment_status": BookingPaymentStatus.UNPAID,
        }
        data.update(overrides)
        booking = Booking(**data)
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking
    return make

