import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("JWT_SECRET", "test-secret-for-unit-tests-minimum-32-chars")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["R2_ENDPOINT_URL"] = ""  # Force mock storage in tests

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.auth.service import create_access_token, hash_password
from app.database import Base, get_db
from app.main import app
from app.models.enums import RequestStatus, UserRole
from app.models.professional_profile import ProfessionalProfile
from app.models.service_request import ServiceRequest
from app.models.user import User

# Use SQLite for tests (in-memory)
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DB_URL, echo=False)
test_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    # Reset rate limiter storage between tests to avoid 429 errors
    from app.utils.rate_limit import limiter
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _user(email: str, role: UserRole, **kwargs) -> User:
    return User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password("Password123"),
        role=role,
        **kwargs,
    )


@pytest_asyncio.fixture
async def customer_user(db: AsyncSession) -> User:
    user = _user(
        "customer@test.com",
        UserRole.CUSTOMER,
        first_name="Wanjiku",
        last_name="Kamau",
        phone_number="+254700000001",
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def second_customer(db: AsyncSession) -> User:
    user = _user("customer2@test.com", UserRole.CUSTOMER, first_name="Otieno")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def professional_user(db: AsyncSession) -> User:
    user = _user(
        "fundi@test.com",
        UserRole.PROFESSIONAL,
        first_name="Juma",
        last_name="Mwangi",
        phone_number="+254700000002",
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def professional_profile(db: AsyncSession, professional_user: User) -> ProfessionalProfile:
    """Approved plumber profile for ``professional_user``."""
    profile = ProfessionalProfile(
        id=uuid.uuid4(),
        user_id=professional_user.id,
        trade="plumber",
        experience=6,
        bio="Leaks, geysers and bathroom fittings",
        hourly_rate=Decimal("1500.00"),
        location="Westlands, Nairobi",
        is_approved=True,
        approved_at=datetime.now(timezone.utc),
    )
    db.add(profile)
    await db.flush()
    return profile


@pytest_asyncio.fixture
async def pending_professional(db: AsyncSession) -> User:
    """Professional whose registration has not been approved yet."""
    user = _user("pending@test.com", UserRole.PROFESSIONAL, first_name="Akinyi")
    db.add(user)
    await db.flush()
    db.add(ProfessionalProfile(
        id=uuid.uuid4(),
        user_id=user.id,
        trade="electrician",
        location="Kisumu",
        is_approved=False,
    ))
    await db.flush()
    return user


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    user = _user("admin@test.com", UserRole.ADMIN, first_name="Admin")
    db.add(user)
    await db.flush()
    return user


def make_request(
    customer: User,
    professional: User,
    status: RequestStatus = RequestStatus.PENDING,
    created_offset_minutes: int = 0,
    **kwargs,
) -> ServiceRequest:
    """Build a request row directly, bypassing the lifecycle checks."""
    created = datetime.now(timezone.utc) - timedelta(minutes=created_offset_minutes)
    values = {
        "trade": "plumber",
        "description": "Kitchen sink is leaking",
        "preferred_date": date.today() + timedelta(days=2),
        "preferred_time": "10:00",
        "location": "Kilimani, Nairobi",
        "created_at": created,
        "updated_at": created,
    }
    values.update(kwargs)
    return ServiceRequest(
        id=uuid.uuid4(),
        customer_id=customer.id,
        professional_id=professional.id,
        status=status,
        **values,
    )


def token_for(user: User) -> str:
    return create_access_token(str(user.id))


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
