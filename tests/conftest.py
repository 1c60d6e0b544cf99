"""
Test configuration and fixtures for TradeVault backend tests.
"""
import os
import tempfile

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOCAL_STORAGE_PATH", tempfile.mkdtemp(prefix="tradevault-uploads-"))

import pytest
from typing import AsyncGenerator
from decimal import Decimal
from unittest.mock import AsyncMock

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from tradevault.core.database import Base, get_db, get_redis
from tradevault.core.security import create_access_token, get_password_hash
from main import app


# ============================================================
# Database Fixtures
# ============================================================

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "TestPassword123"


@pytest.fixture
async def test_engine():
    """Fresh database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for each test"""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def redis_mock():
    """Stand-in for the token blacklist; nothing is ever revoked"""
    redis = AsyncMock()
    redis.get.return_value = None
    return redis


@pytest.fixture
async def client(db_session, redis_mock) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and redis overrides"""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    async def override_get_redis():
        return redis_mock

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# User Fixtures
# ============================================================

async def _create_user(db_session, username: str, role=None, credit_score: int = 100):
    from tradevault.modules.users.models import User, UserRole

    user = User(
        username=username,
        email=f"{username}@example.com",
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role or UserRole.USER,
        credit_score=credit_score
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


async def _approve_kyc(db_session, user):
    from tradevault.modules.kyc.models import KYCRecord, KYCStatus, IDType

    record = KYCRecord(
        user_id=user.id,
        real_name="Test User",
        id_type=IDType.PASSPORT,
        id_number="P1234567",
        status=KYCStatus.APPROVED
    )
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
async def test_user(db_session):
    """A KYC-verified user"""
    user = await _create_user(db_session, "verified")
    await _approve_kyc(db_session, user)
    return user


@pytest.fixture
async def unverified_user(db_session):
    """A user without any KYC submission"""
    return await _create_user(db_session, "unverified")


@pytest.fixture
async def admin_user(db_session):
    from tradevault.modules.users.models import UserRole

    return await _create_user(db_session, "admin", role=UserRole.ADMIN)


@pytest.fixture
async def funded_user(db_session, test_user):
    """Verified user holding 20,000 USDT"""
    from tradevault.modules.wallet.models import Asset

    db_session.add(Asset(user_id=test_user.id, currency="USDT", balance=Decimal("20000.00"), frozen_balance=Decimal("0")))
    await db_session.commit()
    return test_user


def _headers(user) -> dict:
    token = create_access_token(data={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def auth_headers(test_user):
    """Generate auth headers for test user"""
    return _headers(test_user)


@pytest.fixture
async def unverified_headers(unverified_user):
    return _headers(unverified_user)


@pytest.fixture
async def admin_headers(admin_user):
    return _headers(admin_user)
