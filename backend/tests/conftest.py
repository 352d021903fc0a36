"""
Shared test fixtures.

Integration tests run against an in-memory SQLite database (aiosqlite)
created from the models; Redis is never initialised, so the cache, rate
limiter and sweep lock all fall through.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import lms.models  # noqa: F401
from lms.core.config import get_settings
from lms.core.security import create_access_token, hash_password
from lms.db.session import Base, get_db
from lms.main import app
from lms.models.book import Book
from lms.models.enums import (
    AccountStatus,
    BookCategory,
    BookCondition,
    BookStatus,
    UserRole,
)
from lms.models.user import User
from lms.services.notification import Notification, NotificationService

settings = get_settings()

PASSWORD = "Secret123"


# ==========================================
# Event loop configuration
# ==========================================

@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# ==========================================
# Database fixtures
# ==========================================

@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ==========================================
# Notifications
# ==========================================

class RecordingSender:
    """Sender that keeps what it was asked to send; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.sent: list[Notification] = []
        self.fail = fail

    async def send(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionError("mail server unreachable")
        self.sent.append(notification)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def notifier(sender) -> NotificationService:
    return NotificationService(sender)


# ==========================================
# Data factories
# ==========================================

async def make_user(
    db: AsyncSession,
    role: UserRole = UserRole.STUDENT,
    approved: bool = True,
    name: str = "Test Student",
    student_code: str | None = None,
    currently_borrowed: int = 0,
    total_fines: Decimal = Decimal("0.00"),
) -> User:
    suffix = uuid.uuid4().hex[:8]
    if role == UserRole.STUDENT and student_code is None:
        student_code = f"{int(suffix, 16) % 100000:05d}"
    user = User(
        name=name,
        email=f"{role.value}_{suffix}@college.edu",
        password_hash=hash_password(PASSWORD),
        role=role,
        student_code=student_code if role == UserRole.STUDENT else None,
        phone="9876543210",
        year=2 if role == UserRole.STUDENT else None,
        is_approved=approved,
        account_status=AccountStatus.ACTIVE,
        currently_borrowed=currently_borrowed,
        total_fines=total_fines,
    )
    db.add(user)
    await db.commit()
    return user


async def make_book(
    db: AsyncSession,
    copies: int = 1,
    available: int | None = None,
    title: str = "Power System Analysis",
    status: BookStatus = BookStatus.ACTIVE,
    category: BookCategory = BookCategory.POWER_SYSTEMS,
) -> Book:
    book = Book(
        title=title,
        authors="Hadi Saadat",
        category=category,
        total_copies=copies,
        available_copies=copies if available is None else available,
        condition=BookCondition.GOOD,
        status=status,
    )
    db.add(book)
    await db.commit()
    return book


@pytest.fixture
async def librarian(test_db) -> User:
    return await make_user(test_db, role=UserRole.LIBRARIAN, name="Librarian")


@pytest.fixture
async def admin(test_db) -> User:
    return await make_user(test_db, role=UserRole.ADMIN, name="Admin")


@pytest.fixture
async def student(test_db) -> User:
    return await make_user(test_db)


def token_for(user: User) -> str:
    return create_access_token(subject=str(user.id), extra_data={"role": user.role.value})


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


def at(day: int) -> datetime:
    """Fixed clock: day N after 1 March 2026, 10:00 UTC."""
    return datetime(2026, 3, 1, 10, 0, 0) + timedelta(days=day)


# ==========================================
# HTTP client
# ==========================================

@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client whose requests use the in-memory database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
