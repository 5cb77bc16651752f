"""
Test fixtures for the Ledger Bank API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - session_factory: Short-lived sessions for inspecting the database
    between API calls
  - notifier: Records outbound emails so tests can read the OTP code
  - client: Async HTTP test client with get_db and the notification
    sender overridden
  - signup_member / member / second_member: Registered MEMBER users
  - admin: A registered ADMIN user
  - fund: Credits an account through the admin deposit endpoint

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database.
  - The in-memory database lives on a single shared connection, so tests
    never hold a session open across API calls; they open one from
    session_factory, look, and close it.
  - Users are returned as small objects carrying their own auth headers
    instead of mutating the client's headers, so two users can act in the
    same test.
  - Admins are created by signing up normally and then updating user_type
    in the DB, the way an operator would provision them.
"""

import os
import re
import uuid
from dataclasses import dataclass

from cryptography.fernet import Fernet

os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ.setdefault("CARD_ENCRYPTION_KEY", Fernet.generate_key().decode())

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.database import Base, get_db
from app.exceptions import BankAPIError
from app.main import app
from app.models.user import User, UserType
from app.notifications import NotificationSender, get_notification_sender


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"


class RecordingNotificationSender(NotificationSender):
    """Keeps every message in memory; can be told to fail delivery."""

    def __init__(self):
        self.messages: list[dict[str, str]] = []
        self.fail = False

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        if self.fail:
            return False
        self.messages.append({"recipient": recipient, "subject": subject, "body": body})
        return True

    def last_code(self, recipient: str | None = None) -> str:
        for message in reversed(self.messages):
            if recipient is None or message["recipient"] == recipient:
                return re.search(r"\b(\d{6})\b", message["body"]).group(1)
        raise AssertionError("No OTP email was sent")


@dataclass
class Member:
    user_id: uuid.UUID
    email: str
    password: str
    account_number: str
    headers: dict[str, str]


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine (service-level tests)."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def notifier():
    return RecordingNotificationSender()


@pytest_asyncio.fixture
async def client(session_factory, notifier):
    """
    Async HTTP test client with the test database injected.

    The get_db override has the same commit/rollback rules as the real one.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except BankAPIError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sender] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def signup_member(client):
    """Factory: sign up a member through the real endpoint."""

    async def _signup(
        email: str,
        password: str = "SecurePass123!",
        first_name: str = "Test",
        last_name: str = "User",
    ) -> Member:
        response = await client.post(
            "/auth/signup",
            json={
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
            },
        )
        assert response.status_code == 201, f"Signup failed: {response.text}"
        data = response.json()
        return Member(
            user_id=uuid.UUID(data["user_id"]),
            email=email,
            password=password,
            account_number=data["account_number"],
            headers={"Authorization": f"Bearer {data['token']}"},
        )

    return _signup


@pytest_asyncio.fixture
async def member(signup_member):
    return await signup_member("testuser@example.com", first_name="Test")


@pytest_asyncio.fixture
async def second_member(signup_member):
    return await signup_member(
        "seconduser@example.com", password="SecurePass456!", first_name="Second"
    )


@pytest_asyncio.fixture
async def admin(client, signup_member, session_factory):
    """
    A registered ADMIN user.

    Signs up normally, is promoted directly in the database, then logs in
    again for a fresh token.
    """
    user = await signup_member("admin@example.com", password="AdminPass123!", first_name="Admin")

    async with session_factory() as session:
        await session.execute(
            update(User)
            .where(User.id == user.user_id)
            .values(user_type=UserType.ADMIN)
        )
        await session.commit()

    login_response = await client.post(
        "/auth/login",
        json={"email": user.email, "password": user.password},
    )
    user.headers = {"Authorization": f"Bearer {login_response.json()['token']}"}
    return user


@pytest_asyncio.fixture
async def fund(client, admin):
    """Factory: credit an account (amount as a decimal string) via the admin tools."""

    async def _fund(account_number: str, amount: str) -> dict:
        response = await client.post(
            f"/admin/accounts/{account_number}/credit",
            json={"amount": amount, "description": "Initial funding"},
            headers=admin.headers,
        )
        assert response.status_code == 200, f"Funding failed: {response.text}"
        return response.json()

    return _fund
