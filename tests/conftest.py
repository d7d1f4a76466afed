# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Uses DATABASE_URL when set, otherwise a throwaway SQLite file (aiosqlite)."""

import os
import re
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="portlib-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/portlib.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from portlib_server.auth import create_access_token, hash_password  # noqa: E402
from portlib_server.database import async_session_maker, engine  # noqa: E402
from portlib_server.main import app  # noqa: E402
from portlib_server.models import AccountStatus, Admin, AdminKey, Base  # noqa: E402
from portlib_server.rate_limit import reset_rate_limits  # noqa: E402

CODE_RE = re.compile(r"\b(\d{6})\b")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
async def database():
    """Fresh schema for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine


@pytest.fixture
async def db(database):
    async with async_session_maker() as session:
        yield session


class Outbox:
    """Captures emails and SMS instead of delivering them."""

    def __init__(self):
        self.emails: list[tuple[str, str, str]] = []
        self.sms: list[tuple[str, str]] = []

    async def send_email(self, to: str, subject: str, body: str, html: bool = True) -> None:
        self.emails.append((to, subject, body))

    async def send_sms(self, to: str, body: str) -> None:
        self.sms.append((to, body))

    def last_email_code(self, to: str) -> str:
        for addr, _subject, body in reversed(self.emails):
            if addr == to:
                return CODE_RE.search(body).group(1)
        raise AssertionError(f"no email sent to {to}")

    def last_sms_code(self, to: str) -> str:
        for addr, body in reversed(self.sms):
            if addr == to:
                return CODE_RE.search(body).group(1)
        raise AssertionError(f"no SMS sent to {to}")


@pytest.fixture
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr("portlib_server.services.verification.send_email", box.send_email)
    monkeypatch.setattr("portlib_server.services.verification.send_sms", box.send_sms)
    monkeypatch.setattr("portlib_server.services.discipline.send_email", box.send_email)
    return box


@pytest.fixture
async def client(database, outbox):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class Flows:
    """Drives the HTTP flows the tests keep repeating."""

    def __init__(self, client: AsyncClient, outbox: Outbox):
        self.client = client
        self.outbox = outbox

    async def signup(
        self,
        email: str = "alice@example.com",
        phone: str = "+15550000001",
        role: str = "student",
        identifier: str = "S-1001",
        password: str = "secret123",
    ):
        id_field = "student_id" if role == "student" else "employee_id"
        return await self.client.post(
            "/api/v1/auth/user/signup",
            json={
                "role": role,
                "email": email,
                "phone": phone,
                "password": password,
                "confirm_password": password,
                id_field: identifier,
            },
        )

    async def register(self, **kwargs) -> int:
        """Sign up and verify; returns the active account id."""
        email = kwargs.get("email", "alice@example.com")
        phone = kwargs.get("phone", "+15550000001")
        r = await self.signup(**kwargs)
        assert r.status_code == 201, r.text
        user_id = r.json()["userId"]
        r = await self.client.post(
            "/api/v1/auth/user/verify-otp",
            json={
                "userId": user_id,
                "emailOTP": self.outbox.last_email_code(email),
                "smsOTP": self.outbox.last_sms_code(phone),
            },
        )
        assert r.status_code == 200, r.text
        return user_id

    async def login(
        self,
        identifier: str = "S-1001",
        password: str = "secret123",
        role: str = "student",
        email: str = "alice@example.com",
        phone: str = "+15550000001",
    ) -> dict:
        r = await self.client.post(
            "/api/v1/auth/user/login",
            json={"identifier": identifier, "password": password, "role": role},
        )
        assert r.status_code == 200, r.text
        r = await self.client.post(
            "/api/v1/auth/user/verify-login-otp",
            json={
                "userId": r.json()["userId"],
                "emailOTP": self.outbox.last_email_code(email),
                "smsOTP": self.outbox.last_sms_code(phone),
            },
        )
        assert r.status_code == 200, r.text
        return r.json()


@pytest.fixture
def flows(client, outbox):
    return Flows(client, outbox)


async def add_admin_key(key_value: str) -> None:
    async with async_session_maker() as session:
        session.add(AdminKey(key_value=key_value))
        await session.commit()


@pytest.fixture
def admin_key(database):
    """Factory that stores an unused admin signup key."""
    return add_admin_key


@pytest.fixture
async def staff_headers(database):
    """Bearer headers for an active admin created directly in the database."""
    async with async_session_maker() as session:
        admin = Admin(
            email="root-admin@example.com",
            password_hash=hash_password("adminpass"),
            status=AccountStatus.ACTIVE,
            is_first_admin=True,
            admin_access_key="root-key",
        )
        session.add(admin)
        await session.commit()
        admin_id = admin.id
    token = create_access_token(admin_id, "admin")
    return {"Authorization": f"Bearer {token}"}
