# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Student and librarian auth: signup, dual-channel verification, login challenge, password reset."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update

from portlib_server.auth import create_access_token, decode_token
from portlib_server.config import settings
from portlib_server.models import Account, AccountStatus, OneTimeCode, OtpPurpose
from portlib_server.models.timestamp import utcnow

pytestmark = pytest.mark.anyio

ALICE = "alice@example.com"
ALICE_PHONE = "+15550000001"


async def _codes(db, account_id: int) -> set[OtpPurpose]:
    result = await db.execute(select(OneTimeCode.purpose).where(OneTimeCode.account_id == account_id))
    return set(result.scalars().all())


async def _status(db, account_id: int) -> AccountStatus:
    db.expire_all()
    account = await db.get(Account, account_id)
    return account.status


async def test_signup_verify_login_scenario(client: AsyncClient, flows, outbox, db):
    r = await flows.signup()
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Signup successful. Please verify OTPs sent to your email and phone."
    user_id = body["userId"]
    assert await _codes(db, user_id) == {OtpPurpose.EMAIL_VERIFY, OtpPurpose.SMS_VERIFY}
    assert await _status(db, user_id) == AccountStatus.PENDING

    r = await client.post(
        "/api/v1/auth/user/verify-otp",
        json={
            "userId": user_id,
            "emailOTP": outbox.last_email_code(ALICE),
            "smsOTP": outbox.last_sms_code(ALICE_PHONE),
        },
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Account verified successfully"
    assert await _status(db, user_id) == AccountStatus.ACTIVE
    assert await _codes(db, user_id) == set()

    r = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "secret123", "role": "student"},
    )
    assert r.status_code == 200
    assert r.json()["userId"] == user_id
    assert await _codes(db, user_id) == {OtpPurpose.LOGIN_EMAIL, OtpPurpose.LOGIN_SMS}

    r = await client.post(
        "/api/v1/auth/user/verify-login-otp",
        json={
            "userId": user_id,
            "emailOTP": outbox.last_email_code(ALICE),
            "smsOTP": outbox.last_sms_code(ALICE_PHONE),
        },
    )
    assert r.status_code == 200
    data = r.json()
    assert data["message"] == "Login successful"
    assert data["user"] == {"id": user_id, "email": ALICE, "role": "student"}
    claims = decode_token(data["token"])
    assert claims["sub"] == str(user_id)
    assert claims["role"] == "student"
    assert await _codes(db, user_id) == set()

    me = await client.get("/api/v1/auth/user/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200
    profile = me.json()
    assert profile["student_id"] == "S-1001"
    assert profile["status"] == "active"
    assert profile["warning_count"] == 0
    assert profile["suspension_active"] is False


async def test_librarian_logs_in_with_employee_id(flows):
    await flows.register(
        email="lib@example.com", phone="+15550000002", role="librarian", identifier="E-77"
    )
    session = await flows.login(
        identifier="E-77", role="librarian", email="lib@example.com", phone="+15550000002"
    )
    assert session["user"]["role"] == "librarian"


async def test_signup_password_mismatch(client: AsyncClient, db):
    r = await client.post(
        "/api/v1/auth/user/signup",
        json={
            "role": "student",
            "email": ALICE,
            "phone": ALICE_PHONE,
            "password": "secret123",
            "confirm_password": "different",
            "student_id": "S-1001",
        },
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Passwords do not match"
    assert await db.scalar(select(func.count()).select_from(Account)) == 0


async def test_signup_requires_role_identifier(client: AsyncClient):
    r = await client.post(
        "/api/v1/auth/user/signup",
        json={
            "role": "librarian",
            "email": ALICE,
            "phone": ALICE_PHONE,
            "password": "secret123",
            "confirm_password": "secret123",
        },
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "employee_id is required"


async def test_malformed_body_is_400(client: AsyncClient):
    r = await client.post("/api/v1/auth/user/signup", json={"role": "student"})
    assert r.status_code == 400
    assert "detail" in r.json()


async def test_wrong_sms_code_spends_neither_code(client: AsyncClient, flows, outbox, db):
    r = await flows.signup()
    user_id = r.json()["userId"]
    email_code = outbox.last_email_code(ALICE)
    sms_code = outbox.last_sms_code(ALICE_PHONE)
    wrong_sms = "000000" if sms_code != "000000" else "111111"

    r = await client.post(
        "/api/v1/auth/user/verify-otp",
        json={"userId": user_id, "emailOTP": email_code, "smsOTP": wrong_sms},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid or expired OTPs"
    assert await _status(db, user_id) == AccountStatus.PENDING
    assert await _codes(db, user_id) == {OtpPurpose.EMAIL_VERIFY, OtpPurpose.SMS_VERIFY}

    r = await client.post(
        "/api/v1/auth/user/verify-otp",
        json={"userId": user_id, "emailOTP": email_code, "smsOTP": sms_code},
    )
    assert r.status_code == 200


async def test_verification_codes_are_single_use(client: AsyncClient, flows, outbox):
    r = await flows.signup()
    payload = {
        "userId": r.json()["userId"],
        "emailOTP": outbox.last_email_code(ALICE),
        "smsOTP": outbox.last_sms_code(ALICE_PHONE),
    }
    first = await client.post("/api/v1/auth/user/verify-otp", json=payload)
    second = await client.post("/api/v1/auth/user/verify-otp", json=payload)
    assert first.status_code == 200
    assert second.status_code == 400


async def test_expired_codes_are_rejected(client: AsyncClient, flows, outbox, db):
    r = await flows.signup()
    user_id = r.json()["userId"]
    await db.execute(
        update(OneTimeCode)
        .where(OneTimeCode.account_id == user_id)
        .values(expires_at=utcnow() - timedelta(seconds=1))
    )
    await db.commit()

    r = await client.post(
        "/api/v1/auth/user/verify-otp",
        json={
            "userId": user_id,
            "emailOTP": outbox.last_email_code(ALICE),
            "smsOTP": outbox.last_sms_code(ALICE_PHONE),
        },
    )
    assert r.status_code == 400
    assert await _status(db, user_id) == AccountStatus.PENDING


async def test_codes_are_bound_to_purpose(client: AsyncClient, flows, outbox):
    """A login challenge code cannot reset the password, and the failed attempt spends nothing."""
    user_id = await flows.register()
    r = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "secret123", "role": "student"},
    )
    assert r.status_code == 200
    email_code = outbox.last_email_code(ALICE)

    r = await client.post(
        "/api/v1/auth/user/reset-password",
        json={"userId": user_id, "otp": email_code, "newPassword": "x", "confirmPassword": "x"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid or expired OTP"

    r = await client.post(
        "/api/v1/auth/user/verify-login-otp",
        json={"userId": user_id, "emailOTP": email_code, "smsOTP": outbox.last_sms_code(ALICE_PHONE)},
    )
    assert r.status_code == 200


async def test_resignup_replaces_abandoned_pending_account(client: AsyncClient, flows, db):
    first = await flows.signup()
    assert first.status_code == 201
    again = await flows.signup(identifier="S-1002")
    assert again.status_code == 201

    total = await db.scalar(select(func.count()).select_from(Account).where(Account.email == ALICE))
    assert total == 1
    result = await db.execute(select(Account).where(Account.email == ALICE))
    assert result.scalar_one().role_identifier == "S-1002"


async def test_signup_rejects_contact_of_active_account(flows):
    await flows.register()
    r = await flows.signup(identifier="S-9999")
    assert r.status_code == 400
    assert r.json()["detail"] == "Email is already registered"

    r = await flows.signup(email="other@example.com", identifier="S-9999")
    assert r.status_code == 400
    assert r.json()["detail"] == "Phone is already registered"


async def test_signup_rejects_taken_identifier(flows):
    await flows.register()
    r = await flows.signup(email="bob@example.com", phone="+15550000009")
    assert r.status_code == 400
    assert r.json()["detail"] == "STUDENT ID is already registered"


async def test_login_before_verification_is_forbidden(client: AsyncClient, flows):
    await flows.signup()
    r = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "secret123", "role": "student"},
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "Account not verified or blocked"


async def test_login_with_bad_credentials(client: AsyncClient, flows):
    await flows.register()
    wrong_password = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "nope", "role": "student"},
    )
    unknown = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-0000", "password": "secret123", "role": "student"},
    )
    wrong_role = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "secret123", "role": "librarian"},
    )
    for r in (wrong_password, unknown, wrong_role):
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid credentials"


async def test_blocked_account_cannot_log_in(client: AsyncClient, flows, db):
    user_id = await flows.register()
    await db.execute(update(Account).where(Account.id == user_id).values(status=AccountStatus.BLOCKED))
    await db.commit()
    r = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "secret123", "role": "student"},
    )
    assert r.status_code == 403


async def test_forgot_and_reset_password(client: AsyncClient, flows, outbox):
    user_id = await flows.register()
    r = await client.post(
        "/api/v1/auth/user/forgot-password", json={"email": ALICE, "role": "student"}
    )
    assert r.status_code == 200
    assert r.json()["userId"] == user_id
    code = outbox.last_email_code(ALICE)

    payload = {"userId": user_id, "otp": code, "newPassword": "n3w-pass", "confirmPassword": "n3w-pass"}
    r = await client.post("/api/v1/auth/user/reset-password", json=payload)
    assert r.status_code == 200
    assert r.json()["message"] == "Password reset successful"

    reused = await client.post("/api/v1/auth/user/reset-password", json=payload)
    assert reused.status_code == 400

    old = await client.post(
        "/api/v1/auth/user/login",
        json={"identifier": "S-1001", "password": "secret123", "role": "student"},
    )
    assert old.status_code == 401
    await flows.login(password="n3w-pass")


async def test_reset_checks_password_match_first(client: AsyncClient):
    r = await client.post(
        "/api/v1/auth/user/reset-password",
        json={"userId": 999, "otp": "123456", "newPassword": "a", "confirmPassword": "b"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Passwords do not match"


async def test_forgot_password_unknown_email(client: AsyncClient):
    r = await client.post(
        "/api/v1/auth/user/forgot-password", json={"email": "ghost@example.com", "role": "student"}
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"


async def test_me_requires_auth(client: AsyncClient):
    r = await client.get("/api/v1/auth/user/me")
    assert r.status_code == 401
    r = await client.get("/api/v1/auth/user/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


async def test_me_for_deleted_account(client: AsyncClient, database):
    token = create_access_token(9999, "student")
    r = await client.get("/api/v1/auth/user/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 404
    assert r.json() == {"detail": "User not found"}


async def test_auth_endpoints_are_rate_limited(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    payload = {"email": "ghost@example.com", "role": "student"}
    statuses = [
        (await client.post("/api/v1/auth/user/forgot-password", json=payload)).status_code
        for _ in range(6)
    ]
    assert statuses[:5] == [404] * 5
    assert statuses[5] == 429
