# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Signup, OTP verification, login challenge/response and password reset.

Every flow persists its codes and commits before any notification goes out.
A failed email or SMS is logged by the sink and does not undo the commit, so a
code can exist that was never delivered; the client asks for a new one.

Verification consumes codes with a conditional delete (see services.otp), and
a failed dual-channel check rolls the session back so neither code is spent.
"""

import logging
import secrets
from dataclasses import dataclass

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.api.schemas import AdminSignup, UserSignup
from portlib_server.auth import create_access_token, hash_password, verify_password
from portlib_server.errors import (
    AccountNotActive,
    AuthenticationFailed,
    Conflict,
    Forbidden,
    InvalidCode,
    NotFound,
    ValidationFailed,
)
from portlib_server.models import (
    ACCOUNT_CLASSES,
    Account,
    AccountStatus,
    Admin,
    AdminKey,
    Librarian,
    OtpPurpose,
    Role,
    Student,
)
from portlib_server.services.accounts import delete_account, get_admin, get_member
from portlib_server.services.email import send_email
from portlib_server.services.otp import OtpPolicy, consume_code, issue_code, purge_codes
from portlib_server.services.sms import send_sms

logger = logging.getLogger(__name__)

# Only abandoned signups may be replaced by a new signup with the same contact details.
RECLAIMABLE_STATUSES = frozenset({AccountStatus.PENDING})

INVALID_CODES = "Invalid or expired OTPs"
INVALID_CODE = "Invalid or expired OTP"


@dataclass
class SessionGrant:
    account: Account
    token: str


def _require_matching(password: str, confirm: str) -> None:
    if password != confirm:
        raise ValidationFailed("Passwords do not match")


def _member_class(role: str) -> type[Student] | type[Librarian]:
    return ACCOUNT_CLASSES[role]


def _identifier_column(role: str):
    return Student.student_id if role == Role.STUDENT.value else Librarian.employee_id


async def _reclaim_contact(db: AsyncSession, email: str, phone: str | None) -> None:
    """Reject a signup whose email/phone belongs to a live account; drop abandoned pending ones."""
    clauses = [Account.email == email]
    if phone:
        clauses.append(Account.phone == phone)
    result = await db.execute(select(Account).where(or_(*clauses)))
    holders = result.scalars().all()
    for holder in holders:
        if holder.status not in RECLAIMABLE_STATUSES:
            field = "Email" if holder.email == email else "Phone"
            raise Conflict(f"{field} is already registered")
    for holder in holders:
        await delete_account(db, holder.id)
        db.expunge(holder)
        logger.info("Replaced abandoned pending signup %s", holder.id)


async def _flush_new_account(db: AsyncSession, account: Account) -> None:
    db.add(account)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Email or phone is already registered")


async def _consume_pair(
    db: AsyncSession,
    account_id: int,
    email_code: str,
    sms_code: str | None,
    email_purpose: OtpPurpose,
    sms_purpose: OtpPurpose,
) -> None:
    """Consume both channel codes or neither."""
    email_ok = await consume_code(db, account_id, email_code, email_purpose)
    sms_ok = await consume_code(db, account_id, sms_code, sms_purpose)
    if not (email_ok and sms_ok):
        await db.rollback()
        raise InvalidCode(INVALID_CODES)


async def _send_pair(
    email: str,
    phone: str | None,
    subject: str,
    email_code: str,
    sms_code: str | None,
    what: str,
) -> None:
    await send_email(email, subject, f"Your {what} OTP is {email_code}")
    if phone and sms_code:
        await send_sms(phone, f"Your {what} OTP is {sms_code}")


# Students and librarians


async def signup_user(db: AsyncSession, data: UserSignup, policy: OtpPolicy) -> Account:
    """Create a pending account and send email + SMS verification codes."""
    _require_matching(data.password, data.confirm_password)
    identifier = data.role_identifier
    if not identifier:
        id_field = "student_id" if data.role == Role.STUDENT.value else "employee_id"
        raise ValidationFailed(f"{id_field} is required")

    await _reclaim_contact(db, data.email, data.phone)

    existing = await db.execute(
        select(Account.id).where(_identifier_column(data.role) == identifier)
    )
    if existing.first():
        label = "STUDENT ID" if data.role == Role.STUDENT.value else "EMPLOYEE ID"
        raise Conflict(f"{label} is already registered")

    account_cls = _member_class(data.role)
    id_kwargs = {"student_id": identifier} if account_cls is Student else {"employee_id": identifier}
    account = account_cls(
        email=data.email,
        phone=data.phone,
        password_hash=hash_password(data.password),
        status=AccountStatus.PENDING,
        **id_kwargs,
    )
    await _flush_new_account(db, account)

    email_code = await issue_code(db, account.id, OtpPurpose.EMAIL_VERIFY, policy.verify_ttl)
    sms_code = await issue_code(db, account.id, OtpPurpose.SMS_VERIFY, policy.verify_ttl)
    await db.commit()
    logger.info("Signup pending verification: account=%s role=%s", account.id, account.role)

    await _send_pair(account.email, account.phone, "Your Signup OTP", email_code, sms_code, "verification")
    return account


async def verify_signup(db: AsyncSession, account_id: int, email_code: str, sms_code: str) -> Account:
    """Activate a pending account once both channel codes check out."""
    account = await get_member(db, account_id)
    if account is None:
        raise InvalidCode(INVALID_CODES)
    await _consume_pair(
        db, account_id, email_code, sms_code, OtpPurpose.EMAIL_VERIFY, OtpPurpose.SMS_VERIFY
    )
    account.status = AccountStatus.ACTIVE
    await purge_codes(db, account_id)
    await db.commit()
    logger.info("Account %s verified and activated", account_id)
    return account


async def start_login(
    db: AsyncSession,
    identifier: str,
    password: str,
    role: str,
    policy: OtpPolicy,
) -> Account:
    """Check credentials and send the login challenge codes."""
    account_cls = _member_class(role)
    result = await db.execute(
        select(account_cls).where(_identifier_column(role) == identifier)
    )
    account = result.scalar_one_or_none()
    if account is None or not verify_password(password, account.password_hash):
        raise AuthenticationFailed("Invalid credentials")
    if account.status != AccountStatus.ACTIVE:
        raise AccountNotActive("Account not verified or blocked")

    email_code = await issue_code(db, account.id, OtpPurpose.LOGIN_EMAIL, policy.verify_ttl)
    sms_code = await issue_code(db, account.id, OtpPurpose.LOGIN_SMS, policy.verify_ttl)
    await db.commit()

    await _send_pair(account.email, account.phone, "Login OTP", email_code, sms_code, "login")
    return account


async def complete_login(db: AsyncSession, account_id: int, email_code: str, sms_code: str) -> SessionGrant:
    """Answer the login challenge and mint a session token."""
    account = await get_member(db, account_id)
    if account is None:
        raise InvalidCode(INVALID_CODES)
    if account.status != AccountStatus.ACTIVE:
        raise AccountNotActive("Account not verified or blocked")
    await _consume_pair(
        db, account_id, email_code, sms_code, OtpPurpose.LOGIN_EMAIL, OtpPurpose.LOGIN_SMS
    )
    await purge_codes(db, account_id)
    await db.commit()
    token = create_access_token(account.id, account.role)
    logger.info("Session granted: account=%s role=%s", account.id, account.role)
    return SessionGrant(account=account, token=token)


async def forgot_password(db: AsyncSession, email: str, role: str, policy: OtpPolicy) -> Account:
    account_cls = _member_class(role)
    result = await db.execute(select(account_cls).where(account_cls.email == email))
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFound("User not found")
    code = await issue_code(db, account.id, OtpPurpose.FORGOT_PASSWORD, policy.reset_ttl)
    await db.commit()
    await send_email(account.email, "Password Reset OTP", f"Your password reset OTP is {code}")
    return account


async def _reset(db: AsyncSession, account: Account | None, code: str, new_password: str) -> None:
    if account is None:
        raise InvalidCode(INVALID_CODE)
    if not await consume_code(db, account.id, code, OtpPurpose.FORGOT_PASSWORD):
        raise InvalidCode(INVALID_CODE)
    account.password_hash = hash_password(new_password)
    await purge_codes(db, account.id)
    await db.commit()
    logger.info("Password reset for account %s", account.id)


async def reset_password(
    db: AsyncSession,
    account_id: int,
    code: str,
    new_password: str,
    confirm_password: str,
) -> None:
    _require_matching(new_password, confirm_password)
    await _reset(db, await get_member(db, account_id), code, new_password)


# Admins


async def _claim_admin_key(db: AsyncSession, key_value: str) -> None:
    """Mark an unused admin key as used; compare-and-set so a key serves one signup."""
    result = await db.execute(
        update(AdminKey)
        .where(AdminKey.key_value == key_value, AdminKey.is_used.is_(False))
        .values(is_used=True)
        .returning(AdminKey.id)
        .execution_options(synchronize_session=False)
    )
    if result.first() is None:
        raise ValidationFailed("Invalid or already used admin key")


async def _first_admin_exists(db: AsyncSession) -> bool:
    result = await db.execute(select(Admin.id).where(Admin.is_first_admin.is_(True)).limit(1))
    return result.first() is not None


async def _insert_admin(db: AsyncSession, data: AdminSignup, is_first: bool) -> Admin | None:
    """Insert in a savepoint; None if a unique constraint rejected the row."""
    admin = Admin(
        email=data.email,
        phone=data.phone,
        password_hash=hash_password(data.password),
        status=AccountStatus.ACTIVE if is_first else AccountStatus.PENDING_APPROVAL,
        is_first_admin=is_first,
        admin_access_key=data.admin_key,
    )
    try:
        async with db.begin_nested():
            db.add(admin)
    except IntegrityError:
        return None
    return admin


async def signup_admin(db: AsyncSession, data: AdminSignup, policy: OtpPolicy) -> Admin:
    """Create an admin. The very first admin is active at once; later ones await approval."""
    _require_matching(data.password, data.confirm_password)
    await _reclaim_contact(db, data.email, data.phone)
    await _claim_admin_key(db, data.admin_key)

    is_first = not await _first_admin_exists(db)
    admin = await _insert_admin(db, data, is_first)
    if admin is None and is_first:
        # Another signup became the first admin after the check above.
        is_first = False
        admin = await _insert_admin(db, data, is_first)
    if admin is None:
        await db.rollback()
        raise Conflict("Email or phone is already registered")

    email_code = await issue_code(db, admin.id, OtpPurpose.EMAIL_VERIFY, policy.verify_ttl)
    sms_code = None
    if admin.phone:
        sms_code = await issue_code(db, admin.id, OtpPurpose.SMS_VERIFY, policy.verify_ttl)
    await db.commit()
    logger.info("Admin signup: admin=%s first_admin=%s status=%s", admin.id, is_first, admin.status.value)

    await _send_pair(admin.email, admin.phone, "Admin Signup OTP", email_code, sms_code, "verification")
    return admin


async def verify_admin_signup(
    db: AsyncSession,
    admin_id: int,
    email_code: str,
    sms_code: str | None,
) -> Admin:
    """Confirm the signup codes (email only when no phone was given).

    Status is untouched: approval, not OTP, activates later admins.
    """
    admin = await get_admin(db, admin_id)
    if admin is None:
        raise InvalidCode(INVALID_CODES)
    if admin.phone:
        await _consume_pair(
            db, admin_id, email_code, sms_code, OtpPurpose.EMAIL_VERIFY, OtpPurpose.SMS_VERIFY
        )
    elif not await consume_code(db, admin_id, email_code, OtpPurpose.EMAIL_VERIFY):
        raise InvalidCode(INVALID_CODE)
    await purge_codes(db, admin_id)
    await db.commit()
    return admin


async def start_admin_login(db: AsyncSession, email: str, access_key: str, policy: OtpPolicy) -> Admin:
    """Admins authenticate with email + access key, then an email-only challenge."""
    result = await db.execute(select(Admin).where(Admin.email == email))
    admin = result.scalar_one_or_none()
    if admin is None or not secrets.compare_digest(admin.admin_access_key or "", access_key):
        raise AuthenticationFailed("Invalid admin credentials")
    if admin.status != AccountStatus.ACTIVE:
        raise AccountNotActive("Admin access is blocked or pending approval")

    code = await issue_code(db, admin.id, OtpPurpose.LOGIN_EMAIL, policy.verify_ttl)
    await db.commit()
    await send_email(admin.email, "Admin Login OTP", f"Your login OTP is {code}")
    return admin


async def complete_admin_login(db: AsyncSession, admin_id: int, email_code: str) -> SessionGrant:
    admin = await get_admin(db, admin_id)
    if admin is None:
        raise InvalidCode(INVALID_CODE)
    if admin.status != AccountStatus.ACTIVE:
        raise AccountNotActive("Admin access is blocked or pending approval")
    if not await consume_code(db, admin_id, email_code, OtpPurpose.LOGIN_EMAIL):
        raise InvalidCode(INVALID_CODE)
    await purge_codes(db, admin_id)
    await db.commit()
    token = create_access_token(admin.id, Role.ADMIN.value)
    logger.info("Admin session granted: admin=%s", admin.id)
    return SessionGrant(account=admin, token=token)


async def approve_admin(db: AsyncSession, requester_id: int, target_admin_id: int) -> Admin:
    """First admin activates a pending admin. No fresh OTP is needed."""
    requester = await get_admin(db, requester_id)
    if requester is None or not requester.is_first_admin:
        raise Forbidden("Only the First Admin can approve other admins")
    target = await get_admin(db, target_admin_id)
    if target is None:
        raise NotFound("Admin not found")
    if target.status != AccountStatus.PENDING_APPROVAL:
        raise ValidationFailed("Admin is not awaiting approval")
    target.status = AccountStatus.ACTIVE
    await db.commit()
    logger.info("Admin %s approved by %s", target.id, requester.id)
    return target


async def forgot_admin_password(db: AsyncSession, email: str, policy: OtpPolicy) -> Admin:
    result = await db.execute(select(Admin).where(Admin.email == email))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise NotFound("Admin not found")
    code = await issue_code(db, admin.id, OtpPurpose.FORGOT_PASSWORD, policy.reset_ttl)
    await db.commit()
    await send_email(admin.email, "Admin Password Reset OTP", f"Your password reset OTP is {code}")
    return admin


async def reset_admin_password(
    db: AsyncSession,
    admin_id: int,
    code: str,
    new_password: str,
    confirm_password: str,
) -> None:
    _require_matching(new_password, confirm_password)
    await _reset(db, await get_admin(db, admin_id), code, new_password)
