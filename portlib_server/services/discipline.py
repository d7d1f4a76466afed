# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Warnings and suspensions.

Issuing a warning inserts the row and bumps the account counter in the same
transaction. The counter bump and the threshold check are one UPDATE whose
SET expressions all read the row as it is under the write lock, so concurrent
warnings against one account are all counted and the one that reaches the
threshold always suspends.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import DateTime, Text, case, literal, true, update
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.config import Settings, settings
from portlib_server.errors import NotFound, ValidationFailed
from portlib_server.models import Account, AccountWarning, WarningType
from portlib_server.models.timestamp import utcnow
from portlib_server.services.email import send_email

logger = logging.getLogger(__name__)

DEFAULT_SUSPENSION_REASON = "Suspended by admin"
MAX_SUSPENSION_DAYS = 3650


@dataclass(frozen=True)
class SuspensionPolicy:
    threshold: int = 3
    auto_suspension_days: int = 30
    default_manual_days: int = 30

    @classmethod
    def from_settings(cls, s: Settings) -> "SuspensionPolicy":
        return cls(
            threshold=s.warning_suspension_threshold,
            auto_suspension_days=s.auto_suspension_days,
            default_manual_days=s.default_suspension_days,
        )

    @property
    def auto_reason(self) -> str:
        return f"Automatically suspended after reaching {self.threshold} warnings"


def get_suspension_policy() -> SuspensionPolicy:
    """FastAPI dependency."""
    return SuspensionPolicy.from_settings(settings)


@dataclass
class WarningOutcome:
    warning: AccountWarning
    warning_count: int
    suspended: bool


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def warning_email_body(
    warning_type: WarningType,
    description: str,
    count: int,
    policy: SuspensionPolicy,
) -> str:
    if count >= policy.threshold:
        notice = (
            f"\n\nIMPORTANT: This is your {_ordinal(count)} warning. Your account has been "
            f"automatically suspended for {policy.auto_suspension_days} days."
        )
    elif count == policy.threshold - 1:
        notice = (
            f"\n\nWARNING: This is your {_ordinal(count)} warning. One more warning will result "
            "in automatic account suspension."
        )
    else:
        notice = ""
    return (
        "Dear User,\n\n"
        f"You have received a warning for: {warning_type.label}\n\n"
        f"Details: {description}\n\n"
        f"This is warning #{count} on your account.{notice}\n\n"
        "Please take this seriously and ensure compliance with library rules.\n\n"
        "Best regards,\nPortLib Library Management"
    )


async def issue_warning(
    db: AsyncSession,
    user_id: int,
    admin_id: int | None,
    warning_type: WarningType | str,
    description: str,
    policy: SuspensionPolicy,
) -> WarningOutcome:
    """Record a warning, count it and suspend the account once the threshold is reached."""
    try:
        warning_type = WarningType(warning_type)
    except ValueError:
        raise ValidationFailed("Invalid warning type")
    description = (description or "").strip()
    if not description:
        raise ValidationFailed("user_id, type, and description are required")

    account = await db.get(Account, user_id)
    if account is None:
        raise NotFound("User not found")
    email = account.email

    warning = AccountWarning(
        user_id=user_id,
        admin_id=admin_id,
        type=warning_type,
        description=description,
        is_read=False,
    )
    db.add(warning)
    await db.flush()

    reaches_threshold = Account.warning_count + 1 >= policy.threshold
    until = utcnow() + timedelta(days=policy.auto_suspension_days)
    result = await db.execute(
        update(Account)
        .where(Account.id == user_id)
        .values(
            warning_count=Account.warning_count + 1,
            is_suspended=case((reaches_threshold, true()), else_=Account.is_suspended),
            suspended_until=case(
                (reaches_threshold, literal(until, DateTime(timezone=True))),
                else_=Account.suspended_until,
            ),
            suspended_reason=case(
                (reaches_threshold, literal(policy.auto_reason, Text)),
                else_=Account.suspended_reason,
            ),
        )
        .returning(Account.warning_count, Account.is_suspended)
        .execution_options(synchronize_session=False)
    )
    count, suspended = result.one()
    await db.commit()
    await db.refresh(account)
    await db.refresh(warning)

    if count >= policy.threshold:
        logger.info("Account %s auto-suspended at %s warnings", user_id, count)
    else:
        logger.info("Warning %s issued to account %s (%s total)", warning.id, user_id, count)

    await send_email(
        email,
        f"Library Warning: {warning_type.label}",
        warning_email_body(warning_type, description, count, policy),
    )
    return WarningOutcome(warning=warning, warning_count=count, suspended=bool(suspended))


async def suspend(
    db: AsyncSession,
    user_id: int,
    reason: str | None,
    duration_days: int | None,
    policy: SuspensionPolicy,
) -> datetime:
    """Manual suspension. Re-suspending overwrites the window. Returns suspended_until."""
    days = policy.default_manual_days if duration_days is None else duration_days
    if days <= 0:
        raise ValidationFailed("duration_days must be a positive number")
    if days > MAX_SUSPENSION_DAYS:
        raise ValidationFailed(f"duration_days must be at most {MAX_SUSPENSION_DAYS}")
    account = await db.get(Account, user_id)
    if account is None:
        raise NotFound("User not found")
    until = utcnow() + timedelta(days=days)
    account.is_suspended = True
    account.suspended_until = until
    account.suspended_reason = (reason or "").strip() or DEFAULT_SUSPENSION_REASON
    await db.commit()
    logger.info("Account %s suspended until %s", user_id, until.isoformat())
    return until


async def unsuspend(db: AsyncSession, user_id: int) -> Account:
    """Lift a suspension. warning_count is left as is."""
    account = await db.get(Account, user_id)
    if account is None:
        raise NotFound("User not found")
    account.is_suspended = False
    account.suspended_until = None
    account.suspended_reason = None
    await db.commit()
    logger.info("Account %s suspension lifted", user_id)
    return account


async def mark_warning_read(db: AsyncSession, warning_id: int) -> AccountWarning:
    warning = await db.get(AccountWarning, warning_id)
    if warning is None:
        raise NotFound("Warning not found")
    warning.is_read = True
    await db.commit()
    return warning
