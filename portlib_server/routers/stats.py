# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Dashboard statistics. Requires admin or librarian."""

from fastapi import APIRouter, Depends
from sqlalchemy import func, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.auth import Principal, require_staff
from portlib_server.database import get_db
from portlib_server.models import Account, AccountStatus, AccountWarning, Role
from portlib_server.models.account import suspension_active_clause
from portlib_server.models.timestamp import utcnow

router = APIRouter(prefix="/stats", tags=["stats"])

MEMBER_ROLES = (Role.STUDENT.value, Role.LIBRARIAN.value)


@router.get("/dashboard")
async def get_dashboard_stats(
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Account and warning counters plus the five most recent warnings and users."""
    now = utcnow()
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    active_users = await db.scalar(
        select(func.count()).select_from(Account).where(
            Account.role.in_(MEMBER_ROLES),
            Account.status == AccountStatus.ACTIVE,
            not_(suspension_active_clause(now)),
        )
    ) or 0
    suspended_users = await db.scalar(
        select(func.count()).select_from(Account).where(suspension_active_clause(now))
    ) or 0
    pending_warnings = await db.scalar(
        select(func.count()).select_from(AccountWarning).where(AccountWarning.is_read.is_(False))
    ) or 0
    warnings_this_month = await db.scalar(
        select(func.count()).select_from(AccountWarning).where(AccountWarning.created_at >= start_of_month)
    ) or 0
    role_counts = dict(
        (await db.execute(
            select(Account.role, func.count())
            .where(Account.role.in_(MEMBER_ROLES))
            .group_by(Account.role)
        )).all()
    )

    recent_warnings = await db.execute(
        select(AccountWarning.id, AccountWarning.type, AccountWarning.created_at, Account.email, Account.role)
        .join(Account, Account.id == AccountWarning.user_id)
        .order_by(AccountWarning.created_at.desc(), AccountWarning.id.desc())
        .limit(5)
    )
    recent_users = await db.execute(
        select(Account.id, Account.email, Account.role, Account.created_at)
        .where(Account.role.in_(MEMBER_ROLES))
        .order_by(Account.created_at.desc(), Account.id.desc())
        .limit(5)
    )
    return {
        "stats": {
            "activeUsers": active_users,
            "suspendedUsers": suspended_users,
            "pendingWarnings": pending_warnings,
            "warningsThisMonth": warnings_this_month,
            "students": role_counts.get(Role.STUDENT.value, 0),
            "librarians": role_counts.get(Role.LIBRARIAN.value, 0),
        },
        "recentWarnings": [
            {
                "id": w.id,
                "type": w.type.value,
                "created_at": w.created_at.isoformat() if w.created_at else None,
                "user": {"email": w.email, "role": w.role},
            }
            for w in recent_warnings
        ],
        "recentUsers": [
            {
                "id": u.id,
                "email": u.email,
                "role": u.role,
                "created_at": u.created_at.isoformat() if u.created_at else None,
            }
            for u in recent_users
        ],
    }
