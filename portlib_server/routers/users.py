# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""User management API - list, inspect, delete, suspend. Requires admin or librarian."""

import math
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.api.schemas import (
    AccountDetailResponse,
    AccountListResponse,
    AccountResponse,
    MessageResponse,
    Pagination,
    SuspendRequest,
    SuspendResponse,
    WarningResponse,
)
from portlib_server.auth import Principal, require_staff
from portlib_server.database import get_db
from portlib_server.errors import Forbidden, NotFound
from portlib_server.models import Account, AccountStatus, AccountWarning, Role
from portlib_server.models.account import suspension_active_clause
from portlib_server.models.timestamp import utcnow
from portlib_server.services import discipline
from portlib_server.services.accounts import delete_account
from portlib_server.services.discipline import SuspensionPolicy, get_suspension_policy

router = APIRouter(prefix="/users", tags=["users"])

MEMBER_ROLES = (Role.STUDENT.value, Role.LIBRARIAN.value)
accounts_table = Account.__table__


@router.get("", response_model=AccountListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = None,
    role: Literal["student", "librarian"] | None = None,
    status: Literal["active", "suspended"] | None = None,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> AccountListResponse:
    """List students and librarians, newest first."""
    now = utcnow()
    conditions = [Account.role.in_(MEMBER_ROLES)]
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Account.email.ilike(pattern),
                Account.phone.ilike(pattern),
                accounts_table.c.student_id.ilike(pattern),
                accounts_table.c.employee_id.ilike(pattern),
            )
        )
    if role:
        conditions.append(Account.role == role)
    if status == "suspended":
        conditions.append(suspension_active_clause(now))
    elif status == "active":
        conditions.append(Account.status == AccountStatus.ACTIVE)
        conditions.append(not_(suspension_active_clause(now)))

    total = await db.scalar(select(func.count()).select_from(Account).where(*conditions)) or 0
    result = await db.execute(
        select(Account)
        .where(*conditions)
        .order_by(Account.created_at.desc(), Account.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = result.scalars().all()
    return AccountListResponse(
        users=[AccountResponse.from_account(u) for u in users],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


@router.get("/{user_id}", response_model=AccountDetailResponse)
async def get_user(
    user_id: int,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> AccountDetailResponse:
    """Account details with its warnings, newest first."""
    account = await db.get(Account, user_id)
    if not account:
        raise NotFound("User not found")
    result = await db.execute(
        select(AccountWarning)
        .where(AccountWarning.user_id == user_id)
        .order_by(AccountWarning.created_at.desc(), AccountWarning.id.desc())
    )
    warnings = [WarningResponse.model_validate(w) for w in result.scalars().all()]
    return AccountDetailResponse(**AccountResponse.from_account(account).model_dump(), warnings=warnings)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    account = await db.get(Account, user_id)
    if not account:
        raise NotFound("User not found")
    if account.role == Role.ADMIN.value:
        raise Forbidden("Cannot delete admin users")
    await delete_account(db, user_id)
    await db.commit()
    return MessageResponse(message="User deleted successfully")


@router.post("/{user_id}/suspend", response_model=SuspendResponse)
async def suspend_user(
    user_id: int,
    data: SuspendRequest | None = None,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    policy: SuspensionPolicy = Depends(get_suspension_policy),
) -> SuspendResponse:
    data = data or SuspendRequest()
    until = await discipline.suspend(db, user_id, data.reason, data.duration_days, policy)
    return SuspendResponse(message="User suspended successfully", suspended_until=until)


@router.post("/{user_id}/unsuspend", response_model=MessageResponse)
async def unsuspend_user(
    user_id: int,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await discipline.unsuspend(db, user_id)
    return MessageResponse(message="User suspension lifted successfully")
