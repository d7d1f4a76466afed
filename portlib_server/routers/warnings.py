# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Warnings API - issue, list, mark read. Requires admin or librarian."""

import math

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.api.schemas import (
    MessageResponse,
    Pagination,
    SendWarningResponse,
    UserWarningsResponse,
    WarningCreate,
    WarningIssuer,
    WarningListItem,
    WarningListResponse,
    WarningResponse,
    WarningTarget,
)
from portlib_server.auth import Principal, require_staff
from portlib_server.database import get_db
from portlib_server.errors import NotFound, ValidationFailed
from portlib_server.models import Account, AccountWarning, WarningType
from portlib_server.services import discipline
from portlib_server.services.discipline import SuspensionPolicy, get_suspension_policy

router = APIRouter(prefix="/warnings", tags=["warnings"])

accounts_table = Account.__table__
target = accounts_table.alias("target")
issuer = accounts_table.alias("issuer")


def _listing_query():
    """Warnings joined with the warned account and, when still present, the issuer."""
    return (
        select(
            AccountWarning,
            target.c.email.label("target_email"),
            target.c.role.label("target_role"),
            target.c.student_id.label("target_student_id"),
            target.c.employee_id.label("target_employee_id"),
            issuer.c.id.label("issuer_id"),
            issuer.c.email.label("issuer_email"),
        )
        .join(target, target.c.id == AccountWarning.user_id)
        .outerjoin(issuer, issuer.c.id == AccountWarning.admin_id)
        .order_by(AccountWarning.created_at.desc(), AccountWarning.id.desc())
    )


def _list_item(row) -> WarningListItem:
    warning = row[0]
    return WarningListItem(
        **WarningResponse.model_validate(warning).model_dump(),
        user=WarningTarget(
            id=warning.user_id,
            email=row.target_email,
            role=row.target_role,
            student_id=row.target_student_id,
            employee_id=row.target_employee_id,
        ),
        admin=WarningIssuer(id=row.issuer_id, email=row.issuer_email) if row.issuer_id is not None else None,
    )


@router.get("", response_model=WarningListResponse)
async def list_warnings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: str | None = None,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> WarningListResponse:
    conditions = []
    if type:
        try:
            conditions.append(AccountWarning.type == WarningType(type))
        except ValueError:
            raise ValidationFailed("Invalid warning type")
    total = await db.scalar(
        select(func.count()).select_from(AccountWarning).where(*conditions)
    ) or 0
    result = await db.execute(
        _listing_query()
        .where(*conditions)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return WarningListResponse(
        warnings=[_list_item(row) for row in result.all()],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


@router.get("/user/{user_id}", response_model=UserWarningsResponse)
async def list_user_warnings(
    user_id: int,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> UserWarningsResponse:
    account = await db.get(Account, user_id)
    if not account:
        raise NotFound("User not found")
    result = await db.execute(_listing_query().where(AccountWarning.user_id == user_id))
    return UserWarningsResponse(
        warnings=[_list_item(row) for row in result.all()],
        warning_count=account.warning_count,
        is_suspended=account.suspension_active(),
    )


@router.post("", response_model=SendWarningResponse, status_code=status.HTTP_201_CREATED)
async def send_warning(
    data: WarningCreate,
    staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    policy: SuspensionPolicy = Depends(get_suspension_policy),
) -> SendWarningResponse:
    """Issue a warning. Reaching the threshold suspends the account automatically."""
    outcome = await discipline.issue_warning(
        db, data.user_id, staff.id, data.type, data.description, policy
    )
    return SendWarningResponse(
        message="Warning sent successfully",
        warning=WarningResponse.model_validate(outcome.warning),
        user_warning_count=outcome.warning_count,
        user_suspended=outcome.suspended,
    )


@router.patch("/{warning_id}/read", response_model=MessageResponse)
async def mark_as_read(
    warning_id: int,
    _staff: Principal = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await discipline.mark_warning_read(db, warning_id)
    return MessageResponse(message="Warning marked as read")
