# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Account lookups and removal shared by the auth and admin routers."""

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.models import Account, AccountWarning, Admin, OneTimeCode, Role


async def get_member(db: AsyncSession, account_id: int) -> Account | None:
    """Load a student or librarian account. Admin ids resolve to None."""
    result = await db.execute(
        select(Account).where(Account.id == account_id, Account.role != Role.ADMIN.value)
    )
    return result.scalar_one_or_none()


async def get_admin(db: AsyncSession, admin_id: int) -> Admin | None:
    result = await db.execute(select(Admin).where(Admin.id == admin_id))
    return result.scalar_one_or_none()


async def delete_account(db: AsyncSession, account_id: int) -> None:
    """Delete an account with its codes and received warnings. Caller commits."""
    await db.execute(
        delete(OneTimeCode)
        .where(OneTimeCode.account_id == account_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(AccountWarning)
        .where(AccountWarning.user_id == account_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(AccountWarning)
        .where(AccountWarning.admin_id == account_id)
        .values(admin_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Account)
        .where(Account.id == account_id)
        .execution_options(synchronize_session=False)
    )
