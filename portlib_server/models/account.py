# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Account models: one table, one mapped class per role."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, ColumnElement, DateTime, Index, Integer, String, Text, and_, or_
from sqlalchemy.orm import Mapped, mapped_column

from portlib_server.models.base import Base, enum_column
from portlib_server.models.timestamp import TimestampMixin, as_utc, utcnow


class AccountStatus(str, enum.Enum):
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    BLOCKED = "blocked"


class Role(str, enum.Enum):
    STUDENT = "student"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


class Account(Base, TimestampMixin):
    """Identity shared by every role. Role-specific columns live on the subclasses."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[AccountStatus] = mapped_column(
        enum_column(AccountStatus), default=AccountStatus.PENDING, nullable=False
    )
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    suspended_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    suspended_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    warning_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __mapper_args__ = {"polymorphic_on": "role", "with_polymorphic": "*"}

    @property
    def role_identifier(self) -> str | None:
        """student_id or employee_id, depending on role."""
        return None

    def suspension_active(self, now: datetime | None = None) -> bool:
        """True while suspended and the suspension window has not yet elapsed."""
        if not self.is_suspended:
            return False
        if self.suspended_until is None:
            return True
        return as_utc(self.suspended_until) > (now or utcnow())


class Student(Account):
    student_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    __mapper_args__ = {"polymorphic_identity": Role.STUDENT.value}

    @property
    def role_identifier(self) -> str | None:
        return self.student_id


class Librarian(Account):
    employee_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    __mapper_args__ = {"polymorphic_identity": Role.LIBRARIAN.value}

    @property
    def role_identifier(self) -> str | None:
        return self.employee_id


class Admin(Account):
    """Administrator. Logs in with email + access key instead of a password."""

    admin_access_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_first_admin: Mapped[bool | None] = mapped_column(Boolean, default=False, nullable=True)

    __mapper_args__ = {"polymorphic_identity": Role.ADMIN.value}


# At most one first admin; concurrent bootstrap signups rely on it.
Index(
    "uq_accounts_first_admin",
    Account.__table__.c.is_first_admin,
    unique=True,
    postgresql_where=Account.__table__.c.is_first_admin.is_(True),
    sqlite_where=Account.__table__.c.is_first_admin.is_(True),
)


ACCOUNT_CLASSES: dict[str, type[Account]] = {
    Role.STUDENT.value: Student,
    Role.LIBRARIAN.value: Librarian,
    Role.ADMIN.value: Admin,
}


def suspension_active_clause(now: datetime | None = None) -> ColumnElement[bool]:
    """SQL counterpart of Account.suspension_active()."""
    now = now or utcnow()
    return and_(
        Account.is_suspended.is_(True),
        or_(Account.suspended_until.is_(None), Account.suspended_until > now),
    )
