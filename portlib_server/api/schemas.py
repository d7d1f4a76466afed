# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from portlib_server.models import Account, WarningType
from portlib_server.services.discipline import MAX_SUSPENSION_DAYS


class CamelModel(BaseModel):
    """Accepts and emits the camelCase field names the clients use."""

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    message: str


# User auth
class UserSignup(BaseModel):
    role: Literal["student", "librarian"]
    email: EmailStr
    phone: str = Field(min_length=1, max_length=32)
    password: str = Field(min_length=1)
    confirm_password: str
    student_id: str | None = None
    employee_id: str | None = None

    @property
    def role_identifier(self) -> str | None:
        value = self.student_id if self.role == "student" else self.employee_id
        return value.strip() if value else None


class SignupResponse(CamelModel):
    message: str
    user_id: int = Field(alias="userId")


class VerifyOTPRequest(CamelModel):
    user_id: int = Field(alias="userId")
    email_otp: str = Field(alias="emailOTP")
    sms_otp: str = Field(alias="smsOTP")


class UserLogin(BaseModel):
    identifier: str
    password: str
    role: Literal["student", "librarian"]


class LoginChallengeResponse(CamelModel):
    message: str
    user_id: int = Field(alias="userId")


class SessionUser(BaseModel):
    id: int
    email: str
    role: str


class UserSessionResponse(BaseModel):
    message: str
    token: str
    user: SessionUser


class ForgotPasswordRequest(BaseModel):
    email: EmailStr
    role: Literal["student", "librarian"]


class ForgotPasswordResponse(CamelModel):
    message: str
    user_id: int = Field(alias="userId")


class ResetPasswordRequest(CamelModel):
    user_id: int = Field(alias="userId")
    otp: str
    new_password: str = Field(alias="newPassword", min_length=1)
    confirm_password: str = Field(alias="confirmPassword")


# Admin auth
class AdminSignup(BaseModel):
    admin_key: str = Field(min_length=1)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=32)
    password: str = Field(min_length=1)
    confirm_password: str


class AdminSignupResponse(CamelModel):
    message: str
    admin_id: int = Field(alias="adminId")


class AdminVerifyOTPRequest(CamelModel):
    admin_id: int = Field(alias="adminId")
    email_otp: str = Field(alias="emailOTP")
    # Admins who signed up without a phone only receive the email code.
    sms_otp: str | None = Field(default=None, alias="smsOTP")


class AdminLogin(BaseModel):
    admin_access_key: str
    email: EmailStr


class AdminLoginChallengeResponse(CamelModel):
    message: str
    admin_id: int = Field(alias="adminId")


class AdminVerifyLoginRequest(CamelModel):
    admin_id: int = Field(alias="adminId")
    email_otp: str = Field(alias="emailOTP")


class SessionAdmin(BaseModel):
    id: int
    email: str


class AdminSessionResponse(BaseModel):
    message: str
    token: str
    admin: SessionAdmin


class AdminApproveRequest(CamelModel):
    requester_id: int = Field(alias="requesterId")
    target_admin_id: int = Field(alias="targetAdminId")


class AdminForgotPasswordRequest(BaseModel):
    email: EmailStr


class AdminForgotPasswordResponse(CamelModel):
    message: str
    admin_id: int = Field(alias="adminId")


class AdminResetPasswordRequest(CamelModel):
    admin_id: int = Field(alias="adminId")
    otp: str
    new_password: str = Field(alias="newPassword", min_length=1)
    confirm_password: str = Field(alias="confirmPassword")


# Accounts
class AccountResponse(BaseModel):
    id: int
    email: str
    phone: str | None = None
    role: str
    status: str
    student_id: str | None = None
    employee_id: str | None = None
    warning_count: int
    is_suspended: bool
    suspension_active: bool
    suspended_until: datetime | None = None
    suspended_reason: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            phone=account.phone,
            role=account.role,
            status=account.status.value,
            student_id=getattr(account, "student_id", None),
            employee_id=getattr(account, "employee_id", None),
            warning_count=account.warning_count,
            is_suspended=account.is_suspended,
            suspension_active=account.suspension_active(),
            suspended_until=account.suspended_until,
            suspended_reason=account.suspended_reason,
            created_at=account.created_at,
        )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")


class AccountListResponse(BaseModel):
    users: list[AccountResponse]
    pagination: Pagination


class SuspendRequest(BaseModel):
    reason: str | None = None
    duration_days: int | None = Field(default=None, gt=0, le=MAX_SUSPENSION_DAYS)


class SuspendResponse(BaseModel):
    message: str
    suspended_until: datetime


# Warnings
class WarningCreate(BaseModel):
    user_id: int
    type: str
    description: str


class WarningResponse(BaseModel):
    id: int
    user_id: int
    admin_id: int | None = None
    type: WarningType
    description: str
    is_read: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SendWarningResponse(CamelModel):
    message: str
    warning: WarningResponse
    user_warning_count: int = Field(alias="userWarningCount")
    user_suspended: bool = Field(alias="userSuspended")


class AccountDetailResponse(AccountResponse):
    warnings: list[WarningResponse] = []


class WarningTarget(BaseModel):
    id: int
    email: str
    role: str
    student_id: str | None = None
    employee_id: str | None = None


class WarningIssuer(BaseModel):
    id: int
    email: str


class WarningListItem(WarningResponse):
    """Warning with the warned account and the issuing staff member inlined."""

    user: WarningTarget | None = None
    admin: WarningIssuer | None = None


class WarningListResponse(BaseModel):
    warnings: list[WarningListItem]
    pagination: Pagination


class UserWarningsResponse(CamelModel):
    warnings: list[WarningListItem]
    warning_count: int = Field(alias="warningCount")
    is_suspended: bool = Field(alias="isSuspended")
