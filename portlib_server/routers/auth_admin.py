# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin authentication routes: key-gated signup, email-OTP login, first-admin approval."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.api.schemas import (
    AdminApproveRequest,
    AdminForgotPasswordRequest,
    AdminForgotPasswordResponse,
    AdminLogin,
    AdminLoginChallengeResponse,
    AdminResetPasswordRequest,
    AdminSessionResponse,
    AdminSignup,
    AdminSignupResponse,
    AdminVerifyLoginRequest,
    AdminVerifyOTPRequest,
    MessageResponse,
    SessionAdmin,
)
from portlib_server.auth import Principal, get_current_principal
from portlib_server.database import get_db
from portlib_server.errors import Forbidden
from portlib_server.rate_limit import rate_limit_auth_dep
from portlib_server.services import verification
from portlib_server.services.otp import OtpPolicy, get_otp_policy

router = APIRouter(prefix="/auth/admin", tags=["auth-admin"], dependencies=[Depends(rate_limit_auth_dep)])


@router.post("/signup", response_model=AdminSignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: AdminSignup,
    db: AsyncSession = Depends(get_db),
    policy: OtpPolicy = Depends(get_otp_policy),
) -> AdminSignupResponse:
    admin = await verification.signup_admin(db, data, policy)
    if admin.is_first_admin:
        message = "First admin created. Please verify OTP."
    else:
        message = "Admin signup successful. Awaiting approval from First Admin."
    return AdminSignupResponse(message=message, admin_id=admin.id)


@router.post("/verify-otp", response_model=MessageResponse)
async def verify_otp(
    data: AdminVerifyOTPRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await verification.verify_admin_signup(db, data.admin_id, data.email_otp, data.sms_otp)
    return MessageResponse(message="OTPs verified successfully")


@router.post("/login", response_model=AdminLoginChallengeResponse)
async def login(
    data: AdminLogin,
    db: AsyncSession = Depends(get_db),
    policy: OtpPolicy = Depends(get_otp_policy),
) -> AdminLoginChallengeResponse:
    admin = await verification.start_admin_login(db, data.email, data.admin_access_key, policy)
    return AdminLoginChallengeResponse(message="OTP sent for login verification", admin_id=admin.id)


@router.post("/verify-login-otp", response_model=AdminSessionResponse)
async def verify_login_otp(
    data: AdminVerifyLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AdminSessionResponse:
    grant = await verification.complete_admin_login(db, data.admin_id, data.email_otp)
    return AdminSessionResponse(
        message="Admin login successful",
        token=grant.token,
        admin=SessionAdmin(id=grant.account.id, email=grant.account.email),
    )


@router.post("/approve", response_model=MessageResponse)
async def approve(
    data: AdminApproveRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """First admin approves a pending admin. The bearer must be the requester."""
    if principal.role != "admin" or principal.id != data.requester_id:
        raise Forbidden("Only the First Admin can approve other admins")
    await verification.approve_admin(db, data.requester_id, data.target_admin_id)
    return MessageResponse(message="Admin approved successfully")


@router.post("/forgot-password", response_model=AdminForgotPasswordResponse)
async def forgot_password(
    data: AdminForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    policy: OtpPolicy = Depends(get_otp_policy),
) -> AdminForgotPasswordResponse:
    admin = await verification.forgot_admin_password(db, data.email, policy)
    return AdminForgotPasswordResponse(message="Password reset OTP sent to email", admin_id=admin.id)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: AdminResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await verification.reset_admin_password(
        db, data.admin_id, data.otp, data.new_password, data.confirm_password
    )
    return MessageResponse(message="Admin password reset successful")
