# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Student and librarian authentication routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.api.schemas import (
    AccountResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginChallengeResponse,
    MessageResponse,
    ResetPasswordRequest,
    SessionUser,
    SignupResponse,
    UserLogin,
    UserSessionResponse,
    UserSignup,
    VerifyOTPRequest,
)
from portlib_server.auth import Principal, get_current_principal
from portlib_server.database import get_db
from portlib_server.errors import NotFound
from portlib_server.models import Account
from portlib_server.rate_limit import rate_limit_auth_dep
from portlib_server.services import verification
from portlib_server.services.otp import OtpPolicy, get_otp_policy

router = APIRouter(prefix="/auth/user", tags=["auth-user"], dependencies=[Depends(rate_limit_auth_dep)])


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: UserSignup,
    db: AsyncSession = Depends(get_db),
    policy: OtpPolicy = Depends(get_otp_policy),
) -> SignupResponse:
    """Register a student or librarian. OTPs go to both email and phone."""
    account = await verification.signup_user(db, data, policy)
    return SignupResponse(
        message="Signup successful. Please verify OTPs sent to your email and phone.",
        user_id=account.id,
    )


@router.post("/verify-otp", response_model=MessageResponse)
async def verify_otp(
    data: VerifyOTPRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await verification.verify_signup(db, data.user_id, data.email_otp, data.sms_otp)
    return MessageResponse(message="Account verified successfully")


@router.post("/login", response_model=LoginChallengeResponse)
async def login(
    data: UserLogin,
    db: AsyncSession = Depends(get_db),
    policy: OtpPolicy = Depends(get_otp_policy),
) -> LoginChallengeResponse:
    """Check student_id/employee_id + password, then send login OTPs."""
    account = await verification.start_login(db, data.identifier, data.password, data.role, policy)
    return LoginChallengeResponse(message="OTP sent for login verification", user_id=account.id)


@router.post("/verify-login-otp", response_model=UserSessionResponse)
async def verify_login_otp(
    data: VerifyOTPRequest,
    db: AsyncSession = Depends(get_db),
) -> UserSessionResponse:
    grant = await verification.complete_login(db, data.user_id, data.email_otp, data.sms_otp)
    account = grant.account
    return UserSessionResponse(
        message="Login successful",
        token=grant.token,
        user=SessionUser(id=account.id, email=account.email, role=account.role),
    )


@router.post("/forgot-password", response_model=ForgotPasswordResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    policy: OtpPolicy = Depends(get_otp_policy),
) -> ForgotPasswordResponse:
    account = await verification.forgot_password(db, data.email, data.role, policy)
    return ForgotPasswordResponse(message="Password reset OTP sent to email", user_id=account.id)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await verification.reset_password(
        db, data.user_id, data.otp, data.new_password, data.confirm_password
    )
    return MessageResponse(message="Password reset successful")


@router.get("/me", response_model=AccountResponse)
async def get_me(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> AccountResponse:
    """Get current account profile, including warning and suspension state."""
    account = await db.get(Account, principal.id)
    if not account:
        raise NotFound("User not found")
    return AccountResponse.from_account(account)
