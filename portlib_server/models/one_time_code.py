# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""One-time code model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portlib_server.models.base import Base, enum_column
from portlib_server.models.timestamp import TimestampMixin


class OtpPurpose(str, enum.Enum):
    EMAIL_VERIFY = "email_verify"
    SMS_VERIFY = "sms_verify"
    LOGIN_EMAIL = "login_email"
    LOGIN_SMS = "login_sms"
    FORGOT_PASSWORD = "forgot_password"


class OneTimeCode(Base, TimestampMixin):
    """Outstanding OTP challenge. Valid only for an exact (account, code, purpose) match before expires_at."""

    __tablename__ = "one_time_codes"
    __table_args__ = (
        Index("ix_one_time_codes_lookup", "account_id", "purpose", "code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    purpose: Mapped[OtpPurpose] = mapped_column(enum_column(OtpPurpose), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
