# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""One-time codes: generation, issuance and single-use consumption."""

import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from portlib_server.config import Settings, settings
from portlib_server.models import OneTimeCode, OtpPurpose
from portlib_server.models.timestamp import utcnow

OTP_DIGITS = 6


@dataclass(frozen=True)
class OtpPolicy:
    """Validity windows for issued codes."""

    verify_ttl: timedelta = timedelta(minutes=10)
    reset_ttl: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, s: Settings) -> "OtpPolicy":
        return cls(
            verify_ttl=timedelta(minutes=s.otp_verify_minutes),
            reset_ttl=timedelta(minutes=s.otp_reset_minutes),
        )


def get_otp_policy() -> OtpPolicy:
    """FastAPI dependency."""
    return OtpPolicy.from_settings(settings)


def generate_otp() -> str:
    """Six decimal digits drawn uniformly (leading zeros kept)."""
    return "".join(secrets.choice("0123456789") for _ in range(OTP_DIGITS))


async def issue_code(
    db: AsyncSession,
    account_id: int,
    purpose: OtpPurpose,
    ttl: timedelta,
) -> str:
    """Store a fresh code for the account and return it. Caller commits."""
    code = generate_otp()
    db.add(
        OneTimeCode(
            account_id=account_id,
            code=code,
            purpose=purpose,
            expires_at=utcnow() + ttl,
        )
    )
    await db.flush()
    return code


async def consume_code(
    db: AsyncSession,
    account_id: int,
    code: str,
    purpose: OtpPurpose,
) -> bool:
    """Delete the matching unexpired code in one statement. True if a code was consumed.

    Match and delete happen together, so two racing requests cannot both
    consume the same code: the loser's DELETE finds no row.
    """
    if not code:
        return False
    result = await db.execute(
        delete(OneTimeCode)
        .where(
            OneTimeCode.account_id == account_id,
            OneTimeCode.code == code,
            OneTimeCode.purpose == purpose,
            OneTimeCode.expires_at > utcnow(),
        )
        .returning(OneTimeCode.id)
        .execution_options(synchronize_session=False)
    )
    return result.first() is not None


async def purge_codes(db: AsyncSession, account_id: int) -> None:
    """Remove every outstanding code for the account, whatever its purpose."""
    await db.execute(
        delete(OneTimeCode)
        .where(OneTimeCode.account_id == account_id)
        .execution_options(synchronize_session=False)
    )
