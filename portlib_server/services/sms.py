# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""SMS sending service (Twilio REST API). Logs to console when Twilio not configured."""

import logging

import httpx

from portlib_server.config import settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def _configured() -> bool:
    return bool(settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number)


async def send_sms(to: str, body: str) -> None:
    """Send an SMS. Failures are logged, never raised."""
    if not _configured():
        logger.info("SMS (Twilio not configured): To=%s Body=%s", to, body[:160])
        return
    url = f"{TWILIO_API_BASE}/Accounts/{settings.twilio_account_sid}/Messages.json"
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                url,
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
                data={"To": to, "From": settings.twilio_from_number, "Body": body},
            )
            response.raise_for_status()
    except Exception as e:
        logger.exception("Failed to send SMS: %s", e)
