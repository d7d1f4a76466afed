# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Email sending service. Logs to console when SMTP not configured."""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from portlib_server.config import settings

logger = logging.getLogger(__name__)


def wrap_body_html(plain_body: str) -> str:
    """Wrap plain text body in minimal HTML."""
    body_escaped = plain_body.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace("\n", "<br>\n")
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: system-ui, sans-serif; color: #333; max-width: 560px;">
<h2 style="color: #1e3a8a;">PortLib</h2>
<div style="white-space: pre-wrap;">{body_escaped}</div>
</body>
</html>"""


def _build_message(to: str, subject: str, body: str, html: bool) -> MIMEText | MIMEMultipart:
    if html:
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(wrap_body_html(body), "html"))
    else:
        msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = f"PortLib Admin <{settings.smtp_from}>"
    msg["To"] = to
    return msg


def _deliver(to: str, msg: MIMEText | MIMEMultipart) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password or "")
        server.sendmail(settings.smtp_from, [to], msg.as_string())


async def send_email(to: str, subject: str, body: str, html: bool = True) -> None:
    """Send an email (plain and HTML). Failures are logged, never raised."""
    if settings.smtp_host and settings.smtp_user:
        try:
            msg = _build_message(to, subject, body, html)
            await asyncio.to_thread(_deliver, to, msg)
        except Exception as e:
            logger.exception("Failed to send email: %s", e)
    else:
        logger.info("Email (SMTP not configured): To=%s Subject=%s Body=%s", to, subject, body[:200])
