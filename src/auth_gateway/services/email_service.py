"""Email service — sends OTP codes via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from auth_gateway.config import Settings

logger = logging.getLogger(__name__)


class EmailService:
    """Sends transactional emails using the configured SMTP server."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self._settings.smtp_host)

    async def send_otp(self, to_email: str, code: str, ttl_minutes: int) -> None:
        """Send a one-time passcode.

        Parameters
        ----------
        to_email:
            Recipient email address.
        code:
            The 6-digit passcode.
        ttl_minutes:
            How long the code stays valid (quoted in the body).
        """
        settings = self._settings
        body = (
            "Hello,\n\n"
            f"Your {settings.app_name} verification code is {code}.\n"
            f"It expires in {ttl_minutes} minutes.\n\n"
            "If you did not request this code, you can ignore this email.\n"
        )

        msg = EmailMessage()
        msg["Subject"] = f"Your {settings.app_name} verification code"
        msg["From"] = settings.email_from
        msg["To"] = to_email
        msg.set_content(body)

        logger.info("Sending OTP email to %s", to_email)

        await aiosmtplib.send(
            msg,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
            start_tls=True,
        )

        logger.info("OTP email sent to %s", to_email)
