"""OTP delivery channel — hands a code to the outbound messaging service.

Codes for mobile numbers (and for email when no SMTP server is configured)
go to the remote OTP API at ``{otp_remote_base_url}/otp/send``.  With SMTP
configured, email codes are sent directly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import aiosmtplib
import httpx

from auth_gateway.config import Settings
from auth_gateway.models.records import ContactKind
from auth_gateway.services.email_service import EmailService

logger = logging.getLogger(__name__)


class OtpDeliveryChannel(ABC):
    """Delivers a code to a contact address; fallible and possibly slow."""

    @abstractmethod
    async def send(self, contact: str, kind: ContactKind, code: str, ttl_seconds: int) -> bool:
        """Return ``True`` if the code was handed over for delivery."""


class RemoteOtpChannel(OtpDeliveryChannel):
    """Async HTTP client for the remote OTP delivery API."""

    def __init__(
        self,
        settings: Settings,
        email_service: EmailService | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = settings.otp_remote_base_url.rstrip("/")
        self._timeout = settings.otp_request_timeout
        self._email = email_service
        self._transport = transport

    async def send(self, contact: str, kind: ContactKind, code: str, ttl_seconds: int) -> bool:
        if kind is ContactKind.EMAIL and self._email is not None and self._email.enabled:
            try:
                await self._email.send_otp(contact, code, ttl_seconds // 60)
            except (aiosmtplib.SMTPException, OSError) as exc:
                logger.exception("SMTP delivery to %s failed: %s", contact, exc)
                return False
            return True
        return await self._post(contact, kind, code)

    async def _post(self, contact: str, kind: ContactKind, code: str) -> bool:
        url = f"{self._base_url}/otp/send"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    url, json={"type": kind.value, "contact": contact, "otp": code}
                )
        except httpx.HTTPError as exc:
            logger.exception("OTP send request error: %s", exc)
            return False

        if not resp.is_success:
            logger.error("OTP send failed: %s %s", resp.status_code, resp.text)
            return False
        if not resp.content:
            return True
        try:
            data = resp.json()
        except ValueError:
            logger.error("OTP send returned a non-JSON body: %s", resp.text[:100])
            return False
        delivered = bool(data.get("success", True))
        logger.info("OTP send result for %s: %s", contact, data.get("message", delivered))
        return delivered
