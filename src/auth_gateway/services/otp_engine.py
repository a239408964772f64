"""OTP engine — generates, stores, delivers and verifies one-time codes.

Login/signup codes are keyed by the contact address (``{contact}_otp``,
5 minutes).  Password-reset codes are keyed by the reset validation token
(``change_password_{token}``, 15 minutes) and remember the owning account.
Codes are single-use: a successful verification deletes the record, a
mismatch leaves it in place until it expires.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from enum import Enum

from auth_gateway.config import Settings
from auth_gateway.database.state_store import EphemeralStore
from auth_gateway.errors import (
    InvalidOtp,
    InvalidValidationId,
    OtpDeliveryFailed,
    RecordNotFound,
)
from auth_gateway.models.records import ContactKind, FlowKind, PasswordResetRecord
from auth_gateway.services.otp_delivery import OtpDeliveryChannel

logger = logging.getLogger(__name__)

LOGIN_OTP_TTL_SECONDS = 5 * 60
RESET_OTP_TTL_SECONDS = 15 * 60


class OtpCheck(str, Enum):
    VALID = "valid"
    MISMATCH = "mismatch"
    EXPIRED_OR_UNKNOWN = "expired_or_unknown"


def generate_otp() -> str:
    """Uniformly random 6-digit code, leading zeros kept."""
    return f"{secrets.randbelow(1_000_000):06d}"


def login_otp_key(contact: str) -> str:
    return f"{contact}_otp"


def reset_otp_key(validation_token: str) -> str:
    return f"change_password_{validation_token}"


class OtpEngine:
    def __init__(
        self, store: EphemeralStore, channel: OtpDeliveryChannel, settings: Settings
    ) -> None:
        self._store = store
        self._channel = channel
        self._require_email_login_otp = settings.require_email_login_otp
        # The bypass is never honoured in production, whatever the config says.
        self._bypass_code = None if settings.is_production else settings.otp_bypass_code
        if self._bypass_code:
            logger.warning("OTP bypass code is active (%s environment)", settings.app_env)

    def should_require_otp(self, flow: FlowKind, has_mobile: bool) -> bool:
        """OTP is mandatory for signups and for any account with a mobile number.

        Email-only logins skip it unless ``require_email_login_otp`` is set.
        """
        if flow is FlowKind.SIGNUP or has_mobile:
            return True
        return self._require_email_login_otp

    def is_bypass(self, supplied: str) -> bool:
        return bool(self._bypass_code) and hmac.compare_digest(
            supplied.encode("utf-8"), self._bypass_code.encode("utf-8")
        )

    def _matches(self, stored: str | None, supplied: str) -> bool:
        if self.is_bypass(supplied):
            return True
        return stored is not None and hmac.compare_digest(
            stored.encode("utf-8"), supplied.encode("utf-8")
        )

    # ── Login / signup ───────────────────────────────────

    async def issue(self, contact: str, kind: ContactKind) -> str:
        """Store a fresh code for *contact* and deliver it.

        Raises ``OtpDeliveryFailed`` when the channel reports failure; the
        stored code stays valid so a later resend can still succeed.
        """
        code = generate_otp()
        await self._store.set_with_expiry(login_otp_key(contact), LOGIN_OTP_TTL_SECONDS, code)
        if not await self._channel.send(contact, kind, code, LOGIN_OTP_TTL_SECONDS):
            raise OtpDeliveryFailed(f"{kind.value} OTP delivery to {contact} failed")
        logger.info("OTP issued to %s %s", kind.value.lower(), contact)
        return code

    async def check(self, contact: str, supplied: str) -> OtpCheck:
        """Compare *supplied* with the stored code without consuming it."""
        stored = await self._store.get_string(login_otp_key(contact))
        if self._matches(stored, supplied):
            return OtpCheck.VALID
        if stored is None:
            return OtpCheck.EXPIRED_OR_UNKNOWN
        return OtpCheck.MISMATCH

    async def consume(self, contact: str) -> bool:
        """Delete the code for *contact*; ``False`` if it was already gone."""
        return await self._store.pop(login_otp_key(contact)) is not None

    async def redeem(self, contact: str, supplied: str) -> bool:
        """Consume a code that already passed ``check``.

        Only the caller whose delete removes the record wins; a concurrent
        caller holding the same code gets ``False``.
        """
        if await self.consume(contact):
            return True
        return self.is_bypass(supplied)

    async def verify(self, contact: str, supplied: str) -> OtpCheck:
        """Check and, on success, consume the code in one call."""
        outcome = await self.check(contact, supplied)
        if outcome is not OtpCheck.VALID:
            logger.info("OTP rejected for %s (%s)", contact, outcome.value)
            return outcome
        if not await self.redeem(contact, supplied):
            # Another request consumed the same code first.
            return OtpCheck.EXPIRED_OR_UNKNOWN
        return OtpCheck.VALID

    # ── Password reset ───────────────────────────────────

    async def issue_reset(self, validation_token: str, account_id: str, email: str) -> str:
        """Issue a reset code scoped to *validation_token*.

        Delivery failure removes the record and fails the whole issuance.
        """
        code = generate_otp()
        key = reset_otp_key(validation_token)
        record = PasswordResetRecord(otp=code, account_id=account_id)
        await self._store.set_json(key, RESET_OTP_TTL_SECONDS, record)
        if not await self._channel.send(email, ContactKind.EMAIL, code, RESET_OTP_TTL_SECONDS):
            await self._store.delete(key)
            raise OtpDeliveryFailed(f"Password reset OTP delivery to {email} failed")
        logger.info("Password reset OTP issued for account %s", account_id)
        return code

    async def verify_reset(self, validation_token: str, supplied: str) -> str:
        """Consume a reset record and return the account id it belongs to."""
        key = reset_otp_key(validation_token)
        try:
            record = await self._store.get_json(key, PasswordResetRecord)
        except RecordNotFound:
            raise InvalidValidationId() from None

        if not self._matches(record.otp, supplied):
            logger.info("Password reset OTP mismatch for account %s", record.account_id)
            raise InvalidOtp()

        if await self._store.pop(key) is None:
            raise InvalidValidationId()
        return record.account_id
