"""Forgot-password and change-password flows."""

from __future__ import annotations

import logging

from auth_gateway.database.repository import AccountRepository
from auth_gateway.errors import PasswordMismatch, UserNotFound
from auth_gateway.services.auth_flow import new_validation_token
from auth_gateway.services.otp_engine import OtpEngine
from auth_gateway.services.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)


class PasswordResetService:
    def __init__(self, accounts: AccountRepository, otp: OtpEngine) -> None:
        self._accounts = accounts
        self._otp = otp

    async def initiate(self, email: str) -> str:
        """Send a reset OTP to *email* and return the validation token."""
        account = await self._accounts.find(email=email)
        if account is None:
            logger.info("Password reset requested for unknown email %s", email)
            raise UserNotFound()

        validation_token = new_validation_token()
        await self._otp.issue_reset(validation_token, account.id, email)
        return validation_token

    async def validate_and_apply(
        self, validation_token: str, supplied_otp: str, new_password: str
    ) -> None:
        """Consume the reset OTP and set *new_password*.

        Possession of the OTP is the proof; the current password is not
        asked for.
        """
        account_id = await self._otp.verify_reset(validation_token, supplied_otp)
        await self.change_password(account_id, None, new_password, bypass_current_check=True)

    async def change_password(
        self,
        account_id: str,
        current_password: str | None,
        new_password: str,
        bypass_current_check: bool = False,
    ) -> None:
        account = await self._accounts.find(account_id=account_id)
        if account is None:
            raise UserNotFound()

        if not bypass_current_check and not await verify_password(
            current_password, account.password_hash
        ):
            logger.info("Change password rejected for account %s", account_id)
            raise PasswordMismatch("Incorrect old password")

        if await self._accounts.update_password(account_id, await hash_password(new_password)) is None:
            raise UserNotFound()
        logger.info("Password changed for account %s", account_id)
