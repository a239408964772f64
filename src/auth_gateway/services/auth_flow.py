"""Signup/login orchestrator — the OTP-gated path from request to tokens.

Flow
----
1. ``begin_flow`` checks preconditions against the credential store, stages
   a ``PendingIdentity`` under a fresh validation token (15 minutes) and
   queues OTP delivery in the background.
2. ``complete_flow`` verifies the OTP, consumes the pending identity
   exactly once, creates the account for signups and issues a token pair.
3. ``resend_otp`` issues a new code for a still-pending attempt.
"""

from __future__ import annotations

import logging
import uuid

from auth_gateway.database.repository import AccountRepository
from auth_gateway.database.state_store import EphemeralStore
from auth_gateway.errors import (
    EmailMobileEmpty,
    InvalidOtp,
    InvalidValidationId,
    PasswordMismatch,
    RecordNotFound,
    UserAlreadyExists,
    UserContactMissing,
    UserNotFound,
)
from auth_gateway.models.records import (
    AccountSnapshot,
    ContactKind,
    FlowKind,
    PendingIdentity,
    TokenPair,
)
from auth_gateway.services.dispatcher import BackgroundDispatcher
from auth_gateway.services.otp_engine import OtpCheck, OtpEngine
from auth_gateway.services.passwords import hash_password, verify_password
from auth_gateway.services.token_engine import TokenEngine

logger = logging.getLogger(__name__)

VALIDATION_TTL_SECONDS = 15 * 60


def validation_key(validation_token: str) -> str:
    return f"validation_{validation_token}"


def new_validation_token() -> str:
    return str(uuid.uuid4())


class AuthFlowService:
    def __init__(
        self,
        accounts: AccountRepository,
        store: EphemeralStore,
        otp: OtpEngine,
        tokens: TokenEngine,
        dispatcher: BackgroundDispatcher,
    ) -> None:
        self._accounts = accounts
        self._store = store
        self._otp = otp
        self._tokens = tokens
        self._dispatcher = dispatcher

    async def begin_flow(
        self,
        flow: FlowKind,
        email: str | None = None,
        mobile: str | None = None,
        password: str | None = None,
    ) -> str:
        """Validate the request, stage it and return its validation token."""
        if not email and not mobile:
            raise EmailMobileEmpty()

        if flow is FlowKind.LOGIN:
            account = await self._login_candidate(email, mobile, password)
        else:
            account = await self._signup_candidate(email, mobile, password)

        validation_token = new_validation_token()
        pending = PendingIdentity(flow=flow, account=account)
        await self._store.set_json(
            validation_key(validation_token), VALIDATION_TTL_SECONDS, pending
        )
        logger.info("%s attempt staged as %s", flow.value, validation_token)

        if self._otp.should_require_otp(flow, bool(account.mobile_number)):
            contact, kind = self._contact_of(account)
            self._dispatcher.submit(f"otp:{validation_token}", self._otp.issue, contact, kind)
        else:
            logger.info("OTP not required for %s", validation_token)
        return validation_token

    async def complete_flow(self, validation_token: str, supplied_otp: str) -> TokenPair:
        """Verify the OTP for a staged attempt and exchange it for tokens."""
        key = validation_key(validation_token)
        try:
            pending = await self._store.get_json(key, PendingIdentity)
        except RecordNotFound:
            raise InvalidValidationId() from None

        account = pending.account
        otp_required = self._otp.should_require_otp(pending.flow, bool(account.mobile_number))
        contact = None
        if otp_required:
            contact, _ = self._contact_of(account)
            outcome = await self._otp.check(contact, supplied_otp)
            if outcome is not OtpCheck.VALID:
                logger.info("OTP %s for %s", outcome.value, validation_token)
                raise InvalidOtp()

        # Whoever pops the pending identity owns the rest of the flow.
        if await self._store.pop(key) is None:
            raise InvalidValidationId()
        # Validation tokens for one contact share its code; the delete decides.
        if contact is not None and not await self._otp.redeem(contact, supplied_otp):
            logger.info("OTP for %s already redeemed by another attempt", validation_token)
            raise InvalidOtp()

        if pending.flow is FlowKind.SIGNUP:
            created = await self._accounts.create(account)
            account = AccountSnapshot.model_validate(created)
        else:
            stored = await self._accounts.find(account_id=account.id)
            if stored is None:
                raise UserNotFound()
            account = AccountSnapshot.model_validate(stored)

        logger.info("%s completed for account %s", pending.flow.value, account.id)
        return self._tokens.issue(account)

    async def resend_otp(self, validation_token: str) -> None:
        """Issue a new code; the pending identity keeps its original expiry."""
        try:
            pending = await self._store.get_json(
                validation_key(validation_token), PendingIdentity
            )
        except RecordNotFound:
            raise InvalidValidationId() from None

        account = pending.account
        if not self._otp.should_require_otp(pending.flow, bool(account.mobile_number)):
            logger.info("Resend ignored for %s: OTP not required", validation_token)
            return
        contact, kind = self._contact_of(account)
        await self._otp.issue(contact, kind)

    # ── Private helpers ──────────────────────────────────

    async def _login_candidate(
        self, email: str | None, mobile: str | None, password: str | None
    ) -> AccountSnapshot:
        existing = await self._accounts.find(email=email, mobile=mobile)
        if existing is None:
            logger.info("Login for unknown account (email=%s mobile=%s)", email, mobile)
            raise UserNotFound()

        # Mobile logins are proven by the OTP alone.
        if not mobile and not await verify_password(password, existing.password_hash):
            logger.info("Password mismatch for account %s", existing.id)
            raise PasswordMismatch()
        return AccountSnapshot.model_validate(existing)

    async def _signup_candidate(
        self, email: str | None, mobile: str | None, password: str | None
    ) -> AccountSnapshot:
        for lookup in ({"email": email}, {"mobile": mobile}):
            if not any(lookup.values()):
                continue
            existing = await self._accounts.find(**lookup)
            if existing is not None:
                logger.info("Signup for already registered contact %s", lookup)
                raise UserAlreadyExists(existing)

        password_hash = await hash_password(password) if password else None
        return AccountSnapshot(email=email, mobile_number=mobile, password_hash=password_hash)

    @staticmethod
    def _contact_of(account: AccountSnapshot) -> tuple[str, ContactKind]:
        contact = account.preferred_contact()
        if contact is None:
            raise UserContactMissing()
        return contact
