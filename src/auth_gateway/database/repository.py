"""Account repository — the credential store adapter."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from auth_gateway.errors import UserAlreadyExists
from auth_gateway.models.account import Account
from auth_gateway.models.records import AccountSnapshot

logger = logging.getLogger(__name__)


class AccountRepository:
    """Encapsulates all database queries related to accounts.

    Each call runs in its own short-lived session taken from the shared
    session factory, so one repository instance can serve concurrent
    requests.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def find(
        self,
        email: str | None = None,
        mobile: str | None = None,
        account_id: str | None = None,
    ) -> Account | None:
        """Return the first account matching every given filter.

        With no filter at all there is nothing to match and ``None`` is
        returned.
        """
        conditions = []
        if account_id is not None:
            conditions.append(Account.id == account_id)
        if email is not None:
            conditions.append(Account.email == email)
        if mobile is not None:
            conditions.append(Account.mobile_number == mobile)
        if not conditions:
            return None

        stmt = select(Account).where(*conditions).limit(1)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create(self, candidate: AccountSnapshot) -> Account:
        """Insert *candidate* and return the stored account with its new id.

        The unique constraints on email and mobile decide races between
        concurrent signups; the loser gets ``UserAlreadyExists``.
        """
        account = Account(
            email=candidate.email,
            mobile_number=candidate.mobile_number,
            password_hash=candidate.password_hash,
            roles=list(candidate.roles),
        )
        async with self._session_factory() as session:
            session.add(account)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("Account insert rejected: contact already registered")
                existing = await self.find(email=candidate.email) if candidate.email else None
                if existing is None and candidate.mobile_number:
                    existing = await self.find(mobile=candidate.mobile_number)
                raise UserAlreadyExists(existing) from None

        logger.info("Account %s created", account.id)
        return account

    async def update_password(self, account_id: str, password_hash: str) -> Account | None:
        """Store a new password hash; ``None`` if the account is gone."""
        async with self._session_factory() as session:
            account = await session.get(Account, account_id)
            if account is None:
                return None
            account.password_hash = password_hash
            await session.commit()
        logger.info("Password updated for account %s", account_id)
        return account
