"""Service container — every adapter and service built once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from auth_gateway.config import Settings
from auth_gateway.database.engine import create_engine, create_session_factory, init_db
from auth_gateway.database.repository import AccountRepository
from auth_gateway.database.state_store import EphemeralStore, RedisStateStore
from auth_gateway.services.auth_flow import AuthFlowService
from auth_gateway.services.dispatcher import BackgroundDispatcher
from auth_gateway.services.email_service import EmailService
from auth_gateway.services.oauth import OAuthLoginService, OAuthProvider, build_providers
from auth_gateway.services.otp_delivery import OtpDeliveryChannel, RemoteOtpChannel
from auth_gateway.services.otp_engine import OtpEngine
from auth_gateway.services.password_reset import PasswordResetService
from auth_gateway.services.token_engine import TokenEngine, TokenKeys

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    accounts: AccountRepository
    store: EphemeralStore
    dispatcher: BackgroundDispatcher
    otp: OtpEngine
    tokens: TokenEngine
    auth_flow: AuthFlowService
    password_reset: PasswordResetService
    oauth: OAuthLoginService
    engine: AsyncEngine | None = None

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        accounts: AccountRepository,
        store: EphemeralStore,
        channel: OtpDeliveryChannel,
        keys: TokenKeys,
        providers: dict[str, OAuthProvider] | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        engine: AsyncEngine | None = None,
    ) -> ServiceContainer:
        """Wire the services on top of already-built adapters."""
        dispatcher = dispatcher or BackgroundDispatcher()
        otp = OtpEngine(store, channel, settings)
        tokens = TokenEngine(keys, accounts, settings)
        return cls(
            settings=settings,
            accounts=accounts,
            store=store,
            dispatcher=dispatcher,
            otp=otp,
            tokens=tokens,
            auth_flow=AuthFlowService(accounts, store, otp, tokens, dispatcher),
            password_reset=PasswordResetService(accounts, otp),
            oauth=OAuthLoginService(
                providers if providers is not None else build_providers(settings),
                accounts,
                tokens,
            ),
            engine=engine,
        )

    async def shutdown(self) -> None:
        await self.dispatcher.stop()
        await self.store.close()
        if self.engine is not None:
            await self.engine.dispose()


async def build_container(settings: Settings) -> ServiceContainer:
    """Connect to the real collaborators described by *settings*."""
    engine = create_engine(settings)
    await init_db(engine)
    logger.info("Credential store ready")

    container = ServiceContainer.assemble(
        settings=settings,
        accounts=AccountRepository(create_session_factory(engine)),
        store=RedisStateStore.from_url(settings.redis_url, settings.redis_key_prefix),
        channel=RemoteOtpChannel(settings, EmailService(settings)),
        keys=TokenKeys.load(settings),
        engine=engine,
    )
    container.dispatcher.start()
    return container
