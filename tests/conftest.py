"""Shared fixtures: in-memory stores, a recording OTP channel and signing keys."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth_gateway.config import Settings
from auth_gateway.database.repository import AccountRepository
from auth_gateway.database.state_store import MemoryStateStore
from auth_gateway.models.account import Base
from auth_gateway.models.records import ContactKind
from auth_gateway.services.container import ServiceContainer
from auth_gateway.services.dispatcher import BackgroundDispatcher
from auth_gateway.services.otp_delivery import OtpDeliveryChannel
from auth_gateway.services.token_engine import TokenKeys


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingChannel(OtpDeliveryChannel):
    """Delivery channel that remembers every code instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, ContactKind, str]] = []
        self.succeed = True

    async def send(self, contact: str, kind: ContactKind, code: str, ttl_seconds: int) -> bool:
        if not self.succeed:
            return False
        self.sent.append((contact, kind, code))
        return True

    def last_code(self, contact: str) -> str:
        return [code for c, _, code in self.sent if c == contact][-1]


class SuspendingStateStore(MemoryStateStore):
    """Memory store that yields to the event loop on every call, like a network client."""

    async def get_string(self, key: str) -> str | None:
        await asyncio.sleep(0)
        return await super().get_string(key)

    async def pop(self, key: str) -> str | None:
        await asyncio.sleep(0)
        return await super().pop(key)


def make_settings(**overrides) -> Settings:
    values = {
        "app_env": "test",
        "debug": False,
        "route_prefix": "",
        "mock_otp_api_enabled": False,
        "otp_bypass_code": None,
        "require_email_login_otp": False,
        "google_client_id": "google-client",
        "google_client_secret": "google-secret",
        "google_redirect_uri": "https://app.example.com/callback/google",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _pem_pair() -> tuple[bytes, bytes]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return private_pem, public_pem


@pytest.fixture(scope="session")
def pem_pair() -> tuple[bytes, bytes]:
    return _pem_pair()


@pytest.fixture(scope="session")
def token_keys(pem_pair) -> TokenKeys:
    return TokenKeys.from_pem(*pem_pair)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryStateStore:
    return MemoryStateStore(clock=clock)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest_asyncio.fixture
async def accounts():
    """Account repository over a fresh in-memory database."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield AccountRepository(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


@pytest_asyncio.fixture
async def dispatcher():
    dispatcher = BackgroundDispatcher()
    dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def container(settings, accounts, store, channel, token_keys, dispatcher) -> ServiceContainer:
    return ServiceContainer.assemble(
        settings=settings,
        accounts=accounts,
        store=store,
        channel=channel,
        keys=token_keys,
        dispatcher=dispatcher,
    )
