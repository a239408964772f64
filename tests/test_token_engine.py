"""Tests for token issuance, verification and refresh."""

import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from auth_gateway.errors import (
    InvalidRefreshToken,
    SigningKeyError,
    TokenExpired,
    Unauthorized,
)
from auth_gateway.models.records import AccountSnapshot
from auth_gateway.services.token_engine import TokenEngine, TokenKeys
from conftest import make_settings

DAY = 24 * 60 * 60


@pytest.fixture
def tokens(token_keys, accounts, settings) -> TokenEngine:
    return TokenEngine(token_keys, accounts, settings)


@pytest.fixture
def snapshot() -> AccountSnapshot:
    return AccountSnapshot(id="a" * 32, email="a@x.com", roles=["default", "admin"])


def test_issue_then_verify(tokens, snapshot):
    pair = tokens.issue(snapshot)
    claims = tokens.verify(pair.access_token)

    assert claims.sub == snapshot.id
    assert claims.email == "a@x.com"
    assert claims.roles == ["default", "admin"]
    assert claims.iss == "greenie.one"
    assert claims.exp > time.time()
    assert claims.exp - claims.iat == DAY
    assert claims.is_refresh is None


def test_refresh_token_is_marked_and_longer_lived(tokens, snapshot):
    claims = tokens.verify(tokens.issue(snapshot).refresh_token)
    assert claims.is_refresh is True
    assert claims.exp - claims.iat == 30 * DAY


def test_tokens_are_rs256(tokens, snapshot):
    header = jwt.get_unverified_header(tokens.issue(snapshot).access_token)
    assert header["alg"] == "RS256"


def test_cannot_issue_without_id(tokens):
    with pytest.raises(ValueError):
        tokens.issue(AccountSnapshot(email="a@x.com"))


def test_expired_token(token_keys, accounts, settings, snapshot):
    past = TokenEngine(token_keys, accounts, settings, clock=lambda: time.time() - 2 * DAY)
    token = past.issue(snapshot).access_token
    with pytest.raises(TokenExpired):
        TokenEngine(token_keys, accounts, settings).verify(token)


def test_expiry_rechecked_against_own_clock(token_keys, accounts, settings, snapshot):
    token = TokenEngine(token_keys, accounts, settings).issue(snapshot).access_token
    later = TokenEngine(token_keys, accounts, settings, clock=lambda: time.time() + 2 * DAY)
    with pytest.raises(TokenExpired):
        later.verify(token)


def test_garbage_and_foreign_tokens_rejected(tokens, snapshot):
    with pytest.raises(Unauthorized):
        tokens.verify("not-a-token")

    foreign_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    now = int(time.time())
    forged = jwt.encode(
        {"iss": "greenie.one", "sub": snapshot.id, "iat": now, "exp": now + 60},
        foreign_key,
        algorithm="RS256",
    )
    with pytest.raises(Unauthorized):
        tokens.verify(forged)


def test_wrong_issuer_rejected(token_keys, accounts, snapshot):
    other = TokenEngine(token_keys, accounts, make_settings(jwt_issuer="someone.else"))
    token = other.issue(snapshot).access_token
    with pytest.raises(Unauthorized):
        TokenEngine(token_keys, accounts, make_settings()).verify(token)


@pytest.mark.asyncio
async def test_refresh_mints_access_token_only(tokens, accounts):
    account = await accounts.create(AccountSnapshot(email="r@x.com"))
    pair = tokens.issue(account)

    refreshed = await tokens.refresh(pair.refresh_token)
    assert refreshed.refresh_token is None
    assert tokens.verify(refreshed.access_token).sub == account.id


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(tokens, accounts):
    account = await accounts.create(AccountSnapshot(email="r@x.com"))
    with pytest.raises(InvalidRefreshToken):
        await tokens.refresh(tokens.issue(account).access_token)


@pytest.mark.asyncio
async def test_refresh_for_deleted_account(tokens, snapshot):
    with pytest.raises(Unauthorized):
        await tokens.refresh(tokens.issue(snapshot).refresh_token)


def test_keys_loaded_from_inline_settings(pem_pair):
    private_pem, public_pem = pem_pair
    keys = TokenKeys.load(
        make_settings(jwt_private_key=private_pem.decode(), jwt_public_key=public_pem.decode())
    )
    assert keys.public_key.key_size == 2048


def test_missing_key_file(tmp_path):
    with pytest.raises(SigningKeyError):
        TokenKeys.load(make_settings(jwt_private_key_path=str(tmp_path / "absent.pem")))
