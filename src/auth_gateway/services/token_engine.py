"""Token engine — issues, verifies and refreshes RS256-signed JWTs.

Access and refresh tokens carry the same claims; the refresh token sets
``is_refresh`` and lives longer.  Verification needs only the public key.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from pydantic import ValidationError

from auth_gateway.config import Settings
from auth_gateway.database.repository import AccountRepository
from auth_gateway.errors import (
    InvalidRefreshToken,
    SigningKeyError,
    TokenExpired,
    Unauthorized,
)
from auth_gateway.models.account import Account
from auth_gateway.models.records import AccountSnapshot, TokenClaims, TokenPair

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


def _read_pem(inline: str | None, path: str, label: str) -> bytes:
    if inline:
        return inline.replace("\\n", "\n").encode("utf-8")
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise SigningKeyError(f"Cannot read {label} key from {path}: {exc}") from exc


@dataclass(frozen=True)
class TokenKeys:
    """The signing key pair, loaded once at startup and read-only after."""

    private_key: RSAPrivateKey
    public_key: RSAPublicKey

    @classmethod
    def from_pem(cls, private_pem: bytes, public_pem: bytes) -> TokenKeys:
        try:
            private_key = serialization.load_pem_private_key(private_pem, password=None)
            public_key = serialization.load_pem_public_key(public_pem)
        except (ValueError, TypeError) as exc:
            raise SigningKeyError(f"Invalid signing key material: {exc}") from exc
        if not isinstance(private_key, RSAPrivateKey) or not isinstance(public_key, RSAPublicKey):
            raise SigningKeyError("Token signing keys must be RSA keys")
        return cls(private_key, public_key)

    @classmethod
    def load(cls, settings: Settings) -> TokenKeys:
        """Read keys from ``JWT_PRIVATE_KEY``/``JWT_PUBLIC_KEY`` or the PEM files."""
        private_pem = _read_pem(settings.jwt_private_key, settings.jwt_private_key_path, "private")
        public_pem = _read_pem(settings.jwt_public_key, settings.jwt_public_key_path, "public")
        keys = cls.from_pem(private_pem, public_pem)
        logger.info("Token signing keys loaded")
        return keys


class TokenEngine:
    def __init__(
        self,
        keys: TokenKeys,
        accounts: AccountRepository,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._keys = keys
        self._accounts = accounts
        self._issuer = settings.jwt_issuer
        self._access_ttl = settings.access_token_ttl_seconds
        self._refresh_ttl = settings.refresh_token_ttl_seconds
        self._clock = clock

    def _encode(self, account: Account | AccountSnapshot, ttl: int, refresh: bool) -> str:
        if account.id is None:
            raise ValueError("Cannot issue a token for an account without an id")
        now = int(self._clock())
        claims = TokenClaims(
            iss=self._issuer,
            sub=account.id,
            iat=now,
            exp=now + ttl,
            roles=list(account.roles or []),
            email=account.email,
            is_refresh=True if refresh else None,
        )
        return jwt.encode(
            claims.model_dump(exclude_none=True), self._keys.private_key, algorithm=ALGORITHM
        )

    def issue(self, account: Account | AccountSnapshot) -> TokenPair:
        """Sign an access/refresh pair for *account*."""
        pair = TokenPair(
            access_token=self._encode(account, self._access_ttl, refresh=False),
            refresh_token=self._encode(account, self._refresh_ttl, refresh=True),
        )
        logger.info("Token pair issued for account %s", account.id)
        return pair

    def verify(self, token: str) -> TokenClaims:
        """Decode *token*, raising ``TokenExpired`` or ``Unauthorized``."""
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._keys.public_key,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired() from None
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected token: %s", exc)
            raise Unauthorized() from None

        try:
            claims = TokenClaims.model_validate(payload)
        except ValidationError:
            logger.warning("Token with valid signature carries malformed claims")
            raise Unauthorized() from None

        # The library already checks exp; recheck against our own clock.
        if claims.exp <= int(self._clock()):
            raise TokenExpired()
        return claims

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Mint a new access token; the refresh token itself is not rotated."""
        claims = self.verify(refresh_token)
        if not claims.is_refresh:
            raise InvalidRefreshToken()

        account = await self._accounts.find(account_id=claims.sub)
        if account is None:
            logger.info("Refresh for unknown account %s", claims.sub)
            raise Unauthorized()

        logger.info("Access token refreshed for account %s", account.id)
        return TokenPair(access_token=self._encode(account, self._access_ttl, refresh=False))
