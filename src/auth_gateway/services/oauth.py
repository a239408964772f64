"""Third-party login through OpenID Connect providers.

Each provider knows its endpoints and scopes; the exchange itself is the
same for all of them: trade the callback ``code`` for tokens, then verify
the ``id_token`` against the provider's published signing keys.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import jwt

from auth_gateway.config import Settings
from auth_gateway.database.repository import AccountRepository
from auth_gateway.errors import (
    OAuthFailed,
    OAuthProviderNotFound,
    TokenExpired,
    UserAlreadyExists,
)
from auth_gateway.models.records import AccountSnapshot, OAuthLoginResult, ProfileHints
from auth_gateway.services.token_engine import TokenEngine

logger = logging.getLogger(__name__)


@dataclass
class OAuthIdentity:
    """What the provider vouches for about the user."""

    email: str | None
    given_name: str | None = None
    family_name: str | None = None


class OAuthProvider:
    """Authorization-code flow against one OpenID Connect provider."""

    slug: str = ""
    authorize_endpoint: str = ""
    token_endpoint: str = ""
    jwks_uri: str = ""
    scopes: tuple[str, ...] = ("openid", "email", "profile")
    extra_authorize_params: tuple[tuple[str, str], ...] = ()

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._transport = transport
        self._clock = clock

    def redirect_url(self) -> str:
        """URL the browser is sent to in order to start the login."""
        if not self._client_id or not self._redirect_uri:
            raise OAuthFailed(f"{self.slug} login is not configured")
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(self.scopes),
            **dict(self.extra_authorize_params),
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def fetch_identity(self, callback_url: str) -> OAuthIdentity:
        """Exchange the code found in *callback_url* for a verified identity."""
        codes = parse_qs(urlparse(callback_url).query).get("code")
        if not codes or not codes[0]:
            raise OAuthFailed("code cannot be empty")

        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            token_response = await self._exchange_code(client, codes[0])
            id_token = token_response.get("id_token")
            if not id_token:
                raise OAuthFailed("Missing id token in response")
            jwks = await self._get_json(client, self.jwks_uri)

        claims = self._decode_id_token(id_token, jwks)
        return OAuthIdentity(
            email=claims.get("email"),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
        )

    # ── Private helpers ──────────────────────────────────

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> dict[str, Any]:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "redirect_uri": self._redirect_uri,
        }
        try:
            resp = await client.post(self.token_endpoint, data=form)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("%s token exchange failed: %s", self.slug, exc)
            raise OAuthFailed(f"Could not complete {self.slug} login") from None

        if "error" in data or not resp.is_success:
            logger.warning("%s token endpoint returned %s: %s", self.slug, resp.status_code, data)
            error = data.get("error", resp.status_code)
            description = data.get("error_description", "")
            raise OAuthFailed(f"{error}: {description}")
        return data

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> dict[str, Any]:
        try:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("Fetching %s signing keys failed: %s", self.slug, exc)
            raise OAuthFailed(f"Could not complete {self.slug} login") from None

    def _decode_id_token(self, id_token: str, jwks: dict[str, Any]) -> dict[str, Any]:
        try:
            kid = jwt.get_unverified_header(id_token).get("kid")
            keys = jwt.PyJWKSet.from_dict(jwks).keys
        except (jwt.PyJWTError, ValueError) as exc:
            logger.warning("%s id token or key set unreadable: %s", self.slug, exc)
            raise OAuthFailed("Invalid id token") from None

        candidates = [k for k in keys if kid is None or k.key_id == kid]
        claims: dict[str, Any] | None = None
        for jwk in candidates:
            try:
                claims = jwt.decode(
                    id_token,
                    jwk.key,
                    algorithms=[jwk.algorithm_name or "RS256"],
                    audience=self._client_id,
                )
                break
            except jwt.ExpiredSignatureError:
                raise TokenExpired() from None
            except jwt.InvalidTokenError as exc:
                logger.debug("%s key %s rejected id token: %s", self.slug, jwk.key_id, exc)

        if claims is None:
            raise OAuthFailed("Invalid id token")
        if int(claims.get("exp", 0)) < int(self._clock()):
            raise TokenExpired()
        return claims


class GoogleProvider(OAuthProvider):
    slug = "google"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    jwks_uri = "https://www.googleapis.com/oauth2/v3/certs"
    scopes = (
        "openid",
        "https://www.googleapis.com/auth/userinfo.profile",
        "https://www.googleapis.com/auth/userinfo.email",
    )
    extra_authorize_params = (("access_type", "offline"), ("prompt", "consent"))


class LinkedInProvider(OAuthProvider):
    slug = "linkedin"
    authorize_endpoint = "https://www.linkedin.com/oauth/v2/authorization"
    token_endpoint = "https://www.linkedin.com/oauth/v2/accessToken"
    jwks_uri = "https://www.linkedin.com/oauth/openid/jwks"
    scopes = ("openid", "email", "profile")


def build_providers(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> dict[str, OAuthProvider]:
    """The closed set of supported providers, keyed by URL slug."""
    return {
        GoogleProvider.slug: GoogleProvider(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_uri,
            transport=transport,
        ),
        LinkedInProvider.slug: LinkedInProvider(
            settings.linkedin_client_id,
            settings.linkedin_client_secret,
            settings.linkedin_redirect_uri,
            transport=transport,
        ),
    }


class OAuthLoginService:
    """Turns a provider-verified identity into a local account and tokens."""

    def __init__(
        self,
        providers: dict[str, OAuthProvider],
        accounts: AccountRepository,
        tokens: TokenEngine,
    ) -> None:
        self._providers = providers
        self._accounts = accounts
        self._tokens = tokens

    def get_provider(self, slug: str) -> OAuthProvider:
        provider = self._providers.get(slug)
        if provider is None:
            raise OAuthProviderNotFound()
        return provider

    def redirect_url(self, slug: str) -> str:
        return self.get_provider(slug).redirect_url()

    async def complete_login(self, slug: str, callback_url: str) -> OAuthLoginResult:
        identity = await self.get_provider(slug).fetch_identity(callback_url)
        if not identity.email:
            raise OAuthFailed(f"{slug} did not return an email address")

        account = await self._accounts.find(email=identity.email)
        if account is None:
            try:
                account = await self._accounts.create(AccountSnapshot(email=identity.email))
                logger.info("Account %s created from %s login", account.id, slug)
            except UserAlreadyExists as exc:
                # A concurrent request registered the same email first.
                if exc.account is None:
                    raise
                account = exc.account

        pair = self._tokens.issue(account)
        return OAuthLoginResult(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            profile_hints=ProfileHints(
                first_name=identity.given_name, last_name=identity.family_name
            ),
        )
