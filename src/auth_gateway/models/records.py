"""Value objects exchanged with the ephemeral store and the token engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from auth_gateway.models.account import DEFAULT_ROLE


class FlowKind(str, Enum):
    """Which multi-step flow a pending identity belongs to."""

    LOGIN = "LOGIN"
    SIGNUP = "SIGNUP"


class ContactKind(str, Enum):
    EMAIL = "EMAIL"
    MOBILE = "MOBILE"


class AccountSnapshot(BaseModel):
    """Serialisable copy of an account, persisted or still a candidate.

    ``id`` is ``None`` until the credential store assigns one.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    email: str | None = None
    mobile_number: str | None = None
    password_hash: str | None = None
    roles: list[str] = Field(default_factory=lambda: [DEFAULT_ROLE])

    def preferred_contact(self) -> tuple[str, ContactKind] | None:
        """Mobile wins over email; ``None`` when neither is known."""
        if self.mobile_number:
            return self.mobile_number, ContactKind.MOBILE
        if self.email:
            return self.email, ContactKind.EMAIL
        return None


class PendingIdentity(BaseModel):
    """A signup/login attempt waiting for OTP verification."""

    flow: FlowKind
    account: AccountSnapshot


class PasswordResetRecord(BaseModel):
    """OTP issued for a forgot-password attempt, scoped to its validation token."""

    otp: str
    account_id: str


class TokenClaims(BaseModel):
    iss: str
    sub: str
    iat: int
    exp: int
    roles: list[str] = Field(default_factory=list)
    email: str | None = None
    is_refresh: bool | None = None


class TokenPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")


class ProfileHints(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")


class OAuthLoginResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    profile_hints: ProfileHints = Field(default_factory=ProfileHints, alias="profileHints")
