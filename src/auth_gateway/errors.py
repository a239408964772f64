"""Error taxonomy for the auth gateway.

Domain errors (``AuthError`` subclasses) are raised where they are detected
and rendered unmodified at the HTTP boundary.  Infrastructure errors
(``InfrastructureError`` subclasses) are logged server-side and collapsed to
a generic internal-error response.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    """Base class for errors that are safe to show to the caller."""

    code: str = "AUTH_ERROR"
    status_code: int = 400
    message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class UserNotFound(AuthError):
    code = "USER_NOT_FOUND"
    message = "User does not exist"


class UserAlreadyExists(AuthError):
    code = "USER_ALREADY_EXISTS"
    status_code = 409
    message = "User already exists"

    def __init__(self, account: Any = None, message: str | None = None) -> None:
        super().__init__(message)
        self.account = account


class PasswordMismatch(AuthError):
    code = "PASSWORD_MISMATCH"
    status_code = 401
    message = "Invalid username or password"


class InvalidOtp(AuthError):
    code = "INVALID_OTP"
    message = "Invalid or expired OTP"


class InvalidValidationId(AuthError):
    code = "INVALID_VALIDATION_ID"
    message = "Invalid validation ID"


class InvalidRefreshToken(AuthError):
    code = "INVALID_REFRESH_TOKEN"
    status_code = 401
    message = "Invalid refresh token"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    status_code = 401
    message = "Token has expired"


class Unauthorized(AuthError):
    code = "UNAUTHORIZED"
    status_code = 401
    message = "Unauthorized"


class UserContactMissing(AuthError):
    code = "USER_CONTACT_MISSING"
    message = "User has no email or mobile number to contact"


class EmailMobileEmpty(AuthError):
    code = "EMAIL_MOBILE_EMPTY"
    message = "Mobile number and email both cannot be empty"


class OAuthProviderNotFound(AuthError):
    code = "OAUTH_PROVIDER_NOT_FOUND"
    status_code = 404
    message = "OAuth provider not found"


class OAuthFailed(AuthError):
    code = "OAUTH_FAILED"
    message = "OAuth login failed"


# ── Infrastructure ───────────────────────────────────────


class InfrastructureError(Exception):
    """A failure of a collaborator; never detailed to the caller."""


class RecordNotFound(InfrastructureError):
    """The ephemeral store holds no value for the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Value not found in ephemeral store: {key}")
        self.key = key


class OtpDeliveryFailed(InfrastructureError):
    """The outbound channel refused or failed to deliver an OTP."""


class SigningKeyError(InfrastructureError):
    """Token signing material is missing or unreadable."""


INTERNAL_ERROR_BODY: dict[str, Any] = {
    "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}
}
