"""Auth routes — a thin HTTP adapter over the flow services."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth_gateway.api.schemas import (
    ChangePasswordInput,
    CredentialsInput,
    ForgotPasswordInput,
    RedirectResponseBody,
    ResendOtpInput,
    ValidateForgotPasswordInput,
    ValidateOtpInput,
    ValidationIdResponse,
)
from auth_gateway.errors import AuthError, Unauthorized
from auth_gateway.models.records import FlowKind, TokenClaims
from auth_gateway.services.container import ServiceContainer

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def require_access_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> TokenClaims:
    """Claims of a valid access token; refresh tokens are refused."""
    if credentials is None:
        raise Unauthorized()
    claims = container.tokens.verify(credentials.credentials)
    if claims.is_refresh:
        raise Unauthorized()
    return claims


def build_router(prefix: str = "") -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["auth"])

    # ── Signup / login ───────────────────────────────────

    @router.post("/signup")
    async def signup(
        body: CredentialsInput, container: ServiceContainer = Depends(get_container)
    ) -> dict:
        validation_id = await container.auth_flow.begin_flow(
            FlowKind.SIGNUP, body.email, body.mobile_number, body.password
        )
        return ValidationIdResponse(validation_id=validation_id).model_dump(by_alias=True)

    @router.post("/login")
    async def login(
        body: CredentialsInput, container: ServiceContainer = Depends(get_container)
    ) -> dict:
        validation_id = await container.auth_flow.begin_flow(
            FlowKind.LOGIN, body.email, body.mobile_number, body.password
        )
        return ValidationIdResponse(validation_id=validation_id).model_dump(by_alias=True)

    @router.post("/validateOTP")
    async def validate_otp(
        body: ValidateOtpInput, container: ServiceContainer = Depends(get_container)
    ) -> dict:
        pair = await container.auth_flow.complete_flow(body.validation_id, body.otp)
        return pair.model_dump(by_alias=True)

    @router.post("/resendOTP")
    async def resend_otp(
        body: ResendOtpInput, container: ServiceContainer = Depends(get_container)
    ) -> Response:
        await container.auth_flow.resend_otp(body.validation_id)
        return Response(status_code=200)

    # ── Tokens ───────────────────────────────────────────

    @router.get("/validate_token")
    async def validate_token(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
        container: ServiceContainer = Depends(get_container),
    ) -> Response:
        """Gateway check: echoes the decoded claims in ``x-user-details``."""
        response = Response(status_code=200)
        if credentials is None:
            return response
        try:
            claims = container.tokens.verify(credentials.credentials)
        except AuthError:
            raise Unauthorized() from None
        response.headers["x-user-details"] = claims.model_dump_json(exclude_none=True)
        return response

    @router.get("/refresh")
    async def refresh_token(
        refresh_token: str = Query(..., alias="refreshToken", min_length=1),
        container: ServiceContainer = Depends(get_container),
    ) -> dict:
        pair = await container.tokens.refresh(refresh_token)
        return pair.model_dump(by_alias=True, exclude_none=True)

    # ── Passwords ────────────────────────────────────────

    @router.post("/forgot_password")
    async def forgot_password(
        body: ForgotPasswordInput, container: ServiceContainer = Depends(get_container)
    ) -> dict:
        validation_id = await container.password_reset.initiate(body.email)
        return ValidationIdResponse(validation_id=validation_id).model_dump(by_alias=True)

    @router.post("/validate_forgot_password")
    async def validate_forgot_password(
        body: ValidateForgotPasswordInput,
        container: ServiceContainer = Depends(get_container),
    ) -> Response:
        await container.password_reset.validate_and_apply(
            body.validation_id, body.otp, body.new_password
        )
        return Response(status_code=200)

    @router.post("/change_password")
    async def change_password(
        body: ChangePasswordInput,
        claims: TokenClaims = Depends(require_access_token),
        container: ServiceContainer = Depends(get_container),
    ) -> Response:
        await container.password_reset.change_password(
            claims.sub, body.current_password, body.new_password
        )
        return Response(status_code=200)

    # ── OAuth ────────────────────────────────────────────

    @router.get("/redirect/{provider}")
    async def oauth_redirect(
        provider: str, container: ServiceContainer = Depends(get_container)
    ) -> dict:
        url = container.oauth.redirect_url(provider)
        return RedirectResponseBody(redirect_url=url).model_dump(by_alias=True)

    @router.get("/callback/{provider}")
    async def oauth_callback(
        provider: str, request: Request, container: ServiceContainer = Depends(get_container)
    ) -> dict:
        result = await container.oauth.complete_login(provider, str(request.url))
        return result.model_dump(by_alias=True)

    return router
