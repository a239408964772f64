"""Auth Gateway — configuration loaded from environment."""

from pydantic import model_validator
from pydantic_settings import BaseSettings

LOCAL = "local"
PRODUCTION = "production"


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── App ───────────────────────────────────────────────
    app_name: str = "Auth Gateway"
    app_env: str = "local"
    debug: bool = True
    route_prefix: str | None = None

    # ── Stores ────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./auth_gateway.db"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = ""

    # ── OTP delivery ──────────────────────────────────────
    otp_remote_base_url: str = "http://localhost:8080/external/v1"
    otp_request_timeout: float = 10.0
    mock_otp_api_enabled: bool = True

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "noreply@example.com"

    # ── OTP policy ────────────────────────────────────────
    require_email_login_otp: bool = False
    otp_bypass_code: str | None = None

    # ── Tokens ────────────────────────────────────────────
    jwt_issuer: str = "greenie.one"
    jwt_private_key: str | None = None
    jwt_public_key: str | None = None
    jwt_private_key_path: str = "./keys/local/private.pem"
    jwt_public_key_path: str = "./keys/local/public.pem"
    access_token_ttl_seconds: int = 24 * 60 * 60
    refresh_token_ttl_seconds: int = 30 * 24 * 60 * 60

    # ── OAuth providers ───────────────────────────────────
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    linkedin_client_id: str = ""
    linkedin_client_secret: str = ""
    linkedin_redirect_uri: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _forbid_bypass_in_production(self) -> "Settings":
        if self.is_production and self.otp_bypass_code:
            raise ValueError("OTP_BYPASS_CODE must not be set when APP_ENV=production")
        return self

    @property
    def environment(self) -> str:
        return self.app_env.strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @property
    def api_prefix(self) -> str:
        """Path prefix for the auth routes (``/auth`` when running locally)."""
        if self.route_prefix is not None:
            return self.route_prefix.rstrip("/")
        return "/auth" if self.environment == LOCAL else ""


# Singleton settings instance
settings = Settings()
