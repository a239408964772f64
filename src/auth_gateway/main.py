"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from auth_gateway.api.error_handlers import register_error_handlers
from auth_gateway.api.routes import build_router
from auth_gateway.config import Settings, settings as default_settings
from auth_gateway.mock_external_api.router import router as mock_api_router
from auth_gateway.services.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None, container: ServiceContainer | None = None
) -> FastAPI:
    """Build the app; a prebuilt *container* skips connecting to real stores."""
    settings = settings or (container.settings if container else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s (%s) …", settings.app_name, settings.app_env)
        owned = container is None
        app.state.container = container or await build_container(settings)
        logger.info("Services initialised")
        yield
        logger.info("Shutting down %s …", settings.app_name)
        if owned:
            await app.state.container.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="OTP-verified signup/login and token issuance",
        version="0.1.0",
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    register_error_handlers(app)
    app.include_router(build_router(settings.api_prefix))
    if settings.mock_otp_api_enabled and not settings.is_production:
        app.include_router(mock_api_router)

    @app.get("/health")
    async def health_check():
        """Simple liveness probe."""
        return {"status": "healthy", "app": settings.app_name}

    return app


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


configure_logging(default_settings)
app = create_app()
