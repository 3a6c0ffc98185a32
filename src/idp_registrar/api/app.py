"""FastAPI application serving the admission webhook."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from idp_registrar import __version__
from idp_registrar.clientreg.keycloak import close_keycloak_admin_client
from idp_registrar.config import get_settings
from idp_registrar.webhook import webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    yield

    # Shutdown: release pooled connections to Keycloak
    logger.info("Closing Keycloak admin client")
    await close_keycloak_admin_client()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="idp-registrar",
        description="Admission webhook for IdentityProviderConfiguration resources",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready_check() -> dict:
        """Readiness check endpoint."""
        return {"status": "ready"}

    # Provides: POST /validate-identityproviderconfiguration
    app.include_router(webhook_router)

    if settings.otel_enabled:
        _instrument_fastapi(app)

    return app


def _instrument_fastapi(app: FastAPI) -> None:
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError:
        logger.warning(
            "FastAPI instrumentation not available. "
            "Install with: pip install opentelemetry-instrumentation-fastapi"
        )
        return

    FastAPIInstrumentor.instrument_app(app)
