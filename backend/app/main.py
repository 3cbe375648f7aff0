"""FastAPI application entrypoint.

Configures CORS, builds the shared clients, maps domain errors to HTTP
responses, includes routers, and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings
from .exceptions import AdsSyncError
from .routers import google_ads as google_ads_router
from .routers import google_oauth as google_oauth_router
from .security import TokenCodec
from .services.google_ads_client import GAdsClient
from .services.google_oauth_client import GoogleOAuthClient
from .services.identity_service import IdentityClient
from .telemetry import init_sentry
from . import schemas

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


def create_app() -> FastAPI:
    init_sentry()  # Call before creating FastAPI app

    app = FastAPI(
        title="AdSync API",
        description="""
        Google Ads search-term and account-structure sync service.

        This API provides endpoints for:
        - Connecting a Google account through OAuth
        - Resolving accessible Google Ads accounts (including manager rosters)
        - Running and inspecting search-term sync jobs
        - Snapshotting campaign / ad group / keyword structure
        - Live passthrough queries against the Google Ads API

        ## Authentication

        All endpoints except `/health` and the OAuth callback require an
        `Authorization: Bearer <jwt>` header issued by the identity provider.
        """,
        version="1.0.0",
    )

    # Trust X-Forwarded-Proto from the load balancer
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    settings = get_settings()

    # Fails fast when CRYPTO_SECRET is missing or malformed
    app.state.token_codec = TokenCodec.from_hex(settings.CRYPTO_SECRET)
    app.state.ads_client = GAdsClient.from_settings(settings)
    app.state.oauth_client = GoogleOAuthClient.from_settings(settings)
    app.state.identity_client = IdentityClient.from_settings(settings)

    # BACKEND_CORS_ORIGINS can be a comma-separated list: "https://app.example.com,http://localhost:3000"
    allowed_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    if settings.FRONTEND_URL not in allowed_origins:
        allowed_origins.append(settings.FRONTEND_URL)
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AdsSyncError)
    async def ads_sync_error_handler(request: Request, exc: AdsSyncError):
        if exc.status_code >= 500:
            logger.error("[API] %s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_user_message()})

    app.include_router(google_oauth_router.router)  # Google OAuth flow
    app.include_router(google_ads_router.router)  # Accounts, sync jobs, live queries

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
