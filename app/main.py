"""
FastAPI Application Entry Point

Wires the monetized short link service together:
- Public routes (shorten, redirect, interstitial, view completion, stats)
- Admin routes (rate overrides, recalculation, link removal)
- Middleware: access log, signed session cookie, CORS
- Request throttling via slowapi
- Background maintenance jobs started with the app

The session cookie only carries an opaque id; view tokens stay server-side.

Run with:
    uvicorn app.main:app
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from app.api import admin, endpoints
from app.core.rate_limit import limiter
from app.core.runtime import initialize_runtime, shutdown_runtime
from app.core.setting import EnvSettingsOptions, settings
from app.middleware.logging import add_logging_middleware, configure_logging

SERVICE_NAME = "Linkgate"
SERVICE_VERSION = "1.0.0"


def create_app() -> FastAPI:
    configure_logging()

    application = FastAPI(
        title=SERVICE_NAME,
        description="Monetized short links: every visit passes through a timed interstitial",
        version=SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    add_logging_middleware(application)
    application.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET_KEY,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        same_site="lax",
        https_only=settings.ENV_SETTING == EnvSettingsOptions.production,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Registered before the public router so /{short_code} cannot shadow them
    @application.get("/", tags=["Health"])
    async def root():
        return {"message": SERVICE_NAME, "version": SERVICE_VERSION, "docs": "/docs"}

    @application.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "healthy"}

    application.include_router(admin.router, tags=["Admin"])
    application.include_router(endpoints.router, tags=["Short Links"])

    @application.on_event("startup")
    async def startup_event():
        await initialize_runtime()

    @application.on_event("shutdown")
    async def shutdown_event():
        await shutdown_runtime()

    return application


app = create_app()
