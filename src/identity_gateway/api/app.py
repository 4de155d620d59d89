"""
identity_gateway.api.app

FastAPI app factory for the identity gateway.

Responsibilities:
- Build the auth configuration once and fail fast on unsafe settings.
- Build the FastAPI application and register routers/middleware/error handlers.
- Initialize and dispose shared infrastructure (DB engine/session factory,
  validation cache).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_501_NOT_IMPLEMENTED

from identity_gateway.api.routers.auth import router as auth_router
from identity_gateway.api.routers.health import router as health_router
from identity_gateway.api.routers.registration import router as registration_router
from identity_gateway.api.routers.service import router as service_router
from identity_gateway.auth.config import build_auth_config
from identity_gateway.auth.credentials import CredentialStore
from identity_gateway.auth.errors import UnsupportedInModeError
from identity_gateway.auth.modes import AuthMode
from identity_gateway.auth.tokens import EndUserTokenService
from identity_gateway.db.init_db import init_db
from identity_gateway.db.session import create_engine, create_sessionmaker
from identity_gateway.observability.logging import configure_logging, get_logger
from identity_gateway.observability.middleware import RequestContextMiddleware
from identity_gateway.services.validation_cache import ValidationCache
from identity_gateway.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings, credential_store: CredentialStore | None = None) -> FastAPI:
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    # Raises ConfigurationError before anything is served.
    auth_config = build_auth_config(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env, auth_mode=auth_config.mode.value)
        engine = create_engine(settings.database_url)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod should use Alembic migrations.
            await init_db(engine)
        try:
            yield
        finally:
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Identity Gateway",
        version="0.1.0",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.auth_config = auth_config
    app.state.validation_cache = ValidationCache(
        ttl=auth_config.registry.cache_ttl,
        maxsize=auth_config.registry.cache_max_entries,
    )
    app.state.credential_store = credential_store
    app.state.end_user_tokens = (
        EndUserTokenService(auth_config.user_jwt)
        if auth_config.mode is AuthMode.bearer_token
        else None
    )

    @app.exception_handler(UnsupportedInModeError)
    async def _unsupported_in_mode(_: Request, exc: UnsupportedInModeError) -> JSONResponse:
        return JSONResponse(
            status_code=HTTP_501_NOT_IMPLEMENTED,
            content={"detail": str(exc), "auth_mode": exc.mode},
        )

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(registration_router)
    app.include_router(auth_router)
    app.include_router(service_router)

    return app


# --- Module Notes -----------------------------------------------------------
# This file is intentionally small: app composition stays here; auth rules stay in
# `identity_gateway.auth` and registry rules in `identity_gateway.services`.
