"""
identity_gateway.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for the auth configuration and DB sessions.
- Encapsulate app.state access patterns (engine/sessionmaker, validation cache,
  credential store, token services).
- Build request-scoped registry and service-token services.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_gateway.auth.config import AuthConfig
from identity_gateway.auth.credentials import CredentialStore
from identity_gateway.auth.service_tokens import ServiceTokenService
from identity_gateway.auth.tokens import EndUserTokenService
from identity_gateway.services.identity_registry import IdentityRegistry
from identity_gateway.services.validation_cache import ValidationCache


def auth_config_dep(request: Request) -> AuthConfig:
    # Built once in `identity_gateway.api.app.create_app`; never re-read from the environment.
    return request.app.state.auth_config  # type: ignore[attr-defined]


def validation_cache_dep(request: Request) -> ValidationCache:
    return request.app.state.validation_cache  # type: ignore[attr-defined]


def credential_store_dep(request: Request) -> CredentialStore | None:
    return getattr(request.app.state, "credential_store", None)


def end_user_tokens_dep(request: Request) -> EndUserTokenService | None:
    # Only present in BearerToken mode.
    return getattr(request.app.state, "end_user_tokens", None)


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Routers commit explicitly once the whole operation succeeded.
    async with session_factory() as session:
        yield session


def identity_registry_dep(
    session: AsyncSession = Depends(db_session),
    cache: ValidationCache = Depends(validation_cache_dep),
    cfg: AuthConfig = Depends(auth_config_dep),
) -> IdentityRegistry:
    return IdentityRegistry(session=session, cache=cache, policy=cfg.registry)


def service_tokens_dep(
    registry: IdentityRegistry = Depends(identity_registry_dep),
    cfg: AuthConfig = Depends(auth_config_dep),
) -> ServiceTokenService:
    return ServiceTokenService(cfg.service_jwt, cfg.service_policy, registry)


# --- Module Notes -----------------------------------------------------------
# FastAPI caches dependencies per request, so the registry, the token services and
# the router all share one AsyncSession (and one transaction).
