"""
identity_gateway.clients.business_api

HTTP client boundary used by the tool-calling layer to reach the business API.

Responsibilities:
- Hand out service tokens per correlation id, re-issuing them once they get close
  to expiry (`ServiceTokenProvider`).
- Attach the service token and the correlation id to every outbound call.
- Provide a stable interface the tool layer can depend on.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_gateway.auth.config import AuthConfig, ServiceTokenPolicy
from identity_gateway.auth.jwt import utcnow
from identity_gateway.auth.models import IssuedServiceToken
from identity_gateway.auth.modes import AuthMode
from identity_gateway.auth.service_tokens import ServiceTokenService
from identity_gateway.db.session import session_scope
from identity_gateway.observability.logging import get_logger
from identity_gateway.observability.middleware import TRACKING_ID_HEADER
from identity_gateway.services.identity_registry import IdentityRegistry
from identity_gateway.services.validation_cache import ValidationCache

log = get_logger(__name__)

Issuer = Callable[[uuid.UUID, AuthMode, str | None], Awaitable[IssuedServiceToken]]


def issuer_from_registry(
    *,
    cfg: AuthConfig,
    session_factory: async_sessionmaker[AsyncSession],
    cache: ValidationCache,
) -> Issuer:
    """
    Issue tokens in-process: each issuance gets its own short session against the
    registry.
    """

    async def issue(
        correlation_id: uuid.UUID, mode: AuthMode, session_id: str | None
    ) -> IssuedServiceToken:
        async with session_scope(session_factory) as session:
            registry = IdentityRegistry(session=session, cache=cache, policy=cfg.registry)
            service = ServiceTokenService(cfg.service_jwt, cfg.service_policy, registry)
            return await service.issue_service_token(correlation_id, mode, session_id)

    return issue


class ServiceTokenProvider:
    def __init__(
        self,
        *,
        issue: Issuer,
        policy: ServiceTokenPolicy,
        mode: AuthMode,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._issue = issue
        self._policy = policy
        self._mode = mode
        self._clock = clock
        self._tokens: dict[uuid.UUID, IssuedServiceToken] = {}
        self._lock = asyncio.Lock()

    def _fresh(self, token: IssuedServiceToken) -> bool:
        return self._clock() < token.expires_at - self._policy.refresh_threshold

    async def token_for(self, correlation_id: uuid.UUID, *, session_id: str | None = None) -> str:
        if not self._policy.enable_caching:
            return (await self._issue(correlation_id, self._mode, session_id)).token

        async with self._lock:
            cached = self._tokens.get(correlation_id)
            if cached is not None and self._fresh(cached):
                return cached.token
            issued = await self._issue(correlation_id, self._mode, session_id)
            self._tokens[correlation_id] = issued
            log.info(
                "service_token_cached",
                correlation_id=str(correlation_id),
                refreshed=cached is not None,
            )
            return issued.token

    def invalidate(self, correlation_id: uuid.UUID) -> None:
        self._tokens.pop(correlation_id, None)


class BusinessApiClient:
    """
    The tool layer talks to the business API only through this client, so every
    call carries a service token whose correlation id the API can verify.
    """

    def __init__(self, *, http: httpx.AsyncClient, tokens: ServiceTokenProvider) -> None:
        self._http = http
        self._tokens = tokens

    async def _headers(self, correlation_id: uuid.UUID) -> dict[str, str]:
        token = await self._tokens.token_for(correlation_id)
        return {
            "Authorization": f"Bearer {token}",
            TRACKING_ID_HEADER: str(correlation_id),
        }

    async def request(
        self,
        method: str,
        path: str,
        *,
        correlation_id: uuid.UUID,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        r = await self._http.request(
            method, path, params=params, json=json, headers=await self._headers(correlation_id)
        )
        if r.status_code == httpx.codes.UNAUTHORIZED:
            # A cached token may have been issued under a rotated secret; retry once fresh.
            self._tokens.invalidate(correlation_id)
            r = await self._http.request(
                method, path, params=params, json=json, headers=await self._headers(correlation_id)
            )
        r.raise_for_status()
        return r

    async def get_json(
        self, path: str, *, correlation_id: uuid.UUID, params: dict[str, Any] | None = None
    ) -> Any:
        return (await self.request("GET", path, correlation_id=correlation_id, params=params)).json()

    async def post_json(self, path: str, *, correlation_id: uuid.UUID, json: Any) -> Any:
        return (await self.request("POST", path, correlation_id=correlation_id, json=json)).json()

    async def service_identity(self, *, correlation_id: uuid.UUID) -> dict[str, Any]:
        return await self.get_json("/v1/service/identity", correlation_id=correlation_id)


# --- Module Notes -----------------------------------------------------------
# Token reuse is bounded by `refresh_threshold`: a cached token is never handed out
# once it is within that window of its expiry.
