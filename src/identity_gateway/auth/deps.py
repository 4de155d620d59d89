"""
identity_gateway.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Turn the incoming request into a mode-appropriate `AuthContext`.
- Enforce role checks via reusable dependency factories.
- Guard service-to-service endpoints with a service token.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from identity_gateway.api.deps import (
    auth_config_dep,
    db_session,
    end_user_tokens_dep,
    identity_registry_dep,
    service_tokens_dep,
)
from identity_gateway.auth.config import AuthConfig
from identity_gateway.auth.context import (
    AuthContext,
    context_for_disabled_mode,
    context_from_federated_identity,
    context_from_token_claims,
)
from identity_gateway.auth.errors import InvalidRegistrationError
from identity_gateway.auth.federated import FederatedAuthService
from identity_gateway.auth.models import TokenValidation, ValidationStatus
from identity_gateway.auth.modes import AuthMode
from identity_gateway.auth.service_tokens import ServiceTokenService
from identity_gateway.auth.tokens import EndUserTokenService
from identity_gateway.observability.logging import get_logger
from identity_gateway.observability.middleware import TRACKING_ID_HEADER
from identity_gateway.services.identity_registry import IdentityRegistry, parse_audit_id

log = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)

_INVALID_TOKEN = "Invalid or expired token"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _raise_for(result: TokenValidation) -> None:
    if result.status is ValidationStatus.error:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication unavailable"
        )
    if not result.is_valid:
        raise _unauthorized(_INVALID_TOKEN)


def _tracking_id(request: Request) -> uuid.UUID | None:
    raw = request.headers.get(TRACKING_ID_HEADER) or request.query_params.get("trackingGuid")
    return parse_audit_id(raw) if raw else None


async def get_auth_context(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    cfg: AuthConfig = Depends(auth_config_dep),
    tokens: EndUserTokenService | None = Depends(end_user_tokens_dep),
    registry: IdentityRegistry = Depends(identity_registry_dep),
    session: AsyncSession = Depends(db_session),
) -> AuthContext:
    if cfg.mode is AuthMode.disabled:
        # No verification: a tracking id only enriches the context when it resolves.
        tracking = _tracking_id(request)
        record = await registry.get_by_audit_id(tracking) if tracking else None
        return context_for_disabled_mode(
            tracking if record is not None else None,
            record,
            session_id=request.headers.get("x-session-id"),
        )

    if creds is None or not creds.credentials:
        raise _unauthorized("Missing bearer token")

    if cfg.mode is AuthMode.bearer_token:
        if tokens is None:
            raise HTTPException(
                status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication unavailable"
            )
        result = tokens.validate_token(creds.credentials)
        _raise_for(result)
        return context_from_token_claims(result.claims, mode=cfg.mode)

    if cfg.federated is None:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication unavailable"
        )
    federated = FederatedAuthService(
        cfg=cfg.federated, registry=registry, admin_email_domains=cfg.admin_email_domains
    )
    result = federated.validate_federated_token(creds.credentials)
    _raise_for(result)
    try:
        identity = await federated.create_or_update_user_from_claims(result.claims)
    except InvalidRegistrationError as e:
        raise _unauthorized(str(e)) from e
    # Linking a federated subject may create a registry record.
    await session.commit()
    return context_from_federated_identity(identity)


def require_authenticated(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.authenticated:
        raise _unauthorized("Authentication required")
    return ctx


def require_roles(*required: str):
    """
    Any-of role check. Disabled mode is default-allow; admins bypass role checks.
    """

    def _dep(
        ctx: AuthContext = Depends(get_auth_context),
        cfg: AuthConfig = Depends(auth_config_dep),
    ) -> AuthContext:
        if cfg.mode is AuthMode.disabled:
            return ctx
        if not ctx.authenticated:
            raise _unauthorized("Authentication required")
        if ctx.is_admin or not required:
            return ctx
        if not ctx.has_any_role(*required):
            log.warning("authorization_denied", user_id=ctx.id, required=list(required))
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Insufficient role")
        return ctx

    return _dep


async def require_service_token(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    service_tokens: ServiceTokenService = Depends(service_tokens_dep),
) -> TokenValidation:
    # Enforced in every mode, Disabled included.
    if creds is None or not creds.credentials:
        raise _unauthorized("Missing service token")
    result = await service_tokens.validate_service_token(creds.credentials)
    _raise_for(result)
    return result


# --- Module Notes -----------------------------------------------------------
# These dependencies are used for both:
# - End-user endpoints (`/v1/auth/*`), via `get_auth_context` / `require_roles`
# - Service-to-service endpoints (`/v1/service/*`), via `require_service_token`
