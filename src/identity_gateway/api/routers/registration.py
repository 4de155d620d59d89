"""
identity_gateway.api.routers.registration

Identity registry endpoints.

Responsibilities:
- Register anonymous users and hand back a service token bound to their audit id.
- Look up and validate audit ids.
- Re-issue service tokens for ids that still resolve.
- Let admins drop a cached validation outcome (`/revalidate`).
- Expose the active validation configuration.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

from identity_gateway.api.deps import (
    auth_config_dep,
    db_session,
    identity_registry_dep,
    service_tokens_dep,
)
from identity_gateway.auth.config import AuthConfig
from identity_gateway.auth.context import AuthContext
from identity_gateway.auth.deps import require_roles
from identity_gateway.auth.errors import CorrelationIdNotFoundError, InvalidRegistrationError
from identity_gateway.auth.modes import AuthMode, parse_auth_mode
from identity_gateway.auth.roles import ROLE_ADMIN
from identity_gateway.auth.service_tokens import ServiceTokenService
from identity_gateway.services.identity_registry import IdentityRegistry

router = APIRouter(prefix="/v1/registration", tags=["registration"])


class RegistrationRequest(BaseModel):
    # Shape checks happen in the registry so every bad input maps to 400.
    name: str = ""
    email: str = ""
    organization: str | None = Field(default=None, max_length=200)
    session_id: str | None = Field(default=None, max_length=100)
    workshop_role: str | None = Field(default=None, max_length=50)


class RegistrationResponse(BaseModel):
    audit_id: uuid.UUID
    service_token: str
    auth_mode: AuthMode
    expires_at: datetime
    token_type: str = "Bearer"
    message: str


class RecordResponse(BaseModel):
    audit_id: uuid.UUID
    name: str
    email: str
    organization: str | None
    mode: AuthMode
    registered_at: datetime


class ValidationResponse(BaseModel):
    audit_id: uuid.UUID
    is_valid: bool
    message: str
    validated_at: datetime


class ServiceTokenRequest(BaseModel):
    auth_mode: str | None = None
    session_id: str | None = Field(default=None, max_length=100)


class ServiceTokenResponse(BaseModel):
    audit_id: uuid.UUID
    service_token: str
    auth_mode: AuthMode
    expires_at: datetime
    token_type: str = "Bearer"


class ValidationConfigResponse(BaseModel):
    auth_mode: AuthMode
    require_registration: bool
    cache_minutes: int
    service_token_minutes: int
    validation_rules: list[str]


@router.post("", response_model=RegistrationResponse, status_code=HTTP_201_CREATED)
async def register(
    body: RegistrationRequest,
    session: AsyncSession = Depends(db_session),
    registry: IdentityRegistry = Depends(identity_registry_dep),
    service_tokens: ServiceTokenService = Depends(service_tokens_dep),
    cfg: AuthConfig = Depends(auth_config_dep),
) -> RegistrationResponse:
    try:
        audit_id = await registry.register_anonymous(
            body.name,
            body.email,
            organization=body.organization,
            session_id=body.session_id,
            workshop_role=body.workshop_role,
        )
    except InvalidRegistrationError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e)) from e

    issued = await service_tokens.issue_service_token(audit_id, cfg.mode, body.session_id)
    # Record and token succeed or fail together.
    await session.commit()
    return RegistrationResponse(
        audit_id=audit_id,
        service_token=issued.token,
        auth_mode=issued.mode,
        expires_at=issued.expires_at,
        token_type=issued.token_type,
        message="Registration successful",
    )


# Declared before the `/{audit_id}` routes so "config" is never parsed as an id.
@router.get("/config", response_model=ValidationConfigResponse)
async def validation_config(cfg: AuthConfig = Depends(auth_config_dep)) -> ValidationConfigResponse:
    return ValidationConfigResponse(
        auth_mode=cfg.mode,
        require_registration=cfg.registry.require_registration,
        cache_minutes=int(cfg.registry.cache_ttl.total_seconds() // 60),
        service_token_minutes=int(cfg.service_jwt.lifetime.total_seconds() // 60),
        validation_rules=cfg.validation_rules(),
    )


@router.get("/{audit_id}", response_model=RecordResponse)
async def get_record(
    audit_id: uuid.UUID,
    registry: IdentityRegistry = Depends(identity_registry_dep),
) -> RecordResponse:
    record = await registry.get_by_audit_id(audit_id)
    if record is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=f"Audit id {audit_id} not found")
    return RecordResponse(
        audit_id=record.audit_id,
        name=record.display_name,
        email=record.email,
        organization=record.organization,
        mode=record.mode,
        registered_at=record.registered_at,
    )


@router.get("/{audit_id}/validate", response_model=ValidationResponse)
async def validate(
    audit_id: uuid.UUID,
    registry: IdentityRegistry = Depends(identity_registry_dep),
) -> ValidationResponse:
    is_valid = await registry.validate(audit_id)
    return ValidationResponse(
        audit_id=audit_id,
        is_valid=is_valid,
        message="Audit id is valid" if is_valid else "Audit id is not registered",
        validated_at=datetime.now(tz=UTC),
    )


@router.post("/{audit_id}/revalidate", response_model=ValidationResponse)
async def revalidate(
    audit_id: uuid.UUID,
    _: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    registry: IdentityRegistry = Depends(identity_registry_dep),
) -> ValidationResponse:
    # A deleted record stops resolving immediately instead of after the cache TTL.
    is_valid = await registry.revalidate(audit_id)
    return ValidationResponse(
        audit_id=audit_id,
        is_valid=is_valid,
        message="Audit id is valid" if is_valid else "Audit id is not registered",
        validated_at=datetime.now(tz=UTC),
    )

@router.post("/{audit_id}/service-token", response_model=ServiceTokenResponse)
async def issue_service_token(
    audit_id: uuid.UUID,
    body: ServiceTokenRequest | None = None,
    service_tokens: ServiceTokenService = Depends(service_tokens_dep),
    cfg: AuthConfig = Depends(auth_config_dep),
) -> ServiceTokenResponse:
    body = body or ServiceTokenRequest()
    mode = cfg.mode
    if body.auth_mode is not None:
        requested = parse_auth_mode(body.auth_mode)
        if requested is None:
            raise HTTPException(
                status_code=HTTP_400_BAD_REQUEST, detail=f"Unknown auth mode {body.auth_mode!r}"
            )
        mode = requested

    try:
        issued = await service_tokens.issue_service_token(audit_id, mode, body.session_id)
    except CorrelationIdNotFoundError as e:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ServiceTokenResponse(
        audit_id=audit_id,
        service_token=issued.token,
        auth_mode=issued.mode,
        expires_at=issued.expires_at,
        token_type=issued.token_type,
    )


# --- Module Notes -----------------------------------------------------------
# Registration is open in every mode: it is the entry point that mints the audit id
# the service token path later depends on.
