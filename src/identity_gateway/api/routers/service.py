"""
identity_gateway.api.routers.service

Service-to-service endpoints (called by the tool-calling layer, never by end users).

Responsibilities:
- Require a valid service token on every route, whatever the end-user mode.
- Resolve the token's correlation id to its registry record.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from starlette.status import HTTP_401_UNAUTHORIZED

from identity_gateway.api.deps import identity_registry_dep
from identity_gateway.auth.deps import require_service_token
from identity_gateway.auth.models import TokenValidation
from identity_gateway.auth.modes import AuthMode
from identity_gateway.services.identity_registry import IdentityRegistry, parse_audit_id

router = APIRouter(prefix="/v1/service", tags=["service"])


class ServiceIdentityResponse(BaseModel):
    correlation_id: uuid.UUID
    service_identity: str | None
    auth_mode: str | None
    session_id: str | None
    name: str | None
    email: str | None
    record_mode: AuthMode | None


@router.get("/identity", response_model=ServiceIdentityResponse)
async def service_identity(
    token: TokenValidation = Depends(require_service_token),
    registry: IdentityRegistry = Depends(identity_registry_dep),
) -> ServiceIdentityResponse:
    correlation_id = parse_audit_id(token.subject)
    if correlation_id is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    record = await registry.get_by_audit_id(correlation_id)
    return ServiceIdentityResponse(
        correlation_id=correlation_id,
        service_identity=token.claims.get("service_identity"),
        auth_mode=token.claims.get("auth_mode"),
        session_id=token.claims.get("session_id"),
        name=record.display_name if record is not None else None,
        email=record.email if record is not None else None,
        record_mode=record.mode if record is not None else None,
    )


# --- Module Notes -----------------------------------------------------------
# The record may be missing while a cached validation is still fresh; the response
# then carries only the token's own claims.
