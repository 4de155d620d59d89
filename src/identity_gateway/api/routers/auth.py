"""
identity_gateway.api.routers.auth

End-user authentication endpoints.

Responsibilities:
- Register/login/refresh and password operations, delegated to the login flow of
  the active mode (credentialed in BearerToken, federated in EntraExternalId).
- Report the caller's identity (`/me`) and the active mode (`/mode`).

Status mapping:
- invalid credentials / inactive / store failure -> 401, locked -> 423,
  rejected input -> 400, operation not available in this mode -> 501.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_423_LOCKED,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from identity_gateway.api.deps import (
    auth_config_dep,
    credential_store_dep,
    db_session,
    end_user_tokens_dep,
    identity_registry_dep,
)
from identity_gateway.auth.config import AuthConfig
from identity_gateway.auth.context import AuthContext
from identity_gateway.auth.credentials import (
    CredentialedAuthService,
    CredentialStore,
    LoginResult,
    LoginStatus,
    UserInfo,
)
from identity_gateway.auth.deps import get_auth_context, require_authenticated
from identity_gateway.auth.errors import UnsupportedInModeError
from identity_gateway.auth.federated import FederatedAuthService
from identity_gateway.auth.modes import AuthMode
from identity_gateway.auth.tokens import EndUserTokenService
from identity_gateway.services.identity_registry import IdentityRegistry

router = APIRouter(prefix="/v1/auth", tags=["auth"])

_STATUS_CODES: dict[LoginStatus, int] = {
    LoginStatus.invalid_credentials: HTTP_401_UNAUTHORIZED,
    LoginStatus.inactive: HTTP_401_UNAUTHORIZED,
    LoginStatus.failed: HTTP_401_UNAUTHORIZED,
    LoginStatus.locked: HTTP_423_LOCKED,
    LoginStatus.rejected: HTTP_400_BAD_REQUEST,
}


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, repr=False)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(repr=False)


class RefreshRequest(BaseModel):
    access_token: str = Field(repr=False)
    refresh_token: str = Field(repr=False)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(repr=False)
    new_password: str = Field(min_length=1, repr=False)


class ResetPasswordRequest(BaseModel):
    email: str


class ConfirmResetRequest(BaseModel):
    email: str
    token: str = Field(repr=False)
    new_password: str = Field(min_length=1, repr=False)


class UserInfoResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    display_name: str
    roles: list[str]
    is_admin: bool
    is_active: bool
    audit_id: uuid.UUID | None = None


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str
    user: UserInfoResponse


class OperationResponse(BaseModel):
    success: bool
    message: str


class MeResponse(BaseModel):
    authenticated: bool
    id: str | None
    display_name: str
    email: str | None
    roles: list[str]
    audit_id: uuid.UUID | None
    auth_mode: AuthMode | None


class ModeResponse(BaseModel):
    auth_mode: AuthMode
    requires_user_authentication: bool
    supports_manual_login: bool


LoginFlow = CredentialedAuthService | FederatedAuthService


def login_flow_dep(
    cfg: AuthConfig = Depends(auth_config_dep),
    registry: IdentityRegistry = Depends(identity_registry_dep),
    store: CredentialStore | None = Depends(credential_store_dep),
    tokens: EndUserTokenService | None = Depends(end_user_tokens_dep),
) -> LoginFlow:
    if cfg.mode is AuthMode.entra_external_id:
        if cfg.federated is None:
            raise HTTPException(
                status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Federated login is not configured"
            )
        return FederatedAuthService(
            cfg=cfg.federated, registry=registry, admin_email_domains=cfg.admin_email_domains
        )
    if cfg.mode is AuthMode.disabled:
        raise UnsupportedInModeError(
            "User authentication",
            cfg.mode.value,
            "Register through /v1/registration to obtain an audit id and service token.",
        )
    if store is None or tokens is None:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Credential store is not configured"
        )
    return CredentialedAuthService(
        store=store,
        tokens=tokens,
        registry=registry,
        admin_email_domains=cfg.admin_email_domains,
    )


def _user_response(user: UserInfo) -> UserInfoResponse:
    return UserInfoResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        display_name=user.display_name,
        roles=list(user.roles),
        is_admin=user.is_admin,
        is_active=user.is_active,
        audit_id=user.audit_id,
    )


def _auth_response(result: LoginResult) -> AuthResponse:
    if not result.succeeded:
        raise HTTPException(
            status_code=_STATUS_CODES.get(result.status, HTTP_401_UNAUTHORIZED),
            detail=result.message,
        )
    if not (result.access_token and result.refresh_token and result.expires_at and result.user):
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication unavailable"
        )
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_at=result.expires_at,
        token_type=result.token_type,
        user=_user_response(result.user),
    )


@router.post("/register", response_model=AuthResponse, status_code=HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    flow: LoginFlow = Depends(login_flow_dep),
    session: AsyncSession = Depends(db_session),
) -> AuthResponse:
    result = await flow.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    response = _auth_response(result)
    await session.commit()
    return response


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    flow: LoginFlow = Depends(login_flow_dep),
    session: AsyncSession = Depends(db_session),
) -> AuthResponse:
    result = await flow.login(email=body.email, password=body.password)
    response = _auth_response(result)
    await session.commit()
    return response


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    body: RefreshRequest,
    flow: LoginFlow = Depends(login_flow_dep),
    session: AsyncSession = Depends(db_session),
) -> AuthResponse:
    result = await flow.refresh(access_token=body.access_token, refresh_token=body.refresh_token)
    response = _auth_response(result)
    await session.commit()
    return response


@router.post("/change-password", response_model=OperationResponse)
async def change_password(
    body: ChangePasswordRequest,
    flow: LoginFlow = Depends(login_flow_dep),
    ctx: AuthContext = Depends(require_authenticated),
) -> OperationResponse:
    if ctx.id is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Authentication required")
    changed = await flow.change_password(ctx.id, body.current_password, body.new_password)
    if not changed:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Password change failed")
    return OperationResponse(success=True, message="Password changed")


@router.post("/reset-password", response_model=OperationResponse)
async def request_password_reset(
    body: ResetPasswordRequest,
    flow: LoginFlow = Depends(login_flow_dep),
) -> OperationResponse:
    await flow.request_password_reset(body.email)
    # Same response whether or not the account exists.
    return OperationResponse(
        success=True, message="If the account exists, a password reset has been initiated"
    )


@router.post("/reset-password/confirm", response_model=OperationResponse)
async def confirm_password_reset(
    body: ConfirmResetRequest,
    flow: LoginFlow = Depends(login_flow_dep),
) -> OperationResponse:
    reset = await flow.confirm_password_reset(
        email=body.email, token=body.token, new_password=body.new_password
    )
    if not reset:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Password reset failed")
    return OperationResponse(success=True, message="Password has been reset")


@router.get("/me", response_model=MeResponse)
async def me(ctx: AuthContext = Depends(get_auth_context)) -> MeResponse:
    return MeResponse(
        authenticated=ctx.authenticated,
        id=ctx.id,
        display_name=ctx.get_display_name(),
        email=ctx.email,
        roles=list(ctx.roles),
        audit_id=ctx.audit_id,
        auth_mode=ctx.mode,
    )


@router.get("/mode", response_model=ModeResponse)
async def mode(cfg: AuthConfig = Depends(auth_config_dep)) -> ModeResponse:
    return ModeResponse(
        auth_mode=cfg.mode,
        requires_user_authentication=cfg.requires_user_authentication,
        supports_manual_login=cfg.mode is AuthMode.bearer_token,
    )


# --- Module Notes -----------------------------------------------------------
# The credential store is injected at app construction; without one, BearerToken
# deployments answer 503 on the login endpoints.
