"""
identity_gateway.auth.models

Auth domain models.

Responsibilities:
- Define the tri-state token validation result returned across public boundaries.
- Define the value objects produced by token issuance.
- Define the credential-store user shape consumed by the credentialed login flow.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from identity_gateway.auth.modes import AuthMode

SERVICE_TOKEN_CLAIM = "service_token"


class ValidationStatus(enum.StrEnum):
    valid = "VALID"
    invalid = "INVALID"
    # Unexpected failure (backing store down, bug); callers should not retry blindly.
    error = "ERROR"


@dataclass(frozen=True, slots=True)
class TokenValidation:
    """
    Result of validating a token. Deliberately carries no failure reason so callers
    cannot tell expired from revoked from malformed; the reason is logged instead.
    """

    status: ValidationStatus
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.status is ValidationStatus.valid

    @property
    def subject(self) -> str | None:
        sub = self.claims.get("sub")
        return str(sub) if sub else None

    @property
    def roles(self) -> list[str]:
        raw = self.claims.get("roles", [])
        if isinstance(raw, str):
            return [raw]
        if isinstance(raw, list):
            return [str(r) for r in raw]
        return []

    @classmethod
    def valid(cls, claims: dict[str, Any]) -> TokenValidation:
        return cls(status=ValidationStatus.valid, claims=claims)

    @classmethod
    def invalid(cls) -> TokenValidation:
        return cls(status=ValidationStatus.invalid)

    @classmethod
    def error(cls) -> TokenValidation:
        return cls(status=ValidationStatus.error)


@dataclass(frozen=True, slots=True)
class IssuedServiceToken:
    token: str
    correlation_id: uuid.UUID
    mode: AuthMode
    expires_at: datetime
    token_type: str = "Bearer"


@dataclass(frozen=True, slots=True)
class CredentialUser:
    """User as exposed by the external credential store."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    roles: tuple[str, ...] = ()
    is_active: bool = True
    organization: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True, slots=True)
class FederatedIdentity:
    subject_id: str
    email: str
    display_name: str
    first_name: str
    last_name: str
    tenant_id: str | None
    roles: tuple[str, ...]
    audit_id: uuid.UUID | None = None


# --- Module Notes -----------------------------------------------------------
# Keep these models framework-free; HTTP schemas live next to the routers.
