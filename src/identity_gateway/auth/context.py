"""
identity_gateway.auth.context

Per-request identity view, independent of the active authentication mode.

Responsibilities:
- Define `AuthContext` and its display-name fallback contract.
- Build contexts from verified end-user token claims, federated identities, or
  (Disabled mode) whatever correlation id the caller already established.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from identity_gateway.auth.models import FederatedIdentity
from identity_gateway.auth.modes import AuthMode
from identity_gateway.auth.roles import ALL_ROLES, ROLE_ADMIN
from identity_gateway.db.models import CorrelationRecord

ANONYMOUS = "Anonymous"
UNKNOWN_USER = "Unknown User"
SYSTEM_ID = "system"


@dataclass(frozen=True, slots=True)
class AuthContext:
    authenticated: bool
    id: str | None = None
    display_name: str | None = None
    roles: tuple[str, ...] = ()
    email: str | None = None
    audit_id: uuid.UUID | None = None
    session_id: str | None = None
    mode: AuthMode | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def get_display_name(self) -> str:
        # Unauthenticated callers are always "Anonymous", whatever names are populated.
        if not self.authenticated:
            return ANONYMOUS
        if self.display_name and self.display_name.strip():
            return self.display_name
        if self.id and self.id.strip():
            return self.id
        return UNKNOWN_USER

    def has_role(self, role: str) -> bool:
        wanted = role.lower()
        return any(r.lower() == wanted for r in self.roles)

    def has_any_role(self, *roles: str) -> bool:
        return any(self.has_role(r) for r in roles)

    @property
    def is_admin(self) -> bool:
        return self.has_role(ROLE_ADMIN)


def anonymous_context(mode: AuthMode | None = None) -> AuthContext:
    return AuthContext(authenticated=False, mode=mode)


def context_from_token_claims(claims: Mapping[str, Any], *, mode: AuthMode) -> AuthContext:
    raw_roles = claims.get("roles", [])
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    display = claims.get("display_name") or claims.get("name")
    audit_raw = claims.get("audit_id")
    audit_id: uuid.UUID | None = None
    if audit_raw:
        try:
            audit_id = uuid.UUID(str(audit_raw))
        except ValueError:
            audit_id = None
    return AuthContext(
        authenticated=True,
        id=str(claims["sub"]) if claims.get("sub") else None,
        display_name=str(display) if display else None,
        roles=tuple(dict.fromkeys(str(r) for r in raw_roles)),
        email=claims.get("email") or None,
        audit_id=audit_id,
        session_id=claims.get("session_id"),
        mode=mode,
    )


def context_from_federated_identity(identity: FederatedIdentity) -> AuthContext:
    return AuthContext(
        authenticated=True,
        id=identity.subject_id,
        display_name=identity.display_name or None,
        roles=identity.roles,
        email=identity.email or None,
        audit_id=identity.audit_id,
        mode=AuthMode.entra_external_id,
        extra={"tenant_id": identity.tenant_id} if identity.tenant_id else {},
    )


def context_for_disabled_mode(
    correlation_id: uuid.UUID | None = None,
    record: CorrelationRecord | None = None,
    *,
    session_id: str | None = None,
) -> AuthContext:
    """
    Disabled mode performs no verification: the context is never authenticated and
    carries the full role set so default-allow authorization holds.
    """

    return AuthContext(
        authenticated=False,
        id=str(correlation_id) if correlation_id else SYSTEM_ID,
        display_name=record.display_name if record is not None else "System User",
        roles=ALL_ROLES,
        email=record.email if record is not None else None,
        audit_id=correlation_id,
        session_id=session_id,
        mode=AuthMode.disabled,
    )


# --- Module Notes -----------------------------------------------------------
# Authorization code should consume `AuthContext.roles` only; it should never branch
# on how the context was produced.
