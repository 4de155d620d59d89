"""
identity_gateway.services.identity_registry

Identity registry: one logical keyspace of correlation records across all modes.

Responsibilities:
- Register anonymous users (idempotent by email).
- Resolve-or-create records for credentialed and federated identities.
- Answer "does this audit id resolve?" with a TTL-cached boolean.
- Read a record by audit id regardless of which partition holds it.

Transactions:
- The registry flushes but never commits; the request (or `session_scope`) owns
  the commit so registration and token issuance succeed or fail together.
- Anonymous inserts run in a savepoint; a unique-email violation from a
  concurrent registration resolves to the record that won.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_gateway.auth.config import RegistryPolicy
from identity_gateway.auth.errors import InvalidRegistrationError
from identity_gateway.db.models import CorrelationRecord
from identity_gateway.db.repositories.identities import (
    AnonymousUserRepo,
    CredentialedUserRepo,
    FederatedUserRepo,
)
from identity_gateway.observability.logging import get_logger
from identity_gateway.services.validation_cache import ValidationCache

log = get_logger(__name__)

_EMAIL = TypeAdapter(EmailStr)
_MAX_NAME = 100
_MAX_EMAIL = 320


def normalize_email(email: str) -> str | None:
    """Lower-cased address, or None when `email` is not a valid address."""
    if not email or len(email) > _MAX_EMAIL:
        return None
    try:
        return _EMAIL.validate_python(email).lower()
    except ValidationError:
        return None


def parse_audit_id(value: uuid.UUID | str | None) -> uuid.UUID | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        return None


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _first(claims: Mapping[str, Any], *names: str) -> str | None:
    for name in names:
        value = claims.get(name)
        if value:
            return str(value)
    return None


class IdentityRegistry:
    def __init__(
        self,
        *,
        session: AsyncSession,
        cache: ValidationCache,
        policy: RegistryPolicy,
    ) -> None:
        self._session = session
        self._cache = cache
        self._policy = policy

        self._anonymous = AnonymousUserRepo(session)
        self._credentialed = CredentialedUserRepo(session)
        self._federated = FederatedUserRepo(session)

    async def register_anonymous(
        self,
        name: str,
        email: str,
        organization: str | None = None,
        session_id: str | None = None,
        workshop_role: str | None = None,
    ) -> uuid.UUID:
        name = (name or "").strip()
        if not name:
            raise InvalidRegistrationError("Name is required")
        if len(name) > _MAX_NAME:
            raise InvalidRegistrationError(f"Name cannot exceed {_MAX_NAME} characters")
        normalized = normalize_email((email or "").strip())
        if normalized is None:
            raise InvalidRegistrationError("Valid email is required")

        existing = await self._anonymous.get_by_email(normalized)
        if existing is None:
            try:
                async with self._session.begin_nested():
                    user = await self._anonymous.create(
                        display_name=name,
                        email=normalized,
                        organization=organization.strip() if organization else None,
                        session_id=session_id.strip() if session_id else None,
                        workshop_role=workshop_role.strip() if workshop_role else None,
                    )
            except IntegrityError:
                # A concurrent registration inserted the same email first.
                existing = await self._anonymous.get_by_email(normalized)
                if existing is None:
                    raise
                log.info("anonymous_user_registration_raced", audit_id=str(existing.audit_id))
            else:
                self._cache.set(user.audit_id, True)
                log.info("anonymous_user_registered", audit_id=str(user.audit_id))
                return user.audit_id

        # Same email, same audit id. Only the mutable profile fields change.
        existing.display_name = name
        if organization is not None:
            existing.organization = organization.strip() or None
        await self._session.flush()
        log.info("anonymous_user_reregistered", audit_id=str(existing.audit_id))
        return existing.audit_id

    async def resolve_or_create_for_credentialed(
        self, external_user_id: str, claims: Mapping[str, Any]
    ) -> uuid.UUID:
        if not external_user_id or not external_user_id.strip():
            raise InvalidRegistrationError("Credential store user id is required")

        roles_raw = claims.get("roles") or []
        roles = [roles_raw] if isinstance(roles_raw, str) else [str(r) for r in roles_raw]
        email = (_first(claims, "email") or "").lower()
        name = _first(claims, "display_name", "name") or ""

        user = await self._credentialed.get(external_user_id)
        if user is not None:
            user.last_login_at = _utcnow()
            if email:
                user.email = email
            if name:
                user.display_name = name
            if roles:
                user.roles = roles
            await self._session.flush()
            return user.audit_id

        user = await self._credentialed.create(
            external_user_id=external_user_id,
            email=email,
            display_name=name,
            organization=_first(claims, "organization"),
            roles=roles,
        )
        user.last_login_at = _utcnow()
        await self._session.flush()
        self._cache.set(user.audit_id, True)
        log.info(
            "credentialed_user_registered",
            audit_id=str(user.audit_id),
            external_user_id=external_user_id,
        )
        return user.audit_id

    async def resolve_or_create_for_federated(
        self, subject_id: str, claim_map: Mapping[str, Any]
    ) -> uuid.UUID:
        if not subject_id or not subject_id.strip():
            raise InvalidRegistrationError("Federated subject id is required")

        email = (_first(claim_map, "email", "preferred_username", "upn") or "").lower()
        name = _first(claim_map, "name", "display_name") or ""
        tenant_id = _first(claim_map, "tid", "tenant_id")
        scopes_raw = claim_map.get("scp") or ""
        if isinstance(scopes_raw, list | tuple):
            scopes_raw = " ".join(str(s) for s in scopes_raw)
        scopes = " ".join(str(scopes_raw).split()) or None

        user = await self._federated.get(subject_id)
        if user is not None:
            user.last_login_at = _utcnow()
            if email:
                user.email = email
            if name:
                user.display_name = name
            if scopes:
                user.granted_scopes = scopes
            await self._session.flush()
            return user.audit_id

        user = await self._federated.create(
            subject_id=subject_id,
            email=email,
            display_name=name,
            tenant_id=tenant_id,
            granted_scopes=scopes,
            claims_snapshot={k: v for k, v in claim_map.items() if isinstance(v, str | int | bool)},
        )
        user.last_login_at = _utcnow()
        await self._session.flush()
        self._cache.set(user.audit_id, True)
        log.info("federated_user_registered", audit_id=str(user.audit_id), tenant_id=tenant_id)
        return user.audit_id

    async def validate(self, audit_id: uuid.UUID | str | None) -> bool:
        """
        Existence check across all partitions. Results are cached for the configured
        TTL (see `ValidationCache` for the staleness contract).
        """

        parsed = parse_audit_id(audit_id)
        if parsed is None or parsed.int == 0:
            return False

        if not self._policy.require_registration:
            # Operator opted out of registry gating: any well-formed id is accepted.
            return True

        cached = self._cache.get(parsed)
        if cached is not None:
            return cached

        exists = await self.get_by_audit_id(parsed) is not None
        self._cache.set(parsed, exists)
        return exists

    async def revalidate(self, audit_id: uuid.UUID | str | None) -> bool:
        """Drop any cached outcome for `audit_id`, then validate against the partitions."""
        parsed = parse_audit_id(audit_id)
        if parsed is not None:
            self._cache.invalidate(parsed)
            log.info("registry_cache_invalidated", audit_id=str(parsed))
        return await self.validate(parsed)

    async def get_by_audit_id(self, audit_id: uuid.UUID | str | None) -> CorrelationRecord | None:
        parsed = parse_audit_id(audit_id)
        if parsed is None or parsed.int == 0:
            return None

        # Partitions are checked in a fixed order; each check is a single indexed lookup.
        record: CorrelationRecord | None = await self._anonymous.get(parsed)
        if record is not None:
            return record
        record = await self._credentialed.get_by_audit_id(parsed)
        if record is not None:
            return record
        return await self._federated.get_by_audit_id(parsed)


# --- Module Notes -----------------------------------------------------------
# `validate` is the revocation hook used by the service token path: a record that
# stops resolving invalidates every service token that references it once the
# cached outcome expires.
