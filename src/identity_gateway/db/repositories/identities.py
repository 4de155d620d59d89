"""
identity_gateway.db.repositories.identities

Repositories for the three correlation record partitions.

Responsibilities:
- Look up records by their partition-specific key and by audit id.
- Insert new records (flush only; the caller commits).
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from identity_gateway.auth.modes import AuthMode
from identity_gateway.db.models import AnonymousUser, CredentialedUser, FederatedUser


class AnonymousUserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, audit_id: uuid.UUID) -> AnonymousUser | None:
        return await self._session.get(AnonymousUser, audit_id)

    async def get_by_email(self, email: str) -> AnonymousUser | None:
        stmt = select(AnonymousUser).where(AnonymousUser.email == email.lower())
        return (await self._session.execute(stmt)).scalars().first()

    async def create(
        self,
        *,
        display_name: str,
        email: str,
        organization: str | None,
        session_id: str | None,
        workshop_role: str | None,
    ) -> AnonymousUser:
        user = AnonymousUser(
            audit_id=uuid.uuid4(),
            display_name=display_name,
            email=email,
            organization=organization,
            session_id=session_id,
            workshop_role=workshop_role,
            mode=AuthMode.disabled,
        )
        self._session.add(user)
        await self._session.flush()
        return user


class CredentialedUserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, external_user_id: str) -> CredentialedUser | None:
        return await self._session.get(CredentialedUser, external_user_id)

    async def get_by_audit_id(self, audit_id: uuid.UUID) -> CredentialedUser | None:
        stmt = select(CredentialedUser).where(CredentialedUser.audit_id == audit_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def create(
        self,
        *,
        external_user_id: str,
        email: str,
        display_name: str,
        organization: str | None,
        roles: list[str],
    ) -> CredentialedUser:
        user = CredentialedUser(
            external_user_id=external_user_id,
            audit_id=uuid.uuid4(),
            email=email,
            display_name=display_name,
            organization=organization,
            roles=roles,
            mode=AuthMode.bearer_token,
        )
        self._session.add(user)
        await self._session.flush()
        return user


class FederatedUserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, subject_id: str) -> FederatedUser | None:
        return await self._session.get(FederatedUser, subject_id)

    async def get_by_audit_id(self, audit_id: uuid.UUID) -> FederatedUser | None:
        stmt = select(FederatedUser).where(FederatedUser.audit_id == audit_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def create(
        self,
        *,
        subject_id: str,
        email: str,
        display_name: str,
        tenant_id: str | None,
        granted_scopes: str | None,
        claims_snapshot: dict[str, Any],
    ) -> FederatedUser:
        user = FederatedUser(
            subject_id=subject_id,
            audit_id=uuid.uuid4(),
            email=email,
            display_name=display_name,
            tenant_id=tenant_id,
            granted_scopes=granted_scopes,
            claims_snapshot=claims_snapshot,
            mode=AuthMode.entra_external_id,
        )
        self._session.add(user)
        await self._session.flush()
        return user


# --- Module Notes -----------------------------------------------------------
# Each `get_by_audit_id` hits the unique index on `audit_id`; AnonymousUser uses
# the primary key directly.
