"""
identity_gateway.db.models

Persistence schema for the identity registry.

Responsibilities:
- Define ORM models for the three correlation record variants:
  - AnonymousUser: registered without credentials (Disabled mode)
  - CredentialedUser: backed by the external credential store (BearerToken mode)
  - FederatedUser: backed by an external identity provider (EntraExternalId mode)
- Keep `audit_id` uniquely indexed in every partition so cross-variant lookup stays O(1).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, String, TypeDecorator, Uuid as SAUuid
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapped, mapped_column

from identity_gateway.auth.modes import AuthMode
from identity_gateway.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timestamps are stored in UTC and always read back timezone-aware.
    SQLite drops the offset on storage; it is re-attached on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            # Naive values are taken to be UTC already.
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class CorrelationRecord(Base):
    """
    Shared shape of every identity variant. `audit_id` is the single cross-mode
    correlation key: assigned once at creation, never mutated, never reused.
    """

    __abstract__ = True

    audit_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), nullable=False, unique=True, index=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    organization: Mapped[str | None] = mapped_column(String(200), nullable=True)
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    mode: Mapped[AuthMode] = mapped_column(Enum(AuthMode), nullable=False)


class AnonymousUser(CorrelationRecord):
    __tablename__ = "anonymous_users"

    # The audit id doubles as the primary key: there is no separate credential.
    audit_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Stored lower-cased. One anonymous record per email.
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    workshop_role: Mapped[str | None] = mapped_column(String(50), nullable=True)


class CredentialedUser(CorrelationRecord):
    __tablename__ = "credentialed_users"

    # Opaque id issued by the credential store.
    external_user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class FederatedUser(CorrelationRecord):
    __tablename__ = "federated_users"

    # Identity provider subject (object id).
    subject_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    granted_scopes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    claims_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


# --- Module Notes -----------------------------------------------------------
# Records are never hard-deleted by the service; revocation is modeled by a record
# ceasing to resolve, which only happens through explicit operator action.
