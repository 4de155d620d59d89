"""
tests.test_identity_registry

Identity registry: registration, cross-partition lookup and cached validation.
"""

from __future__ import annotations

import uuid
from datetime import UTC, timedelta

import pytest
from sqlalchemy import select

from conftest import FakeTimer
from identity_gateway.auth.config import RegistryPolicy
from identity_gateway.auth.errors import InvalidRegistrationError
from identity_gateway.auth.modes import AuthMode
from identity_gateway.db.models import AnonymousUser, CredentialedUser, FederatedUser
from identity_gateway.services.identity_registry import IdentityRegistry
from identity_gateway.services.validation_cache import ValidationCache


@pytest.mark.asyncio
async def test_register_anonymous_then_validate(registry: IdentityRegistry, session) -> None:
    audit_id = await registry.register_anonymous("Ada Lovelace", "ada@example.com", "Analytical Engines")
    await session.commit()

    assert await registry.validate(audit_id) is True
    record = await registry.get_by_audit_id(audit_id)
    assert isinstance(record, AnonymousUser)
    assert record.display_name == "Ada Lovelace"
    assert record.organization == "Analytical Engines"
    assert record.mode is AuthMode.disabled


@pytest.mark.asyncio
async def test_registration_is_idempotent_by_email(registry: IdentityRegistry, session) -> None:
    first = await registry.register_anonymous("Ada", "ada@example.com")
    second = await registry.register_anonymous("Ada Lovelace", "ADA@Example.com", "Babbage & Co")
    await session.commit()

    assert first == second
    record = await registry.get_by_audit_id(first)
    assert record is not None
    assert record.display_name == "Ada Lovelace"
    assert record.organization == "Babbage & Co"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("name", "email"),
    [
        ("", "ada@example.com"),
        ("   ", "ada@example.com"),
        ("Ada", ""),
        ("Ada", "not-an-email"),
        ("Ada", "ada@@example.com"),
        ("Ada", "ada@example"),
        ("x" * 101, "a@b.io"),
    ],
)
async def test_register_rejects_bad_input(registry: IdentityRegistry, name: str, email: str) -> None:
    with pytest.raises(InvalidRegistrationError):
        await registry.register_anonymous(name, email)


@pytest.mark.asyncio
async def test_unknown_and_nil_ids_do_not_validate(registry: IdentityRegistry) -> None:
    assert await registry.validate(uuid.UUID(int=0)) is False
    assert await registry.validate(uuid.uuid4()) is False
    assert await registry.validate("not-a-uuid") is False
    assert await registry.validate(None) is False
    assert await registry.get_by_audit_id(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_cached_validation_outlives_deletion_until_ttl(
    registry: IdentityRegistry, session, timer: FakeTimer
) -> None:
    audit_id = await registry.register_anonymous("Ada", "ada@example.com")
    await session.commit()
    assert await registry.validate(audit_id) is True

    record = await registry.get_by_audit_id(audit_id)
    await session.delete(record)
    await session.commit()

    # Eventual revocation: the cached outcome is trusted for one TTL window.
    assert await registry.validate(audit_id) is True
    timer.advance(timedelta(minutes=61))
    assert await registry.validate(audit_id) is False


@pytest.mark.asyncio
async def test_zero_ttl_disables_caching(session) -> None:
    cache = ValidationCache(ttl=timedelta(0))
    registry = IdentityRegistry(session=session, cache=cache, policy=RegistryPolicy(cache_ttl=timedelta(0)))
    audit_id = await registry.register_anonymous("Ada", "ada@example.com")
    await session.commit()
    assert not cache.enabled
    assert await registry.validate(audit_id) is True

    await session.delete(await registry.get_by_audit_id(audit_id))
    await session.commit()
    assert await registry.validate(audit_id) is False


@pytest.mark.asyncio
async def test_registration_not_required_accepts_any_non_nil_id(session, cache) -> None:
    registry = IdentityRegistry(
        session=session, cache=cache, policy=RegistryPolicy(require_registration=False)
    )
    assert await registry.validate(uuid.uuid4()) is True
    assert await registry.validate(uuid.UUID(int=0)) is False


@pytest.mark.asyncio
async def test_credentialed_records_resolve_by_external_id(registry: IdentityRegistry, session) -> None:
    claims = {"email": "Ada@Example.com", "display_name": "Ada Lovelace", "roles": ["Sales"]}
    first = await registry.resolve_or_create_for_credentialed("store-user-1", claims)
    await session.commit()
    record = await registry.get_by_audit_id(first)
    assert isinstance(record, CredentialedUser)
    first_login = record.last_login_at

    second = await registry.resolve_or_create_for_credentialed("store-user-1", {"roles": ["Admin"]})
    await session.commit()

    assert first == second
    record = await registry.get_by_audit_id(first)
    assert record.email == "ada@example.com"
    assert record.roles == ["Admin"]
    assert record.last_login_at >= first_login
    assert record.last_login_at.tzinfo is UTC
    assert await registry.validate(first) is True


@pytest.mark.asyncio
async def test_federated_records_keep_tenant_and_scopes(registry: IdentityRegistry, session) -> None:
    audit_id = await registry.resolve_or_create_for_federated(
        "oid-123",
        {"email": "ada@example.com", "name": "Ada", "tid": "tenant-1", "scp": "openid  profile"},
    )
    await session.commit()

    record = await registry.get_by_audit_id(audit_id)
    assert isinstance(record, FederatedUser)
    assert record.tenant_id == "tenant-1"
    assert record.granted_scopes == "openid profile"
    assert record.mode is AuthMode.entra_external_id
    assert await registry.resolve_or_create_for_federated("oid-123", {}) == audit_id


@pytest.mark.asyncio
async def test_audit_ids_are_unique_across_partitions(registry: IdentityRegistry, session) -> None:
    ids = {
        await registry.register_anonymous("Ada", "ada@example.com"),
        await registry.resolve_or_create_for_credentialed("store-user-1", {"email": "grace@example.com"}),
        await registry.resolve_or_create_for_federated("oid-1", {"email": "alan@example.com"}),
    }
    await session.commit()
    assert len(ids) == 3
    for audit_id in ids:
        assert await registry.validate(audit_id) is True


@pytest.mark.asyncio
async def test_registration_accepts_a_named_address_and_stores_the_bare_email(
    registry: IdentityRegistry, session
) -> None:
    audit_id = await registry.register_anonymous("Ada", "Ada Lovelace <Ada@Example.com>")
    await session.commit()

    record = await registry.get_by_audit_id(audit_id)
    assert record.email == "ada@example.com"
    assert await registry.register_anonymous("Ada", "ada@example.com") == audit_id


@pytest.mark.asyncio
async def test_reloaded_timestamps_are_utc(registry: IdentityRegistry, session, session_factory) -> None:
    audit_id = await registry.register_anonymous("Ada", "ada@example.com")
    await session.commit()

    async with session_factory() as fresh:
        record = await fresh.get(AnonymousUser, audit_id)
    assert record is not None
    assert record.registered_at.tzinfo is UTC


@pytest.mark.asyncio
async def test_registration_losing_an_insert_race_returns_the_existing_id(
    session_factory, cache: ValidationCache, monkeypatch
) -> None:
    async with session_factory() as first:
        winner = await IdentityRegistry(
            session=first, cache=cache, policy=RegistryPolicy()
        ).register_anonymous("Ada", "ada@example.com")
        await first.commit()

    async with session_factory() as second:
        registry = IdentityRegistry(session=second, cache=cache, policy=RegistryPolicy())
        repo = registry._anonymous
        lookup = repo.get_by_email
        lookups: list[str] = []

        async def lookup_before_other_insert_is_visible(email: str):
            lookups.append(email)
            return None if len(lookups) == 1 else await lookup(email)

        monkeypatch.setattr(repo, "get_by_email", lookup_before_other_insert_is_visible)
        loser = await registry.register_anonymous("Ada Lovelace", "ADA@example.com")
        await second.commit()

    assert loser == winner
    assert lookups == ["ada@example.com", "ada@example.com"]

    async with session_factory() as check:
        rows = (await check.execute(select(AnonymousUser))).scalars().all()
    assert [r.audit_id for r in rows] == [winner]
    assert rows[0].display_name == "Ada Lovelace"
