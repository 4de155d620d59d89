"""
tests.test_federated

Federated login flow (EntraExternalId mode).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import provider_token
from identity_gateway.auth.config import FederatedConfig
from identity_gateway.auth.errors import InvalidRegistrationError, UnsupportedInModeError
from identity_gateway.auth.federated import FederatedAuthService
from identity_gateway.auth.models import ValidationStatus
from identity_gateway.db.models import FederatedUser

FEDERATED = FederatedConfig(
    tenant_id="tenant-1",
    client_id="client-1",
    client_secret="client-secret",
    authority="https://login.example.com/tenant-1",
)


@pytest.fixture
def service(registry) -> FederatedAuthService:
    return FederatedAuthService(cfg=FEDERATED, registry=registry)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operation",
    ["register", "login", "refresh", "change_password", "request_password_reset", "confirm_password_reset"],
)
async def test_manual_operations_are_unsupported(service: FederatedAuthService, operation: str) -> None:
    with pytest.raises(UnsupportedInModeError) as exc:
        await getattr(service, operation)()
    assert exc.value.mode == "EntraExternalId"
    assert "not supported in EntraExternalId mode" in str(exc.value)


def test_valid_provider_token(service: FederatedAuthService) -> None:
    result = service.validate_federated_token(provider_token())
    assert result.is_valid
    assert result.claims["oid"] == "oid-123"


@pytest.mark.parametrize(
    "overrides",
    [
        {"tid": "other-tenant"},
        {"aud": "other-client"},
        {"exp": int((datetime.now(tz=UTC) - timedelta(hours=1)).timestamp())},
        {"oid": None},
        {"exp": None},
    ],
)
def test_rejected_provider_tokens(service: FederatedAuthService, overrides) -> None:
    assert service.validate_federated_token(provider_token(**overrides)).status is ValidationStatus.invalid


def test_map_claims_to_roles(service: FederatedAuthService) -> None:
    assert service.map_claims_to_roles({"roles": ["sales"], "groups": ["Helpdesk-Support"]}) == [
        "Sales",
        "CustomerService",
    ]


@pytest.mark.asyncio
async def test_create_or_update_user_from_claims(service: FederatedAuthService, registry, session) -> None:
    claims = service.validate_federated_token(provider_token()).claims
    identity = await service.create_or_update_user_from_claims(claims)
    await session.commit()

    assert identity.subject_id == "oid-123"
    assert identity.email == "ada@example.com"
    assert identity.roles == ("Sales",)
    assert identity.tenant_id == "tenant-1"

    record = await registry.get_by_audit_id(identity.audit_id)
    assert isinstance(record, FederatedUser)
    assert record.granted_scopes == "openid profile"

    again = await service.create_or_update_user_from_claims(claims)
    assert again.audit_id == identity.audit_id


@pytest.mark.asyncio
async def test_claims_without_email_are_rejected(service: FederatedAuthService) -> None:
    with pytest.raises(InvalidRegistrationError):
        await service.create_or_update_user_from_claims({"oid": "oid-1", "tid": "tenant-1"})
