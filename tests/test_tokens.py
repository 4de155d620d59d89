"""
tests.test_tokens

End-user token issuing and validation.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from conftest import SERVICE_SECRET, USER_SECRET
from identity_gateway.auth.errors import ConfigurationError
from identity_gateway.auth.jwt import JwtConfig, issue_token
from identity_gateway.auth.models import CredentialUser, ValidationStatus
from identity_gateway.auth.tokens import EndUserTokenService


def _cfg(**overrides) -> JwtConfig:
    values = {
        "alg": "HS256",
        "issuer": "identity-gateway",
        "audience": "business-api",
        "secret": USER_SECRET,
        "lifetime": timedelta(minutes=60),
        "leeway": timedelta(minutes=5),
    }
    values.update(overrides)
    return JwtConfig(**values)


ADA = CredentialUser(id="user-1", email="ada@example.com", first_name="Ada", last_name="Lovelace")


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_issue_and_validate_round_trip() -> None:
    svc = EndUserTokenService(_cfg())
    token = svc.issue_access_token(ADA, ["Sales", "User", "Sales"])

    result = svc.validate_token(token)
    assert result.is_valid
    assert result.subject == "user-1"
    assert result.roles == ["Sales", "User"]
    assert result.claims["email"] == "ada@example.com"
    assert result.claims["display_name"] == "Ada Lovelace"
    assert result.claims["service_token"] is False


def test_each_token_gets_a_fresh_jti() -> None:
    svc = EndUserTokenService(_cfg())
    first = svc.validate_token(svc.issue_access_token(ADA, ["User"]))
    second = svc.validate_token(svc.issue_access_token(ADA, ["User"]))
    assert first.claims["jti"] != second.claims["jti"]


def test_extra_claims_cannot_override_registered_claims() -> None:
    svc = EndUserTokenService(_cfg())
    token = svc.issue_access_token(ADA, ["User"], extra_claims={"sub": "someone-else", "audit_id": "x"})
    result = svc.validate_token(token)
    assert result.subject == "user-1"
    assert result.claims["audit_id"] == "x"


def test_expired_token_is_rejected_but_refreshable() -> None:
    issued_at = datetime.now(tz=UTC) - timedelta(hours=3)
    issuer = EndUserTokenService(_cfg(), clock=Clock(issued_at))
    token = issuer.issue_access_token(ADA, ["User"])

    svc = EndUserTokenService(_cfg())
    assert svc.validate_token(token).status is ValidationStatus.invalid
    refresh = svc.validate_expired_token_for_refresh(token)
    assert refresh.is_valid
    assert refresh.subject == "user-1"


def test_token_within_clock_skew_is_accepted() -> None:
    issued_at = datetime.now(tz=UTC) - timedelta(minutes=62)
    token = EndUserTokenService(_cfg(), clock=Clock(issued_at)).issue_access_token(ADA, ["User"])
    assert EndUserTokenService(_cfg()).validate_token(token).is_valid


@pytest.mark.parametrize(
    "other",
    [
        _cfg(secret="another-signing-secret-that-is-long-enough"),
        _cfg(audience="someone-else"),
        _cfg(issuer="rogue-issuer"),
    ],
)
def test_refresh_path_still_enforces_signature_issuer_and_audience(other: JwtConfig) -> None:
    token = EndUserTokenService(other).issue_access_token(ADA, ["User"])
    svc = EndUserTokenService(_cfg())
    assert svc.validate_token(token).status is ValidationStatus.invalid
    assert svc.validate_expired_token_for_refresh(token).status is ValidationStatus.invalid


def test_service_tokens_are_not_end_user_tokens() -> None:
    cfg = _cfg()
    token = issue_token(cfg=cfg, subject="user-1", claims={"service_token": True})
    assert EndUserTokenService(cfg).validate_token(token).status is ValidationStatus.invalid


def test_alg_none_is_rejected() -> None:
    payload = {
        "sub": "user-1",
        "iss": "identity-gateway",
        "aud": "business-api",
        "iat": int(datetime.now(tz=UTC).timestamp()),
        "exp": int((datetime.now(tz=UTC) + timedelta(minutes=5)).timestamp()),
    }
    token = jwt.encode(payload, key=None, algorithm="none")
    assert EndUserTokenService(_cfg()).validate_token(token).status is ValidationStatus.invalid


@pytest.mark.parametrize("token", ["", "   ", "not-a-jwt", "a.b.c"])
def test_garbage_is_invalid(token: str) -> None:
    assert EndUserTokenService(_cfg()).validate_token(token).status is ValidationStatus.invalid


@pytest.mark.parametrize("secret", ["", "x" * 31])
def test_weak_secret_fails_at_construction(secret: str) -> None:
    with pytest.raises(ConfigurationError):
        EndUserTokenService(_cfg(secret=secret))


def test_refresh_tokens_are_random_and_long() -> None:
    svc = EndUserTokenService(_cfg(secret=SERVICE_SECRET))
    first, second = svc.issue_refresh_token(), svc.issue_refresh_token()
    assert first != second
    assert len(first) >= 86


def test_get_expiry_uses_configured_lifetime() -> None:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    svc = EndUserTokenService(_cfg(lifetime=timedelta(minutes=30)), clock=Clock(now))
    assert svc.get_expiry() == now + timedelta(minutes=30)
