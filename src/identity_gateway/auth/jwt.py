"""
identity_gateway.auth.jwt

JWT issuing and validation helpers shared by both trust domains.

Responsibilities:
- Issue HS256 tokens with a fixed set of registered claims (iss/aud/sub/iat/exp/jti).
- Decode and validate tokens with strict claim requirements.
- Enforce minimum signing-secret strength at configuration time.

Note:
- Both end-user and service tokens use a shared symmetric secret; the same secret
  signs and validates. Each trust domain has its own secret.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError

from identity_gateway.auth.errors import ConfigurationError

MIN_SECRET_LENGTH = 32
_ALLOWED_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]


@dataclass(frozen=True, slots=True)
class JwtConfig:
    # Algorithm/issuer/audience are enforced during decoding.
    alg: str
    issuer: str
    audience: str
    secret: str
    lifetime: timedelta = timedelta(hours=1)
    # Clock skew tolerance; applied to exp/iat checks only.
    leeway: timedelta = timedelta(minutes=5)


class JwtValidationError(Exception):
    pass


def require_strong_secret(secret: str, *, name: str) -> None:
    if not secret or not secret.strip():
        raise ConfigurationError(f"{name} is not configured")
    if len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(
            f"{name} must be at least {MIN_SECRET_LENGTH} characters long"
        )


def validate_jwt_config(cfg: JwtConfig, *, name: str) -> None:
    require_strong_secret(cfg.secret, name=f"{name} secret")
    if cfg.alg not in _ALLOWED_ALGORITHMS:
        raise ConfigurationError(f"{name} algorithm must be one of {sorted(_ALLOWED_ALGORITHMS)}")
    if not cfg.issuer.strip():
        raise ConfigurationError(f"{name} issuer cannot be empty")
    if not cfg.audience.strip():
        raise ConfigurationError(f"{name} audience cannot be empty")
    if cfg.lifetime <= timedelta(0):
        raise ConfigurationError(f"{name} lifetime must be positive")
    if cfg.leeway < timedelta(0):
        raise ConfigurationError(f"{name} clock skew cannot be negative")


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def token_expiry(issued_at: datetime, lifetime: timedelta) -> datetime:
    """Expiry as carried in the `exp` claim, truncated to whole seconds."""
    return datetime.fromtimestamp(int((issued_at + lifetime).timestamp()), tz=UTC)


def issue_token(
    *,
    cfg: JwtConfig,
    subject: str,
    claims: Mapping[str, Any] | None = None,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    issued_at = now or utcnow()
    expires_at = token_expiry(issued_at, ttl if ttl is not None else cfg.lifetime)
    payload: dict[str, Any] = dict(claims or {})
    # Registered claims are set last so a claim bag cannot override them.
    payload.update(
        {
            "iss": cfg.issuer,
            "aud": cfg.audience,
            "sub": subject,
            "jti": str(uuid.uuid4()),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
    )
    return jwt.encode(payload, cfg.secret, algorithm=cfg.alg)


def decode_and_validate(*, cfg: JwtConfig, token: str, verify_exp: bool = True) -> dict[str, Any]:
    try:
        # jwt.decode enforces signature + registered claims (issuer/audience/exp, etc.).
        # The algorithm list is pinned so an "alg": "none" header is rejected.
        return jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            leeway=cfg.leeway if verify_exp else timedelta(0),
            options={
                "require": _REQUIRED_CLAIMS,
                "verify_exp": verify_exp,
            },
        )
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e


# --- Module Notes -----------------------------------------------------------
# Token issuing is used by:
# - `auth/tokens.py` (end-user access tokens)
# - `auth/service_tokens.py` (service-to-service tokens)
