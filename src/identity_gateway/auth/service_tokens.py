"""
identity_gateway.auth.service_tokens

Service-to-service token service.

Responsibilities:
- Issue service tokens bound to a registry correlation id.
- Validate service tokens: JWT checks, the service marker, and that the
  correlation id still resolves in the identity registry.
- Extract the correlation id from a token that passes validation.

Failure reporting:
- Every validation failure is reported as the same `INVALID` result. The specific
  reason (expired, wrong audience, revoked, missing marker) is only logged.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from identity_gateway.auth.config import ServiceTokenPolicy
from identity_gateway.auth.errors import CorrelationIdNotFoundError
from identity_gateway.auth.jwt import (
    JwtConfig,
    JwtValidationError,
    decode_and_validate,
    issue_token,
    token_expiry,
    utcnow,
    validate_jwt_config,
)
from identity_gateway.auth.models import SERVICE_TOKEN_CLAIM, IssuedServiceToken, TokenValidation
from identity_gateway.auth.modes import AuthMode
from identity_gateway.observability.logging import get_logger
from identity_gateway.services.identity_registry import IdentityRegistry, parse_audit_id

log = get_logger(__name__)


class ServiceTokenService:
    def __init__(
        self,
        cfg: JwtConfig,
        policy: ServiceTokenPolicy,
        registry: IdentityRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        validate_jwt_config(cfg, name="service JWT")
        self._cfg = cfg
        self._policy = policy
        self._registry = registry
        self._clock = clock

    @property
    def lifetime(self) -> timedelta:
        return self._cfg.lifetime

    async def issue_service_token(
        self,
        correlation_id: uuid.UUID | str,
        mode: AuthMode,
        session_id: str | None = None,
    ) -> IssuedServiceToken:
        parsed = parse_audit_id(correlation_id)
        if parsed is None or not await self._registry.validate(parsed):
            log.warning("service_token_issue_refused", correlation_id=str(correlation_id))
            raise CorrelationIdNotFoundError(correlation_id)

        claims: dict[str, Any] = {
            SERVICE_TOKEN_CLAIM: True,
            "auth_mode": str(mode),
            "service_identity": self._policy.service_identity,
        }
        if session_id:
            claims["session_id"] = session_id

        record = await self._registry.get_by_audit_id(parsed)
        if record is not None:
            claims["name"] = record.display_name
            claims["email"] = record.email
            claims["record_mode"] = str(record.mode)

        now = self._clock()
        token = issue_token(cfg=self._cfg, subject=str(parsed), claims=claims, now=now)
        log.info("service_token_issued", correlation_id=str(parsed), auth_mode=str(mode))
        return IssuedServiceToken(
            token=token,
            correlation_id=parsed,
            mode=mode,
            expires_at=token_expiry(now, self._cfg.lifetime),
        )

    async def validate_service_token(self, token: str) -> TokenValidation:
        if not token or not token.strip():
            return TokenValidation.invalid()
        try:
            claims = decode_and_validate(cfg=self._cfg, token=token)
        except JwtValidationError as e:
            log.warning("service_token_rejected", reason=str(e))
            return TokenValidation.invalid()
        except Exception:
            log.exception("service_token_validation_error")
            return TokenValidation.error()

        if claims.get(SERVICE_TOKEN_CLAIM) is not True:
            log.warning("service_token_rejected", reason="missing service token marker")
            return TokenValidation.invalid()

        correlation_id = parse_audit_id(str(claims.get("sub", "")))
        if correlation_id is None:
            log.warning("service_token_rejected", reason="subject is not a correlation id")
            return TokenValidation.invalid()

        try:
            resolves = await self._registry.validate(correlation_id)
        except Exception:
            log.exception("service_token_validation_error", correlation_id=str(correlation_id))
            return TokenValidation.error()
        if not resolves:
            log.warning(
                "service_token_rejected",
                reason="correlation id no longer resolves",
                correlation_id=str(correlation_id),
            )
            return TokenValidation.invalid()

        return TokenValidation.valid(claims)

    async def extract_correlation_id(self, token: str) -> uuid.UUID | None:
        result = await self.validate_service_token(token)
        if not result.is_valid:
            return None
        return parse_audit_id(result.subject)


# --- Module Notes -----------------------------------------------------------
# Revocation is indirect: a service token stops validating when its correlation id
# stops resolving, within one validation-cache TTL window.
