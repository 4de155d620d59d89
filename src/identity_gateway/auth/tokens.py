"""
identity_gateway.auth.tokens

End-user token service (BearerToken mode).

Responsibilities:
- Issue signed access tokens for authenticated end users.
- Issue opaque refresh tokens.
- Validate access tokens, including the expiry-skipping path used during refresh.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from identity_gateway.auth.jwt import (
    JwtConfig,
    JwtValidationError,
    decode_and_validate,
    issue_token,
    utcnow,
    validate_jwt_config,
)
from identity_gateway.auth.models import SERVICE_TOKEN_CLAIM, CredentialUser, TokenValidation
from identity_gateway.observability.logging import get_logger

log = get_logger(__name__)

_REFRESH_TOKEN_BYTES = 64


class EndUserTokenService:
    def __init__(self, cfg: JwtConfig, *, clock: Callable[[], datetime] = utcnow) -> None:
        # Configuration-time fatal: a weak or missing secret never reaches a request.
        validate_jwt_config(cfg, name="end-user JWT")
        self._cfg = cfg
        self._clock = clock

    def issue_access_token(
        self,
        identity: CredentialUser,
        roles: Sequence[str],
        extra_claims: Mapping[str, Any] | None = None,
    ) -> str:
        claims: dict[str, Any] = dict(extra_claims or {})
        claims.update(
            {
                "name": identity.email,
                "email": identity.email,
                "given_name": identity.first_name,
                "family_name": identity.last_name,
                "display_name": identity.display_name,
                "roles": list(dict.fromkeys(roles)),
                SERVICE_TOKEN_CLAIM: False,
            }
        )
        token = issue_token(cfg=self._cfg, subject=identity.id, claims=claims, now=self._clock())
        log.info("access_token_issued", user_id=identity.id, role_count=len(claims["roles"]))
        return token

    def issue_refresh_token(self) -> str:
        return secrets.token_urlsafe(_REFRESH_TOKEN_BYTES)

    def validate_token(self, token: str) -> TokenValidation:
        return self._validate(token, verify_exp=True)

    def validate_expired_token_for_refresh(self, token: str) -> TokenValidation:
        # Only the lifetime check is skipped; signature/issuer/audience still apply.
        return self._validate(token, verify_exp=False)

    def get_expiry(self) -> datetime:
        return self._clock() + self._cfg.lifetime

    def _validate(self, token: str, *, verify_exp: bool) -> TokenValidation:
        if not token or not token.strip():
            return TokenValidation.invalid()
        try:
            claims = decode_and_validate(cfg=self._cfg, token=token, verify_exp=verify_exp)
        except JwtValidationError as e:
            log.debug("access_token_rejected", reason=str(e), verify_exp=verify_exp)
            return TokenValidation.invalid()
        except Exception:
            log.exception("access_token_validation_error")
            return TokenValidation.error()

        if claims.get(SERVICE_TOKEN_CLAIM) is True:
            # Service tokens belong to the other trust domain.
            log.warning("access_token_rejected", reason="service token presented as end-user token")
            return TokenValidation.invalid()
        return TokenValidation.valid(claims)


# --- Module Notes -----------------------------------------------------------
# Refresh tokens are opaque random strings; they are never parsed as JWTs.
