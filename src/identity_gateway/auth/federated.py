"""
identity_gateway.auth.federated

Federated (EntraExternalId mode) login flow.

Responsibilities:
- Refuse the manual register/login/refresh/password operations with
  `UnsupportedInModeError`; the identity provider owns those flows.
- Read an identity-provider token under a simplified claim-trust model and map
  its claims to canonical roles.
- Link the federated subject to a registry record.

Trust model:
- Tokens are expected to arrive from a gateway that already verified the provider
  signature. Here we only check expiry, tenant (`tid`) and audience (client id),
  and require a subject. This is not a production OIDC client.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import jwt
from jwt import InvalidTokenError

from identity_gateway.auth.config import FederatedConfig
from identity_gateway.auth.errors import InvalidRegistrationError, UnsupportedInModeError
from identity_gateway.auth.models import FederatedIdentity, TokenValidation
from identity_gateway.auth.modes import AuthMode
from identity_gateway.auth.roles import map_claims_to_roles
from identity_gateway.observability.logging import get_logger
from identity_gateway.services.identity_registry import IdentityRegistry

log = get_logger(__name__)

_MODE = AuthMode.entra_external_id.value


def _claim(claims: Mapping[str, Any], *names: str) -> str | None:
    # Claim types may arrive URI-style (".../claims/emailaddress"); match the last segment.
    lowered = {str(k).lower().rsplit("/", 1)[-1]: v for k, v in claims.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value:
            return str(value)
    return None


class FederatedAuthService:
    def __init__(
        self,
        *,
        cfg: FederatedConfig,
        registry: IdentityRegistry,
        admin_email_domains: tuple[str, ...] = (),
    ) -> None:
        self._cfg = cfg
        self._registry = registry
        self._admin_email_domains = admin_email_domains

    async def register(self, **_: Any):
        raise UnsupportedInModeError(
            "Manual registration",
            _MODE,
            "Users are registered automatically through the identity provider sign-in flow.",
        )

    async def login(self, **_: Any):
        raise UnsupportedInModeError(
            "Direct login", _MODE, "Sign in through the identity provider (OAuth 2.0)."
        )

    async def refresh(self, **_: Any):
        raise UnsupportedInModeError(
            "Token refresh", _MODE, "Refresh is handled by the identity provider."
        )

    async def change_password(self, *_: Any, **__: Any):
        raise UnsupportedInModeError(
            "Password change", _MODE, "Change passwords in the identity provider portal."
        )

    async def request_password_reset(self, *_: Any, **__: Any):
        raise UnsupportedInModeError(
            "Password reset", _MODE, "Reset passwords in the identity provider portal."
        )

    async def confirm_password_reset(self, *_: Any, **__: Any):
        raise UnsupportedInModeError(
            "Password reset confirmation", _MODE, "Reset passwords in the identity provider portal."
        )

    def validate_federated_token(self, token: str) -> TokenValidation:
        if not token or not token.strip():
            return TokenValidation.invalid()
        try:
            claims = jwt.decode(
                token,
                options={
                    "verify_signature": False,
                    "verify_exp": True,
                    "verify_aud": True,
                    "require": ["exp", "aud"],
                },
                audience=self._cfg.client_id,
            )
        except InvalidTokenError as e:
            log.warning("federated_token_rejected", reason=str(e))
            return TokenValidation.invalid()
        except Exception:
            log.exception("federated_token_validation_error")
            return TokenValidation.error()

        tenant = _claim(claims, "tid", "tenant_id")
        if tenant != self._cfg.tenant_id:
            log.warning("federated_token_rejected", reason="tenant mismatch", tenant_id=tenant)
            return TokenValidation.invalid()
        if _claim(claims, "oid", "objectidentifier", "sub") is None:
            log.warning("federated_token_rejected", reason="missing subject")
            return TokenValidation.invalid()
        return TokenValidation.valid(claims)

    def map_claims_to_roles(self, claims: Mapping[str, Any]) -> list[str]:
        roles = map_claims_to_roles(claims, admin_email_domains=self._admin_email_domains)
        log.debug("federated_roles_mapped", roles=roles)
        return roles

    async def create_or_update_user_from_claims(self, claims: Mapping[str, Any]) -> FederatedIdentity:
        subject_id = _claim(claims, "oid", "objectidentifier", "sub", "id")
        email = _claim(claims, "email", "emailaddress", "preferred_username", "upn")
        if subject_id is None:
            raise InvalidRegistrationError("Federated token must contain a user object id (oid)")
        if email is None:
            raise InvalidRegistrationError("Federated token must contain a user email")

        first_name = _claim(claims, "given_name", "givenname", "first_name") or ""
        last_name = _claim(claims, "family_name", "surname", "last_name") or ""
        display_name = _claim(claims, "name", "display_name") or f"{first_name} {last_name}".strip()
        tenant_id = _claim(claims, "tid", "tenant_id")
        roles = self.map_claims_to_roles(claims)

        audit_id = await self._registry.resolve_or_create_for_federated(
            subject_id,
            {
                "email": email,
                "name": display_name,
                "tid": tenant_id,
                "scp": _claim(claims, "scp", "scope"),
            },
        )
        log.info("federated_user_linked", audit_id=str(audit_id), tenant_id=tenant_id)
        return FederatedIdentity(
            subject_id=subject_id,
            email=email.lower(),
            display_name=display_name,
            first_name=first_name,
            last_name=last_name,
            tenant_id=tenant_id,
            roles=tuple(roles),
            audit_id=audit_id,
        )


# --- Module Notes -----------------------------------------------------------
# Full signature validation against the provider's published keys is out of scope;
# deployments that need it should terminate OIDC in front of this service.
