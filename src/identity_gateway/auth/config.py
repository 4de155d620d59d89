"""
identity_gateway.auth.config

Immutable authentication configuration, built once per process.

Responsibilities:
- Resolve the active `AuthMode` from settings.
- Build per-trust-domain `JwtConfig` objects and validate them for the active mode.
- Fail fast (`ConfigurationError`) on unsafe or incomplete configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from identity_gateway.auth.errors import ConfigurationError
from identity_gateway.auth.jwt import JwtConfig, validate_jwt_config
from identity_gateway.auth.modes import AuthMode, resolve_auth_mode
from identity_gateway.settings import DEV_SERVICE_JWT_SECRET, DEV_USER_JWT_SECRET, Settings


@dataclass(frozen=True, slots=True)
class FederatedConfig:
    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)
    authority: str
    scopes: tuple[str, ...] = ()

    def validate(self) -> None:
        for name in ("tenant_id", "client_id", "client_secret", "authority"):
            if not getattr(self, name).strip():
                raise ConfigurationError(f"federated setting {name} is required in EntraExternalId mode")


@dataclass(frozen=True, slots=True)
class ServiceTokenPolicy:
    service_identity: str
    enable_caching: bool = True
    refresh_threshold: timedelta = timedelta(minutes=60)


@dataclass(frozen=True, slots=True)
class RegistryPolicy:
    # 0 disables the validation cache entirely.
    cache_ttl: timedelta = timedelta(minutes=60)
    cache_max_entries: int = 10_000
    require_registration: bool = True


@dataclass(frozen=True, slots=True)
class AuthConfig:
    mode: AuthMode
    user_jwt: JwtConfig
    service_jwt: JwtConfig
    service_policy: ServiceTokenPolicy
    registry: RegistryPolicy
    federated: FederatedConfig | None = None
    admin_email_domains: tuple[str, ...] = ()

    @property
    def requires_user_authentication(self) -> bool:
        return self.mode.requires_user_authentication

    def validation_rules(self) -> list[str]:
        ttl_minutes = int(self.registry.cache_ttl.total_seconds() // 60)
        return [
            f"Registry validation: {'required' if self.registry.require_registration else 'not required'}",
            f"Cache duration: {ttl_minutes} minutes",
            f"Service token lifetime: {int(self.service_jwt.lifetime.total_seconds() // 60)} minutes",
        ]


def build_auth_config(settings: Settings) -> AuthConfig:
    """
    Single place where settings become auth configuration. Called once at startup;
    the result is passed explicitly to every auth component.
    """

    mode = resolve_auth_mode(settings.auth_mode, settings.env, ci=settings.ci)

    user_jwt = JwtConfig(
        alg=settings.jwt_alg,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        secret=settings.jwt_secret,
        lifetime=timedelta(minutes=settings.jwt_expiration_minutes),
        leeway=timedelta(minutes=settings.jwt_clock_skew_minutes),
    )
    service_jwt = JwtConfig(
        alg="HS256",
        issuer=settings.service_jwt_issuer,
        audience=settings.service_jwt_audience,
        secret=settings.service_jwt_secret,
        lifetime=timedelta(minutes=settings.service_jwt_expiration_minutes),
        leeway=timedelta(minutes=settings.service_jwt_clock_skew_minutes),
    )

    if settings.registry_cache_minutes < 0:
        raise ConfigurationError("registry cache minutes must be non-negative")
    if settings.service_jwt_refresh_threshold_minutes < 1:
        raise ConfigurationError("service token refresh threshold must be at least 1 minute")
    if not settings.service_identity.strip():
        raise ConfigurationError("service identity cannot be empty")

    # Service tokens are always required, whatever the end-user mode.
    validate_jwt_config(service_jwt, name="service JWT")

    federated: FederatedConfig | None = None
    if mode is AuthMode.bearer_token:
        validate_jwt_config(user_jwt, name="end-user JWT")
    elif mode is AuthMode.entra_external_id:
        federated = FederatedConfig(
            tenant_id=settings.entra_tenant_id,
            client_id=settings.entra_client_id,
            client_secret=settings.entra_client_secret,
            authority=settings.entra_authority,
            scopes=tuple(settings.entra_scopes),
        )
        federated.validate()

    if settings.env.strip().lower() == "prod":
        # Development secrets ship in source; never accept them in production.
        if settings.service_jwt_secret == DEV_SERVICE_JWT_SECRET:
            raise ConfigurationError("service JWT secret must be overridden in prod")
        if mode is AuthMode.bearer_token and settings.jwt_secret == DEV_USER_JWT_SECRET:
            raise ConfigurationError("end-user JWT secret must be overridden in prod")

    return AuthConfig(
        mode=mode,
        user_jwt=user_jwt,
        service_jwt=service_jwt,
        service_policy=ServiceTokenPolicy(
            service_identity=settings.service_identity,
            enable_caching=settings.service_jwt_enable_caching,
            refresh_threshold=timedelta(minutes=settings.service_jwt_refresh_threshold_minutes),
        ),
        registry=RegistryPolicy(
            cache_ttl=timedelta(minutes=settings.registry_cache_minutes),
            cache_max_entries=settings.registry_cache_max_entries,
            require_registration=settings.registry_require_registration,
        ),
        federated=federated,
        admin_email_domains=tuple(d.lower() for d in settings.admin_email_domains),
    )


# --- Module Notes -----------------------------------------------------------
# Mode-specific validation mirrors deployment reality: a Disabled deployment does
# not need an end-user signing secret, but every deployment needs a service secret.
