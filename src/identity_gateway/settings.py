"""
identity_gateway.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (signing secrets, federated client secret).
- Offer a cached settings instance for dependency injection.

The raw settings are turned into an immutable `AuthConfig` exactly once at
startup (see `identity_gateway.auth.config`); auth components never read
these fields directly.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Shipped for local development only; rejected when env == "prod".
DEV_USER_JWT_SECRET = "dev-only-user-signing-secret-change-me-0001"
DEV_SERVICE_JWT_SECRET = "dev-only-service-signing-secret-change-me-01"


class Settings(BaseSettings):
    """
    Enterprise pattern:
    - Strict env-driven configuration
    - Defaults safe for local dev
    - Single settings object injected across layers
    """

    model_config = SettingsConfigDict(
        env_prefix="IDGW_", case_sensitive=False, populate_by_name=True
    )

    # Environment name also drives the default authentication mode.
    env: str = "dev"
    ci: bool = Field(default=False, validation_alias=AliasChoices("CI", "IDGW_CI"))
    service_name: str = "identity-gateway"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./identity.db"

    # Auth mode: Disabled | BearerToken | EntraExternalId (unset -> env default)
    auth_mode: str | None = None

    # End-user tokens
    jwt_alg: str = "HS256"
    jwt_issuer: str = "identity-gateway"
    jwt_audience: str = "business-api"
    jwt_secret: str = Field(default=DEV_USER_JWT_SECRET, repr=False)
    jwt_expiration_minutes: int = 60
    jwt_clock_skew_minutes: int = 5

    # Service tokens
    service_jwt_issuer: str = "identity-gateway-mcp"
    service_jwt_audience: str = "business-services"
    service_jwt_secret: str = Field(default=DEV_SERVICE_JWT_SECRET, repr=False)
    service_jwt_expiration_minutes: int = 1440
    service_jwt_clock_skew_minutes: int = 5
    service_identity: str = "identity-gateway-service"
    service_jwt_enable_caching: bool = True
    service_jwt_refresh_threshold_minutes: int = 60

    # Identity registry
    registry_cache_minutes: int = 60
    registry_cache_max_entries: int = 10_000
    registry_require_registration: bool = True

    # Federated identity (EntraExternalId mode)
    entra_tenant_id: str = ""
    entra_client_id: str = ""
    entra_client_secret: str = Field(default="", repr=False)
    entra_authority: str = ""
    entra_scopes: list[str] = Field(default_factory=list)
    admin_email_domains: list[str] = Field(default_factory=list)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Field names are grouped by trust domain (end-user vs service) so operators can
# rotate one signing secret without touching the other.
