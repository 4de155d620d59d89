"""
identity_gateway.auth.modes

Authentication mode selection.

Responsibilities:
- Define the three supported trust models.
- Resolve the active mode from explicit configuration or the environment name.
"""

from __future__ import annotations

import enum

from identity_gateway.observability.logging import get_logger

log = get_logger(__name__)

_TEST_LIKE_ENVIRONMENTS = frozenset({"test", "testing", "ci"})


class AuthMode(enum.StrEnum):
    # Values are persisted on registry records and echoed in API responses.
    disabled = "Disabled"
    bearer_token = "BearerToken"
    entra_external_id = "EntraExternalId"

    @property
    def requires_user_authentication(self) -> bool:
        return self is not AuthMode.disabled


def parse_auth_mode(value: str | None) -> AuthMode | None:
    """Case-insensitive parse; returns None for missing or unknown values."""
    if value is None:
        return None
    candidate = value.strip().lower()
    if not candidate:
        return None
    for mode in AuthMode:
        if mode.value.lower() == candidate:
            return mode
    return None


def is_test_like_environment(environment: str, *, ci: bool = False) -> bool:
    if ci:
        return True
    env = environment.strip().lower()
    return env in _TEST_LIKE_ENVIRONMENTS or "test" in env


def default_auth_mode(environment: str, *, ci: bool = False) -> AuthMode:
    # Test/CI runs default to Disabled; everything else defaults to the secure mode.
    if is_test_like_environment(environment, ci=ci):
        return AuthMode.disabled
    return AuthMode.bearer_token


def resolve_auth_mode(configured: str | None, environment: str, *, ci: bool = False) -> AuthMode:
    """
    Explicit, parseable configuration always wins. An unparseable value is treated
    as unset and falls through to the environment default; it never raises.
    """

    explicit = parse_auth_mode(configured)
    if explicit is not None:
        return explicit

    fallback = default_auth_mode(environment, ci=ci)
    if configured is not None and configured.strip():
        log.warning(
            "auth_mode_unparseable",
            configured=configured,
            environment=environment,
            fallback=fallback.value,
        )
    return fallback


# --- Module Notes -----------------------------------------------------------
# The lenient fallback for unparseable values is a usability trade-off; see DESIGN.md
# (Open Questions) before relying on it in hardened deployments.
