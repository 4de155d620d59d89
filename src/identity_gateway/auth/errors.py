"""
identity_gateway.auth.errors

Exception taxonomy for the authentication subsystem.

Responsibilities:
- Separate startup-fatal configuration problems from per-request outcomes.
- Give callers distinct types for "retry with different input" vs "re-register".
"""

from __future__ import annotations


class AuthError(Exception):
    pass


class ConfigurationError(AuthError):
    """Missing or unsafe auth configuration. Raised at startup only."""


class UnsupportedInModeError(AuthError):
    def __init__(self, operation: str, mode: str, hint: str = "") -> None:
        self.operation = operation
        self.mode = mode
        msg = f"{operation} is not supported in {mode} mode"
        if hint:
            msg = f"{msg}. {hint}"
        super().__init__(msg)


class InvalidRegistrationError(AuthError):
    """Malformed registration input (empty name, bad email shape)."""


class CorrelationIdNotFoundError(AuthError):
    def __init__(self, correlation_id: object) -> None:
        self.correlation_id = correlation_id
        super().__init__(f"correlation id {correlation_id} not found in registry")


class CredentialStoreError(AuthError):
    """The external credential store rejected an operation or failed."""


# --- Module Notes -----------------------------------------------------------
# Token validation failures are deliberately NOT exceptions here; they are reported
# through `TokenValidation` results (see `identity_gateway.auth.models`).
