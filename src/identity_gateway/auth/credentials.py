"""
identity_gateway.auth.credentials

Credentialed (BearerToken mode) login flow.

Responsibilities:
- Define the `CredentialStore` protocol this service delegates to. Password hashing
  and lockout counting live in the store, not here.
- Turn store outcomes into `LoginResult`s with safe, distinct messages.
- Issue end-user tokens on success and link the identity to a registry record.

Enumeration safety:
- Unknown account and wrong password produce the same status and message.
- Password reset requests always report success.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from identity_gateway.auth.errors import CredentialStoreError
from identity_gateway.auth.models import CredentialUser
from identity_gateway.auth.roles import ROLE_ADMIN, ROLE_USER, map_claims_to_roles
from identity_gateway.auth.tokens import EndUserTokenService
from identity_gateway.observability.logging import get_logger
from identity_gateway.services.identity_registry import IdentityRegistry

log = get_logger(__name__)

MSG_INVALID_CREDENTIALS = "Invalid email or password"
MSG_LOCKED = (
    "Account is locked due to multiple failed login attempts. "
    "Try again later or reset your password."
)
MSG_INACTIVE = "User account is inactive"
MSG_FAILED = "Authentication failed"
MSG_EMAIL_TAKEN = "User with this email already exists"
MSG_INVALID_ACCESS_TOKEN = "Invalid access token"
MSG_USER_UNAVAILABLE = "User not found or inactive"


class PasswordCheck(enum.StrEnum):
    succeeded = "succeeded"
    failed = "failed"
    locked_out = "locked_out"


class CredentialStore(Protocol):
    """
    External user/password store. Implementations own hashing and lockout counters;
    `check_password` must count a failure toward lockout when `lockout_on_failure`.
    Store-side rejections (weak password, bad reset token) raise `CredentialStoreError`.
    """

    async def find_by_email(self, email: str) -> CredentialUser | None: ...

    async def find_by_id(self, user_id: str) -> CredentialUser | None: ...

    async def check_password(
        self, user: CredentialUser, password: str, *, lockout_on_failure: bool = True
    ) -> PasswordCheck: ...

    async def create_user(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        roles: tuple[str, ...],
    ) -> CredentialUser: ...

    async def change_password(
        self, user: CredentialUser, current_password: str, new_password: str
    ) -> bool: ...

    async def generate_password_reset_token(self, user: CredentialUser) -> str: ...

    async def reset_password(self, user: CredentialUser, token: str, new_password: str) -> bool: ...


class LoginStatus(enum.StrEnum):
    success = "SUCCESS"
    invalid_credentials = "INVALID_CREDENTIALS"
    locked = "LOCKED"
    inactive = "INACTIVE"
    # Input the store refused (duplicate email, weak password).
    rejected = "REJECTED"
    # Store error or unexpected exception; never carries detail.
    failed = "FAILED"


@dataclass(frozen=True, slots=True)
class UserInfo:
    id: str
    email: str
    first_name: str
    last_name: str
    display_name: str
    roles: tuple[str, ...]
    is_active: bool
    organization: str | None = None
    audit_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles


@dataclass(frozen=True, slots=True)
class LoginResult:
    status: LoginStatus
    message: str = ""
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    user: UserInfo | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status is LoginStatus.success

    @classmethod
    def failure(cls, status: LoginStatus, message: str) -> LoginResult:
        return cls(status=status, message=message)


class CredentialedAuthService:
    def __init__(
        self,
        *,
        store: CredentialStore,
        tokens: EndUserTokenService,
        registry: IdentityRegistry,
        admin_email_domains: tuple[str, ...] = (),
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._registry = registry
        self._admin_email_domains = admin_email_domains

    async def register(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> LoginResult:
        email = email.strip().lower()
        try:
            if await self._store.find_by_email(email) is not None:
                log.warning("registration_rejected", reason="email already registered")
                return LoginResult.failure(LoginStatus.rejected, MSG_EMAIL_TAKEN)
            user = await self._store.create_user(
                email=email,
                password=password,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                roles=(ROLE_USER,),
            )
        except CredentialStoreError as e:
            log.warning("registration_rejected", reason=str(e))
            return LoginResult.failure(LoginStatus.rejected, f"Registration failed: {e}")
        except Exception:
            log.exception("registration_error")
            return LoginResult.failure(LoginStatus.failed, MSG_FAILED)

        log.info("user_registered", user_id=user.id)
        return await self._issue(user)

    async def login(self, *, email: str, password: str) -> LoginResult:
        try:
            user = await self._store.find_by_email(email.strip().lower())
            if user is None:
                log.warning("login_failed", reason="unknown account")
                return LoginResult.failure(LoginStatus.invalid_credentials, MSG_INVALID_CREDENTIALS)
            if not user.is_active:
                log.warning("login_failed", reason="inactive", user_id=user.id)
                return LoginResult.failure(LoginStatus.inactive, MSG_INACTIVE)

            check = await self._store.check_password(user, password, lockout_on_failure=True)
        except Exception:
            log.exception("login_error")
            return LoginResult.failure(LoginStatus.failed, MSG_FAILED)

        if check is PasswordCheck.locked_out:
            log.warning("login_failed", reason="locked out", user_id=user.id)
            return LoginResult.failure(LoginStatus.locked, MSG_LOCKED)
        if check is not PasswordCheck.succeeded:
            log.warning("login_failed", reason="wrong password", user_id=user.id)
            return LoginResult.failure(LoginStatus.invalid_credentials, MSG_INVALID_CREDENTIALS)

        log.info("login_succeeded", user_id=user.id)
        return await self._issue(user)

    async def refresh(self, *, access_token: str, refresh_token: str) -> LoginResult:
        # Refresh tokens are not persisted; a non-empty value plus a genuine (possibly
        # expired) access token is required.
        if not refresh_token or not refresh_token.strip():
            return LoginResult.failure(LoginStatus.invalid_credentials, MSG_INVALID_ACCESS_TOKEN)

        result = self._tokens.validate_expired_token_for_refresh(access_token)
        if not result.is_valid or result.subject is None:
            return LoginResult.failure(LoginStatus.invalid_credentials, MSG_INVALID_ACCESS_TOKEN)

        try:
            user = await self._store.find_by_id(result.subject)
        except Exception:
            log.exception("refresh_error")
            return LoginResult.failure(LoginStatus.failed, MSG_FAILED)
        if user is None or not user.is_active:
            return LoginResult.failure(LoginStatus.invalid_credentials, MSG_USER_UNAVAILABLE)

        return await self._issue(user)

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> bool:
        try:
            user = await self._store.find_by_id(user_id)
            if user is None:
                log.warning("change_password_failed", reason="unknown user", user_id=user_id)
                return False
            changed = await self._store.change_password(user, current_password, new_password)
        except CredentialStoreError as e:
            log.warning("change_password_failed", reason=str(e), user_id=user_id)
            return False
        except Exception:
            log.exception("change_password_error", user_id=user_id)
            return False
        log.info("change_password_completed", user_id=user_id, changed=changed)
        return changed

    async def request_password_reset(self, email: str) -> bool:
        try:
            user = await self._store.find_by_email(email.strip().lower())
            if user is None:
                log.info("password_reset_requested", known=False)
                return True
            await self._store.generate_password_reset_token(user)
            # Delivery of the token (email) is outside this service.
            log.info("password_reset_requested", known=True, user_id=user.id)
        except Exception:
            log.exception("password_reset_request_error")
        return True

    async def confirm_password_reset(self, *, email: str, token: str, new_password: str) -> bool:
        try:
            user = await self._store.find_by_email(email.strip().lower())
            if user is None:
                log.warning("password_reset_failed", reason="unknown account")
                return False
            reset = await self._store.reset_password(user, token, new_password)
        except CredentialStoreError as e:
            log.warning("password_reset_failed", reason=str(e))
            return False
        except Exception:
            log.exception("password_reset_error")
            return False
        log.info("password_reset_completed", user_id=user.id, reset=reset)
        return reset

    async def get_user_info(self, user_id: str) -> UserInfo | None:
        try:
            user = await self._store.find_by_id(user_id)
        except Exception:
            log.exception("user_info_error", user_id=user_id)
            return None
        if user is None:
            return None
        return self._user_info(user, self._roles_for(user))

    def _roles_for(self, user: CredentialUser) -> list[str]:
        return map_claims_to_roles(
            {"roles": list(user.roles), "email": user.email},
            admin_email_domains=self._admin_email_domains,
        )

    @staticmethod
    def _user_info(
        user: CredentialUser, roles: list[str], audit_id: uuid.UUID | None = None
    ) -> UserInfo:
        return UserInfo(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            display_name=user.display_name,
            roles=tuple(roles),
            is_active=user.is_active,
            organization=user.organization,
            audit_id=audit_id,
        )

    async def _issue(self, user: CredentialUser) -> LoginResult:
        roles = self._roles_for(user)
        try:
            audit_id = await self._registry.resolve_or_create_for_credentialed(
                user.id,
                {
                    "email": user.email,
                    "display_name": user.display_name,
                    "organization": user.organization,
                    "roles": roles,
                },
            )
        except Exception:
            log.exception("registry_link_error", user_id=user.id)
            return LoginResult.failure(LoginStatus.failed, MSG_FAILED)

        access_token = self._tokens.issue_access_token(
            user, roles, extra_claims={"audit_id": str(audit_id)}
        )
        return LoginResult(
            status=LoginStatus.success,
            access_token=access_token,
            refresh_token=self._tokens.issue_refresh_token(),
            expires_at=self._tokens.get_expiry(),
            user=self._user_info(user, roles, audit_id),
        )


# --- Module Notes -----------------------------------------------------------
# Every successful issuance touches the registry, so `last_login_at` on the
# CredentialedUser record tracks token issuance rather than password checks.
