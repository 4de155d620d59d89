"""
tests.conftest

Shared fixtures.

Responsibilities:
- Provide settings pointing at a per-test SQLite database with strong secrets.
- Provide an initialized async engine/sessionmaker and a registry bound to it.
- Provide an in-memory credential store with lockout counting.
- Mint identity provider tokens for the federated flow.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from identity_gateway.auth.config import AuthConfig, RegistryPolicy, build_auth_config
from identity_gateway.auth.credentials import PasswordCheck
from identity_gateway.auth.errors import CredentialStoreError
from identity_gateway.auth.models import CredentialUser
from identity_gateway.db.init_db import init_db
from identity_gateway.db.session import create_engine, create_sessionmaker
from identity_gateway.services.identity_registry import IdentityRegistry
from identity_gateway.services.validation_cache import ValidationCache
from identity_gateway.settings import Settings

USER_SECRET = "test-user-signing-secret-0123456789abcdef"
SERVICE_SECRET = "test-service-signing-secret-0123456789abcd"
# Provider signatures are not checked under the claim-trust model; any key will do.
PROVIDER_KEY = "identity-provider-key-not-verified-here"


class FakeTimer:
    """Monotonic clock the tests advance by hand."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta.total_seconds()


class FakeCredentialStore:
    def __init__(self, *, max_failed_attempts: int = 3) -> None:
        self.max_failed_attempts = max_failed_attempts
        self.users: dict[str, CredentialUser] = {}
        self.passwords: dict[str, str] = {}
        self.failed_attempts: dict[str, int] = {}
        self.reset_tokens: dict[str, str] = {}
        self.fail_with: Exception | None = None

    def add_user(
        self,
        *,
        email: str,
        password: str,
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        roles: tuple[str, ...] = ("User",),
        is_active: bool = True,
    ) -> CredentialUser:
        user = CredentialUser(
            id=str(uuid.uuid4()),
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
            roles=roles,
            is_active=is_active,
        )
        self.users[user.id] = user
        self.passwords[user.id] = password
        return user

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def find_by_email(self, email: str) -> CredentialUser | None:
        self._maybe_fail()
        return next((u for u in self.users.values() if u.email == email.lower()), None)

    async def find_by_id(self, user_id: str) -> CredentialUser | None:
        self._maybe_fail()
        return self.users.get(user_id)

    async def check_password(
        self, user: CredentialUser, password: str, *, lockout_on_failure: bool = True
    ) -> PasswordCheck:
        self._maybe_fail()
        if self.failed_attempts.get(user.id, 0) >= self.max_failed_attempts:
            return PasswordCheck.locked_out
        if self.passwords.get(user.id) == password:
            self.failed_attempts[user.id] = 0
            return PasswordCheck.succeeded
        if lockout_on_failure:
            self.failed_attempts[user.id] = self.failed_attempts.get(user.id, 0) + 1
            if self.failed_attempts[user.id] >= self.max_failed_attempts:
                return PasswordCheck.locked_out
        return PasswordCheck.failed

    async def create_user(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        roles: tuple[str, ...],
    ) -> CredentialUser:
        self._maybe_fail()
        if len(password) < 8:
            raise CredentialStoreError("Passwords must be at least 8 characters")
        return self.add_user(
            email=email, password=password, first_name=first_name, last_name=last_name, roles=roles
        )

    async def change_password(
        self, user: CredentialUser, current_password: str, new_password: str
    ) -> bool:
        self._maybe_fail()
        if self.passwords.get(user.id) != current_password:
            return False
        self.passwords[user.id] = new_password
        return True

    async def generate_password_reset_token(self, user: CredentialUser) -> str:
        self._maybe_fail()
        token = uuid.uuid4().hex
        self.reset_tokens[user.id] = token
        return token

    async def reset_password(self, user: CredentialUser, token: str, new_password: str) -> bool:
        self._maybe_fail()
        if self.reset_tokens.get(user.id) != token:
            raise CredentialStoreError("Invalid token")
        del self.reset_tokens[user.id]
        self.passwords[user.id] = new_password
        self.failed_attempts[user.id] = 0
        return True

    def deactivate(self, user_id: str) -> None:
        self.users[user_id] = replace(self.users[user_id], is_active=False)


def provider_token(**overrides) -> str:
    """Identity provider token for tenant-1/client-1. A `None` override drops the claim."""
    claims = {
        "oid": "oid-123",
        "tid": "tenant-1",
        "aud": "client-1",
        "email": "Ada@Example.com",
        "given_name": "Ada",
        "family_name": "Lovelace",
        "name": "Ada Lovelace",
        "roles": ["sales"],
        "scp": "openid profile",
        "exp": int((datetime.now(tz=UTC) + timedelta(minutes=30)).timestamp()),
    }
    claims.update(overrides)
    return jwt.encode({k: v for k, v in claims.items() if v is not None}, PROVIDER_KEY, algorithm="HS256")


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "env": "test",
        # Pin the CI flag so a CI runner does not change the resolved mode.
        "ci": False,
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}",
        "jwt_secret": USER_SECRET,
        "service_jwt_secret": SERVICE_SECRET,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def auth_config(settings: Settings) -> AuthConfig:
    return build_auth_config(settings)


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def cache(timer: FakeTimer) -> ValidationCache:
    return ValidationCache(ttl=timedelta(minutes=60), timer=timer)


@pytest.fixture
def credential_store() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = create_engine(settings.database_url)
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry(session: AsyncSession, cache: ValidationCache) -> IdentityRegistry:
    return IdentityRegistry(session=session, cache=cache, policy=RegistryPolicy())


# --- Module Notes -----------------------------------------------------------
# `Settings(env="test")` resolves to Disabled mode unless a test overrides `auth_mode`.
