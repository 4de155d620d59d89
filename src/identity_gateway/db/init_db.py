"""
identity_gateway.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create registry tables for local development and tests.
- Keep production migration workflow separate (Alembic).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from identity_gateway.db import models  # noqa: F401  # registers tables on Base.metadata
from identity_gateway.db.base import Base


async def init_db(engine: AsyncEngine) -> None:
    """
    Dev/test bootstrap: create tables if they don't exist.
    Production should rely on Alembic migrations.
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
