"""
identity_gateway.db.base

SQLAlchemy declarative base.

Responsibilities:
- Provide a shared DeclarativeBase for all identity registry ORM models.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# --- Module Notes -----------------------------------------------------------
# Registry models inherit from `Base` (via `CorrelationRecord`) so Alembic sees them.
