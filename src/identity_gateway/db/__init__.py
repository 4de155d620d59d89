"""
identity_gateway.db

Persistence layer for the identity registry.

Responsibilities:
- ORM models, async session factory, repositories.
"""
